"""Error types raised by the asset handlers.

Each error carries the HTTP status code the routing layer should answer with.
"""

from typing import Dict, Optional


class AssetGatewayError(Exception):
    """Base class for errors that map directly to an HTTP response."""

    status_code: int = 500

    def __init__(self, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers


class InvalidContentTypeError(AssetGatewayError):
    """Upload content type is not image/* or video/*."""

    status_code = 400

    def __init__(self, message: str = "Invalid content type"):
        super().__init__(message)


class NotFoundError(AssetGatewayError):
    """No asset stored under the requested name."""

    status_code = 404

    def __init__(self, message: str = "Asset not found"):
        super().__init__(message)


class ConflictError(AssetGatewayError):
    """An asset already exists under the requested name."""

    status_code = 409

    def __init__(self, message: str = "Upload already exists"):
        super().__init__(message)


class RangeNotSatisfiableError(AssetGatewayError):
    """Requested byte range lies outside the stored object."""

    status_code = 416

    def __init__(self, size: int):
        super().__init__(
            "Range not satisfiable", headers={"Content-Range": f"bytes */{size}"}
        )
        self.size = size
