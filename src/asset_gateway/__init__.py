"""Asset Gateway - edge-facing upload/download service for image and video assets.

This package provides:
- Immutable uploads into an R2/S3-compatible bucket
- Downloads with range and conditional request support, backed by a response cache
- Batched deletions with per-item failure reporting
"""

__version__ = "0.1.0"
