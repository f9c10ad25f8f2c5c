from .publisher import PublishReceipt, Publisher
from .registry import (
    HttpRegistry,
    Registry,
    SubmitResult,
    classify_rejection,
    crate_metadata,
    encode_upload_body,
)
from .stage import PublishStage

__all__ = [
    "HttpRegistry",
    "PublishReceipt",
    "PublishStage",
    "Publisher",
    "Registry",
    "SubmitResult",
    "classify_rejection",
    "crate_metadata",
    "encode_upload_body",
]
