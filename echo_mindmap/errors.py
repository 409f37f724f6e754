"""
Error taxonomy for the mind map pipeline.

Every stage failure that can reach a caller is a PipelineError subclass.
Caption retrieval failures are not exceptions at all: they are returned as
ExtractionFailure values and turned into an inference hint by the extractor.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ExtractionFailure:
    """Why captions could not be retrieved for a URL."""
    url: str
    reason: str


class PipelineError(Exception):
    """Base exception for all pipeline stage failures."""

    # Message safe to hand back to an HTTP caller
    public_message = "AI processing failed"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UploadError(PipelineError):
    """The asset could not be submitted to the remote file store."""
    public_message = "File upload failed"


class ProcessingError(PipelineError):
    """The remote file store reported a terminal state other than ready."""
    public_message = "File processing failed"


class AssetTimeoutError(ProcessingError):
    """The asset was still processing when the polling bound ran out."""
    public_message = "File processing timed out"


class InferenceError(PipelineError):
    """The generation service call failed."""
    public_message = "AI processing failed"


class MalformedResponseError(PipelineError):
    """The model response was not valid JSON after sanitization."""
    public_message = "AI returned an unreadable mind map"


class SchemaError(PipelineError):
    """The model response parsed but is not a valid graph document."""
    public_message = "AI returned an invalid mind map"
