import operator
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, List, Optional, TypedDict, Union

from echo_mindmap.graph.document import GraphDocument


# 1. Source descriptors: what the caller handed us
@dataclass(frozen=True)
class UrlSource:
    value: str                      # e.g., "https://youtu.be/abc123"


@dataclass(frozen=True)
class UploadedAssetSource:
    path: str                       # Temporary local file, owned by one request
    mime_type: str                  # e.g., "video/mp4", "application/pdf"
    display_name: str               # Original filename from the upload


SourceDescriptor = Union[UrlSource, UploadedAssetSource]


# 2. Remote asset tracking
class AssetState(str, Enum):
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RemoteAssetHandle:
    remote_id: str                  # e.g., "files/abc-123"
    uri: str                        # Passed verbatim to the generation service
    mime_type: str
    state: AssetState


# 3. What the extractor produces: text OR an asset reference, never both
@dataclass(frozen=True)
class ExtractedContent:
    text: Optional[str] = None
    asset_ref: Optional[RemoteAssetHandle] = None
    is_hint: bool = False           # True when text is an inference hint, not captions

    def __post_init__(self):
        if (self.text is None) == (self.asset_ref is None):
            raise ValueError("ExtractedContent needs exactly one of text or asset_ref")


# 4. The LangGraph execution context
class MindMapState(TypedDict, total=False):
    """
    Defines the data schema for the LangGraph execution context.
    """
    # --- Input ---
    source: SourceDescriptor

    # --- Intermediate ---
    # Populated by the extractor; replaced by the poller once an asset is ready.
    content: ExtractedContent
    raw_response: str               # Untouched model output

    # --- Output ---
    document: GraphDocument

    # --- Observability ---
    # Append-only trail of the stages that ran, for logs and debugging.
    stages: Annotated[List[str], operator.add]
