from echo_mindmap.services.file_store import FileStoreService
from echo_mindmap.services.synthesis import SynthesisService
from echo_mindmap.services.transcripts import TranscriptService

__all__ = ["FileStoreService", "SynthesisService", "TranscriptService"]
