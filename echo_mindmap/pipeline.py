"""
Per-request entry point: runs the mind map graph for one source and owns the
lifetime of the request's temporary upload file.
"""

import os
import uuid
import shutil
import asyncio
import logging
import mimetypes
from typing import Any, BinaryIO, Dict, Optional

from echo_mindmap.errors import UploadError
from echo_mindmap.graph.document import GraphDocument
from echo_mindmap.graph.state import SourceDescriptor, UploadedAssetSource
from echo_mindmap.graph.workflow import app as mindmap_graph

logger = logging.getLogger("echo-mindmap")


def _copy_to_disk(stream: BinaryIO, path: str) -> None:
    with open(path, "wb") as out:
        shutil.copyfileobj(stream, out)


def discard_upload(path: str) -> None:
    """Deletes a temporary upload; a file that is already gone is not an error."""
    try:
        os.remove(path)
        logger.info(f"Removed temporary upload {path}")
    except FileNotFoundError:
        logger.warning(f"Temporary upload {path} was already gone")


async def save_upload(
    stream: BinaryIO,
    filename: Optional[str],
    content_type: Optional[str],
    upload_dir: str,
    default_mime_type: str = "application/octet-stream",
) -> UploadedAssetSource:
    """
    Writes an incoming upload to a uniquely named file in upload_dir.

    A partially written file is removed before UploadError is raised.
    """
    path = os.path.join(upload_dir, uuid.uuid4().hex)
    display_name = filename or os.path.basename(path)
    mime_type = content_type or mimetypes.guess_type(display_name)[0] or default_mime_type
    # Browsers often send this for files they do not recognise
    if mime_type == "application/octet-stream":
        mime_type = mimetypes.guess_type(display_name)[0] or default_mime_type

    try:
        os.makedirs(upload_dir, exist_ok=True)
        await asyncio.to_thread(_copy_to_disk, stream, path)
    except OSError as e:
        if os.path.exists(path):
            discard_upload(path)
        raise UploadError(f"Could not store upload: {e}", {"filename": display_name}) from e

    return UploadedAssetSource(path=path, mime_type=mime_type, display_name=display_name)


async def analyze(
    source: SourceDescriptor,
    services: Optional[Dict[str, Any]] = None,
) -> GraphDocument:
    """
    Runs extractor -> [poller] -> synthesizer -> parser for one source.

    `services` may carry "transcripts", "file_store", "synthesis" and a
    "deadline" for the poller; anything missing is built from the environment.
    Stage errors propagate unchanged. An uploaded source's temporary file is
    deleted on every exit path.
    """
    initial_inputs = {"source": source, "stages": []}
    try:
        final_state = await mindmap_graph.ainvoke(
            initial_inputs,
            config={"configurable": dict(services or {})},
        )
        logger.info(f"Pipeline stages: {' -> '.join(final_state.get('stages', []))}")
        return final_state["document"]
    finally:
        if isinstance(source, UploadedAssetSource):
            discard_upload(source.path)
