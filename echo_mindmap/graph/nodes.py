import asyncio
import logging
from typing import Any, Callable, Dict

from langchain_core.runnables import RunnableConfig

# Import State schema
from echo_mindmap.graph.state import (
    ExtractedContent,
    MindMapState,
    UploadedAssetSource,
    UrlSource,
)
from echo_mindmap.graph.document import sanitize_and_validate
from echo_mindmap.errors import PipelineError

# Import the services
from echo_mindmap.services import FileStoreService, SynthesisService, TranscriptService
from echo_mindmap.services.synthesis import MIND_MAP_PROMPT

# Configure Logger
logger = logging.getLogger("echo-mindmap")


def _service(config: RunnableConfig, key: str, factory: Callable[[], Any]) -> Any:
    """Service injected through config["configurable"], or a fresh default one."""
    configurable = (config or {}).get("configurable", {})
    service = configurable.get(key)
    return service if service is not None else factory()


# --- NODE 1: THE EXTRACTOR ---
async def extract_content_node(state: MindMapState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Turns a URL into caption text (or an inference hint). Uploads pass through
    untouched to the poller.
    """
    source = state["source"]

    if isinstance(source, UploadedAssetSource):
        logger.info(f"--- [Node: Extractor] Upload {source.display_name} -> asset submission ---")
        return {"stages": ["extractor"]}

    if not isinstance(source, UrlSource):
        raise TypeError(f"Unsupported source descriptor: {type(source).__name__}")

    logger.info(f"--- [Node: Extractor] YouTube URL: {source.value} ---")
    transcripts = _service(config, "transcripts", TranscriptService)
    content = await asyncio.to_thread(transcripts.extract_text, source.value)
    return {"content": content, "stages": ["extractor"]}


# --- NODE 2: THE POLLER ---
async def await_asset_node(state: MindMapState, config: RunnableConfig) -> Dict[str, Any]:
    """
    Uploads the local file and blocks this request until the remote store is done with it.
    """
    source = state["source"]
    file_store = _service(config, "file_store", FileStoreService)
    deadline = (config or {}).get("configurable", {}).get("deadline")

    logger.info(f"--- [Node: Poller] Submitting {source.display_name} ---")
    handle = await file_store.await_ready(
        source.path,
        source.mime_type,
        source.display_name,
        deadline=deadline,
    )
    return {"content": ExtractedContent(asset_ref=handle), "stages": ["poller"]}


# --- NODE 3: THE SYNTHESIZER ---
async def synthesize_node(state: MindMapState, config: RunnableConfig) -> Dict[str, Any]:
    content = state["content"]
    if content.asset_ref is not None:
        kind = "uploaded file"
    elif content.is_hint:
        kind = "inference hint (no captions)"
    else:
        kind = "captions"
    logger.info(f"--- [Node: Synthesizer] Calling Gemini with {kind} ---")
    synthesis = _service(config, "synthesis", SynthesisService)
    raw_response = await synthesis.synthesize(MIND_MAP_PROMPT, content)
    return {"raw_response": raw_response, "stages": ["synthesizer"]}


# --- NODE 4: THE PARSER ---
def parse_response_node(state: MindMapState) -> Dict[str, Any]:
    """
    Strips code fences from the model output and validates it as a graph document.
    """
    raw_response = state.get("raw_response", "")
    try:
        document = sanitize_and_validate(raw_response)
    except PipelineError as e:
        logger.error(f"Parser rejected model output: {e}")
        logger.error(f"Raw LLM Response: {raw_response[:2000]}")
        raise

    logger.info(f"--- [Node: Parser] {len(document.nodes)} nodes, {len(document.edges)} edges ---")
    return {"document": document, "stages": ["parser"]}


# --- ROUTING ---
def route_after_extraction(state: MindMapState) -> str:
    """Uploads need the poller; URLs already have their text."""
    if isinstance(state["source"], UploadedAssetSource):
        return "poller"
    return "synthesizer"
