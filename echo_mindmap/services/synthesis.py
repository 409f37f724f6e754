import os
import asyncio
import logging
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from echo_mindmap.errors import InferenceError
from echo_mindmap.graph.state import ExtractedContent

logger = logging.getLogger("echo-synthesis")


# Fixed instruction sent ahead of every piece of content
MIND_MAP_PROMPT = """
Generate a COMPLETE educational mind map of the material below.

Rules:
- Always produce a mind map; never reply that there is no transcript, no content, or an error
- If the material is thin or missing, infer the topic and build the map from what you know
- Output ONLY a single valid JSON object
- No markdown, no code fences, no text before or after the JSON
- Every node id must be unique and every edge must connect two existing node ids

Format:
{
  "nodes": [
    { "id": "1", "type": "input", "data": { "label": "Main Topic" }, "position": { "x": 250, "y": 0 } },
    { "id": "2", "data": { "label": "Subtopic" }, "position": { "x": 100, "y": 150 } }
  ],
  "edges": [
    { "id": "e1-2", "source": "1", "target": "2", "animated": true }
  ]
}
"""


def build_message_parts(template: str, content: ExtractedContent) -> List[Dict[str, Any]]:
    """[template, text] or [template, file reference]; never both kinds of content."""
    parts = [{"type": "text", "text": template}]
    if content.asset_ref is not None:
        parts.append({
            "type": "media",
            "file_uri": content.asset_ref.uri,
            "mime_type": content.asset_ref.mime_type,
        })
    else:
        parts.append({"type": "text", "text": content.text})
    return parts


def _response_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    # Multi-part replies come back as a list of strings / text blocks
    texts = []
    for part in content or []:
        if isinstance(part, str):
            texts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            texts.append(part.get("text", ""))
    return "".join(texts)


class SynthesisService:
    def __init__(self, llm=None, timeout: Optional[float] = None):
        if llm is None:
            llm = ChatGoogleGenerativeAI(
                model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
                google_api_key=os.getenv("GEMINI_API_KEY"),
                temperature=float(os.getenv("SYNTHESIS_TEMPERATURE", "0.2")),
            )
        self.llm = llm
        if timeout is None:
            timeout = float(os.getenv("SYNTHESIS_TIMEOUT_SECONDS", "120"))
        # 0 means wait as long as the service takes
        self.timeout = timeout or None

    async def synthesize(self, instruction_template: str, content: ExtractedContent) -> str:
        """
        Sends the instruction plus content to the model and returns its raw text.

        Raises:
            InferenceError: transport or service failure, or the call timed out.
        """
        message = HumanMessage(content=build_message_parts(instruction_template, content))
        kind = "file" if content.asset_ref is not None else "text"
        logger.info(f"Invoking model with {kind} content")

        try:
            response = await asyncio.wait_for(self.llm.ainvoke([message]), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise InferenceError("Model call timed out", {"timeout": self.timeout}) from e
        except Exception as e:
            raise InferenceError(f"Model call failed: {e}", {"content": kind}) from e

        return _response_text(response.content)
