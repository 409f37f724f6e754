"""
Pytest configuration and fixtures for the Echo mind map engine.

Every external collaborator (captions, Gemini Files API, the chat model) is
replaced with an in-memory fake so no test touches the network.
"""
import os
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

# Keep real credentials and telemetry out of the test run
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.pop("APPLICATIONINSIGHTS_CONNECTION_STRING", None)

from echo_mindmap.graph.state import AssetState, RemoteAssetHandle
from echo_mindmap.services import FileStoreService, SynthesisService, TranscriptService


BOILING_POINT_GRAPH = (
    '{"nodes":[{"id":"1","data":{"label":"Boiling Point"},"position":{"x":0,"y":0}}],"edges":[]}'
)

FILE_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc"


class FakeSnippet:
    def __init__(self, text: str):
        self.text = text


class FakeTranscriptFetcher:
    """Stands in for the caption service: returns fixed segments for any URL, or raises."""

    def __init__(self, segments: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.segments = segments or []
        self.error = error
        self.requested: List[str] = []

    def fetch_transcript(self, url: str):
        self.requested.append(url)
        if self.error is not None:
            raise self.error
        return list(self.segments)


class FakeChatModel:
    """Stands in for ChatGoogleGenerativeAI.ainvoke."""

    def __init__(self, reply: Any = BOILING_POINT_GRAPH, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[list] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.reply)


class ScriptedFileStore(FileStoreService):
    """FileStoreService whose remote side replays a list of states."""

    def __init__(self, states=None, upload_error: Optional[Exception] = None, on_sleep=None, **kwargs):
        self.sleeps: List[float] = []
        self.uploads: List[tuple] = []
        self.polls = 0
        self.states = list(states or [AssetState.READY])
        self.upload_error = upload_error

        async def record_sleep(seconds):
            self.sleeps.append(seconds)
            if on_sleep is not None:
                await on_sleep(seconds)

        kwargs.setdefault("poll_interval", 2.0)
        kwargs.setdefault("max_attempts", 10)
        super().__init__(api_key="test-key", sleep=record_sleep, **kwargs)

    def upload_file(self, path, mime_type, display_name):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((path, mime_type, display_name))
        return RemoteAssetHandle("files/abc", FILE_URI, mime_type, AssetState.PROCESSING)

    def get_file(self, remote_id):
        state = self.states[min(self.polls, len(self.states) - 1)]
        self.polls += 1
        return RemoteAssetHandle(remote_id, FILE_URI, "", state)


@pytest.fixture
def transcript_fetcher():
    return FakeTranscriptFetcher(segments=["Water boils at 100C"])


@pytest.fixture
def chat_model():
    return FakeChatModel()


@pytest.fixture
def file_store():
    return ScriptedFileStore(states=[AssetState.PROCESSING, AssetState.READY])


@pytest.fixture
def services(transcript_fetcher, chat_model, file_store) -> Dict[str, Any]:
    return {
        "transcripts": TranscriptService(fetcher=transcript_fetcher, metadata_lookup=False),
        "synthesis": SynthesisService(llm=chat_model, timeout=5),
        "file_store": file_store,
    }


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def client(services, upload_dir):
    """TestClient with fake services and a throwaway upload directory."""
    from echo_mindmap.api.server import app, get_pipeline_services, get_upload_dir

    app.dependency_overrides[get_pipeline_services] = lambda: services
    app.dependency_overrides[get_upload_dir] = lambda: str(upload_dir)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
