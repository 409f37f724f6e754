"""Tests for Gemini file upload and the readiness poller."""
import asyncio

import pytest
import requests

from echo_mindmap.errors import AssetTimeoutError, ProcessingError, UploadError
from echo_mindmap.graph.state import AssetState
from echo_mindmap.services.file_store import FileStoreService
from tests.conftest import FILE_URI, ScriptedFileStore


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}
        self.text = text

    def json(self):
        return self._payload


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for post/get."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "lecture.mp4"
    path.write_bytes(b"\x00\x01fake-video")
    return path


def remote_file(state="PROCESSING"):
    return {"name": "files/abc", "uri": FILE_URI, "mimeType": "video/mp4", "state": state}


class TestUpload:
    def test_resumable_upload(self, video_file):
        session = FakeSession([
            FakeResponse(headers={"X-Goog-Upload-URL": "https://upload.example/session"}),
            FakeResponse(payload={"file": remote_file()}),
        ])
        store = FileStoreService(api_key="k", base_url="https://api.example/", session=session)

        handle = store.upload_file(str(video_file), "video/mp4", "lecture.mp4")

        assert handle.remote_id == "files/abc"
        assert handle.uri == FILE_URI
        assert handle.state == AssetState.PROCESSING

        start_method, start_url, start_kwargs = session.calls[0]
        assert start_url == "https://api.example/upload/v1beta/files"
        assert start_kwargs["params"] == {"key": "k"}
        assert start_kwargs["headers"]["X-Goog-Upload-Command"] == "start"
        assert start_kwargs["headers"]["X-Goog-Upload-Header-Content-Length"] == str(video_file.stat().st_size)
        assert start_kwargs["json"] == {"file": {"display_name": "lecture.mp4"}}

        _, finalize_url, finalize_kwargs = session.calls[1]
        assert finalize_url == "https://upload.example/session"
        assert finalize_kwargs["headers"]["X-Goog-Upload-Command"] == "upload, finalize"

    def test_rejected_session_raises_upload_error(self, video_file):
        session = FakeSession([FakeResponse(status_code=403, text="API key invalid")])
        store = FileStoreService(api_key="k", session=session)

        with pytest.raises(UploadError) as exc_info:
            store.upload_file(str(video_file), "video/mp4", "lecture.mp4")
        assert exc_info.value.details["status"] == 403

    def test_missing_upload_url_raises_upload_error(self, video_file):
        store = FileStoreService(api_key="k", session=FakeSession([FakeResponse()]))
        with pytest.raises(UploadError):
            store.upload_file(str(video_file), "video/mp4", "lecture.mp4")

    def test_network_error_raises_upload_error(self, video_file):
        session = FakeSession([requests.ConnectionError("connection reset")])
        store = FileStoreService(api_key="k", session=session)
        with pytest.raises(UploadError):
            store.upload_file(str(video_file), "video/mp4", "lecture.mp4")

    def test_missing_local_file_raises_upload_error(self, tmp_path):
        store = FileStoreService(api_key="k", session=FakeSession([]))
        with pytest.raises(UploadError):
            store.upload_file(str(tmp_path / "gone.mp4"), "video/mp4", "gone.mp4")


class TestGetFile:
    @pytest.mark.parametrize("remote_state, state", [
        ("PROCESSING", AssetState.PROCESSING),
        ("ACTIVE", AssetState.READY),
        ("FAILED", AssetState.FAILED),
        ("STATE_UNSPECIFIED", AssetState.FAILED),
    ])
    def test_state_mapping(self, remote_state, state):
        session = FakeSession([FakeResponse(payload=remote_file(remote_state))])
        store = FileStoreService(api_key="k", base_url="https://api.example", session=session)

        handle = store.get_file("files/abc")

        assert handle.state == state
        assert session.calls[0][1] == "https://api.example/v1beta/files/abc"

    def test_error_status_raises_processing_error(self):
        store = FileStoreService(api_key="k", session=FakeSession([FakeResponse(status_code=500)]))
        with pytest.raises(ProcessingError):
            store.get_file("files/abc")


class TestAwaitReady:
    @pytest.mark.asyncio
    async def test_waits_once_per_processing_poll(self, video_file):
        store = ScriptedFileStore(states=[AssetState.PROCESSING, AssetState.PROCESSING, AssetState.READY])

        handle = await store.await_ready(str(video_file), "video/mp4", "lecture.mp4")

        assert store.sleeps == [2.0, 2.0]
        assert handle.state == AssetState.READY
        assert handle.uri == FILE_URI
        # status payload had no mime type; the upload's is kept
        assert handle.mime_type == "video/mp4"

    @pytest.mark.asyncio
    async def test_ready_immediately_never_sleeps(self, video_file):
        store = ScriptedFileStore(states=[AssetState.READY])
        await store.await_ready(str(video_file), "video/mp4", "lecture.mp4")
        assert store.sleeps == []

    @pytest.mark.asyncio
    async def test_failed_state_raises_processing_error(self, video_file):
        store = ScriptedFileStore(states=[AssetState.PROCESSING, AssetState.FAILED])
        with pytest.raises(ProcessingError) as exc_info:
            await store.await_ready(str(video_file), "video/mp4", "lecture.mp4")
        assert not isinstance(exc_info.value, AssetTimeoutError)
        assert store.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_polling_ceiling_raises_timeout(self, video_file):
        store = ScriptedFileStore(states=[AssetState.PROCESSING], max_attempts=3)
        with pytest.raises(AssetTimeoutError) as exc_info:
            await store.await_ready(str(video_file), "video/mp4", "lecture.mp4")
        assert store.sleeps == [2.0, 2.0, 2.0]
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_deadline_raises_timeout(self, video_file):
        store = ScriptedFileStore(states=[AssetState.PROCESSING])
        deadline = asyncio.get_running_loop().time() + 1.0  # shorter than one interval
        with pytest.raises(AssetTimeoutError):
            await store.await_ready(str(video_file), "video/mp4", "lecture.mp4", deadline=deadline)
        assert store.sleeps == []

    @pytest.mark.asyncio
    async def test_upload_error_propagates(self, video_file):
        store = ScriptedFileStore(upload_error=UploadError("Upload rejected"))
        with pytest.raises(UploadError):
            await store.await_ready(str(video_file), "video/mp4", "lecture.mp4")
        assert store.polls == 0

    def test_poll_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("ASSET_POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("ASSET_POLL_MAX_ATTEMPTS", "7")
        store = FileStoreService(api_key="k")
        assert store.poll_interval == 0.5
        assert store.max_attempts == 7
