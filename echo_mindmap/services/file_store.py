import os
import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from echo_mindmap.errors import AssetTimeoutError, ProcessingError, UploadError
from echo_mindmap.graph.state import AssetState, RemoteAssetHandle

logger = logging.getLogger("echo-file-store")

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com"

# Gemini file states; anything not listed is terminal failure
REMOTE_STATES = {
    "PROCESSING": AssetState.PROCESSING,
    "ACTIVE": AssetState.READY,
}


class FileStoreService:
    """
    Uploads local files to the Gemini Files API and waits until they are usable.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep=asyncio.sleep,
    ):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.base_url = (base_url or os.getenv("GEMINI_API_BASE", DEFAULT_API_BASE)).rstrip("/")
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else float(os.getenv("ASSET_POLL_INTERVAL_SECONDS", "2.0"))
        )
        self.max_attempts = (
            max_attempts if max_attempts is not None
            else int(os.getenv("ASSET_POLL_MAX_ATTEMPTS", "150"))
        )
        self.timeout = timeout if timeout is not None else float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))
        self.session = session or requests.Session()
        self._sleep = sleep

    def _to_handle(self, payload: Dict[str, Any], fallback_mime_type: str = "") -> RemoteAssetHandle:
        return RemoteAssetHandle(
            remote_id=payload.get("name", ""),
            uri=payload.get("uri", ""),
            mime_type=payload.get("mimeType") or fallback_mime_type,
            state=REMOTE_STATES.get(payload.get("state"), AssetState.FAILED),
        )

    def upload_file(self, path: str, mime_type: str, display_name: str) -> RemoteAssetHandle:
        """Sends a LOCAL FILE to the remote store using a resumable upload session."""
        logger.info(f"Uploading file {display_name} ({mime_type}) to Gemini...")
        params = {"key": self.api_key}

        try:
            size = os.path.getsize(path)
            start = self.session.post(
                f"{self.base_url}/upload/v1beta/files",
                params=params,
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
                json={"file": {"display_name": display_name}},
                timeout=self.timeout,
            )
            if start.status_code != 200:
                raise UploadError("Upload session rejected", {"status": start.status_code, "body": start.text})

            upload_url = start.headers.get("X-Goog-Upload-URL")
            if not upload_url:
                raise UploadError("Upload session returned no upload URL")

            # Stream the file in binary mode
            with open(path, "rb") as asset_file:
                response = self.session.post(
                    upload_url,
                    headers={
                        "Content-Length": str(size),
                        "X-Goog-Upload-Offset": "0",
                        "X-Goog-Upload-Command": "upload, finalize",
                    },
                    data=asset_file,
                    timeout=self.timeout,
                )
        except (requests.RequestException, OSError) as e:
            raise UploadError(f"Upload failed: {e}", {"display_name": display_name}) from e

        if response.status_code != 200:
            raise UploadError("Upload rejected", {"status": response.status_code, "body": response.text})

        try:
            payload = response.json().get("file", {})
        except ValueError as e:
            raise UploadError("Upload response was not JSON") from e

        handle = self._to_handle(payload, mime_type)
        if not handle.remote_id or not handle.uri:
            raise UploadError("Upload response carried no file reference")
        return handle

    def get_file(self, remote_id: str) -> RemoteAssetHandle:
        """Re-fetches the current state of an uploaded file."""
        try:
            response = self.session.get(
                f"{self.base_url}/v1beta/{remote_id}",
                params={"key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProcessingError(f"Status check failed: {e}", {"remote_id": remote_id}) from e

        if response.status_code != 200:
            raise ProcessingError("Status check rejected", {"remote_id": remote_id, "status": response.status_code})
        try:
            return self._to_handle(response.json())
        except ValueError as e:
            raise ProcessingError("Status response was not JSON", {"remote_id": remote_id}) from e

    async def await_ready(
        self,
        local_path: str,
        mime_type: str,
        display_name: str,
        deadline: Optional[float] = None,
    ) -> RemoteAssetHandle:
        """
        Uploads the file and polls until the remote store reports it ready.

        Only the current task sleeps between polls, so other requests keep
        being served. `deadline` is an absolute event-loop time.

        Raises:
            UploadError: the initial submission failed.
            ProcessingError: the store reported a failed state.
            AssetTimeoutError: still processing after max_attempts waits or past the deadline.
        """
        uploaded = await asyncio.to_thread(self.upload_file, local_path, mime_type, display_name)
        logger.info(f"Upload Success. Remote ID: {uploaded.remote_id}")

        loop = asyncio.get_running_loop()
        handle = await asyncio.to_thread(self.get_file, uploaded.remote_id)
        waits = 0
        while handle.state == AssetState.PROCESSING:
            if waits >= self.max_attempts:
                raise AssetTimeoutError(
                    "File still processing after polling limit",
                    {"remote_id": uploaded.remote_id, "attempts": waits},
                )
            if deadline is not None and loop.time() + self.poll_interval > deadline:
                raise AssetTimeoutError("File processing deadline passed", {"remote_id": uploaded.remote_id})

            logger.info(f"Status: {handle.state.value}... waiting {self.poll_interval}s")
            await self._sleep(self.poll_interval)
            waits += 1
            handle = await asyncio.to_thread(self.get_file, uploaded.remote_id)

        if handle.state != AssetState.READY:
            raise ProcessingError("File processing failed in Gemini", {"remote_id": uploaded.remote_id})

        logger.info(f"File {handle.remote_id} ready after {waits} waits")
        # Keep the upload's URI/mime if the status payload left them out
        return RemoteAssetHandle(
            remote_id=handle.remote_id or uploaded.remote_id,
            uri=handle.uri or uploaded.uri,
            mime_type=handle.mime_type or uploaded.mime_type,
            state=handle.state,
        )
