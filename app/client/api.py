"""Async HTTP client for the Callcoach API."""

import logging
from typing import Any

import httpx

from app.errors import ClientApiError
from app.services.recording import validate_audio

logger = logging.getLogger("callcoach")


class SalesCallClient:
    """Thin wrapper over the REST endpoints, authenticated with a bearer token.

    Usable as an async context manager::

        async with SalesCallClient("http://localhost:8000", token) as client:
            recordings = await client.list_recordings()
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "SalesCallClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        response = await self._http.request(method, url, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("error") if isinstance(body, dict) else None
            code = body.get("code") if isinstance(body, dict) else None
            logger.warning("%s %s failed with %d: %s", method, url, response.status_code, message)
            raise ClientApiError(response.status_code, message or response.text or "Request failed", code)
        return response.json()

    # --- Recordings ---
    async def upload_audio(self, data: bytes, filename: str, mime_type: str) -> dict:
        """Upload audio and return the created recording.

        Type and size are checked locally first, so an invalid file never
        reaches the network (InvalidFileType / FileTooLarge).
        """
        validate_audio(mime_type, len(data))
        body = await self._request("POST", "/api/v1/upload-audio", files={"audio": (filename, data, mime_type)})
        return body["recording"]

    async def list_recordings(self) -> list[dict]:
        body = await self._request("GET", "/api/v1/recordings")
        return body["items"]

    async def get_recording(self, recording_id: str) -> dict:
        return await self._request("GET", f"/api/v1/recordings/{recording_id}")

    async def rename_recording(self, recording_id: str, title: str) -> dict:
        return await self._request("PATCH", f"/api/v1/recordings/{recording_id}", json={"title": title})

    async def delete_recording(self, recording_id: str) -> None:
        await self._request("DELETE", f"/api/v1/recordings/{recording_id}")

    async def get_transcript(self, recording_id: str) -> dict:
        return await self._request("GET", f"/api/v1/recordings/{recording_id}/transcript")

    # --- Transcription / analysis ---
    async def trigger_transcription(self, recording_id: str) -> dict:
        return await self._request("POST", "/api/v1/transcribe-audio", json={"recordingId": recording_id})

    async def list_notes(self, recording_id: str) -> list[dict]:
        body = await self._request("GET", f"/api/v1/recordings/{recording_id}/notes")
        return body["items"]

    async def analyze(
        self,
        recording_id: str,
        question: str,
        use_cache: bool = False,
        api_key: str | None = None,
    ) -> dict:
        """Ask a coaching question.

        With ``use_cache`` the newest stored note for the same question is
        returned instead of running a new analysis.
        """
        if use_cache:
            for note in await self.list_notes(recording_id):
                if note["question"].strip() == question.strip():
                    return note["analysis"]

        payload = {"recordingId": recording_id, "question": question}
        if api_key is not None:
            payload["apiKey"] = api_key
        body = await self._request("POST", "/api/v1/analyze-conversation", json=payload)
        return body["analysis"]
