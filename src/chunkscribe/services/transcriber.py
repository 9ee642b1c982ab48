from __future__ import annotations

import json
from typing import Any, Protocol

import httpx

from chunkscribe.errors import TranscriptionError


class Transcriber(Protocol):
    def transcribe(self, audio: bytes) -> str:
        """Return the transcript text for one audio unit."""


def _form_bool(value: bool) -> str:
    return "true" if value else "false"


class ElevenLabsTranscriber:
    """Single-attempt speech-to-text client; failures surface as TranscriptionError."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "scribe_v2",
        language_code: str | None = "eng",
        diarize: bool = True,
        tag_audio_events: bool = True,
        timeout_seconds: float = 600.0,
        base_url: str = "https://api.elevenlabs.io/v1",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        if not model:
            raise ValueError("model is required")
        self.api_key = api_key
        self.model = model
        self.language_code = language_code
        self.diarize = diarize
        self.tag_audio_events = tag_audio_events
        self.timeout_seconds = timeout_seconds
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise TranscriptionError("Audio unit is empty")

        headers = {"xi-api-key": self.api_key}
        files = {"file": ("chunk.mp3", audio, "audio/mpeg")}
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(
                    f"{self.base_url}/speech-to-text",
                    headers=headers,
                    data=self._form_fields(),
                    files=files,
                )
        except httpx.TimeoutException as exc:
            raise TranscriptionError("timeout") from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"ElevenLabs request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TranscriptionError(
                f"ElevenLabs speech-to-text failed ({response.status_code}): {response.text[:400]}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError("ElevenLabs response was not valid JSON") from exc
        return self._extract_text(payload)

    def _form_fields(self) -> dict[str, str]:
        fields = {
            "model_id": self.model,
            "diarize": _form_bool(self.diarize),
            "tag_audio_events": _form_bool(self.tag_audio_events),
        }
        if self.language_code:
            fields["language_code"] = self.language_code
        return fields

    @staticmethod
    def _extract_text(payload: Any) -> str:
        if isinstance(payload, str):
            return payload.strip()
        if isinstance(payload, dict) and "text" in payload:
            return str(payload.get("text") or "").strip()
        return json.dumps(payload)


__all__ = ["ElevenLabsTranscriber", "Transcriber"]
