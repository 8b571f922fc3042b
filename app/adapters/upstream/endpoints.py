"""Upstream endpoint descriptors.

Each forwarding route is one ``RelayEndpoint``: where the call goes, which
fields must be present, which defaults to fill, which fields may pass, and
how the relayed response's Content-Type is chosen. ``UpstreamRelay`` runs
them all through the same code path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping

import httpx

DEFAULT_CONTENT_TYPE = "application/json"

ContentTypeDeriver = Callable[[Mapping[str, Any], httpx.Response], str]


def upstream_content_type(payload: Mapping[str, Any], response: httpx.Response) -> str:
    """Relay whatever Content-Type the upstream sent."""
    return response.headers.get("content-type", DEFAULT_CONTENT_TYPE)


def audio_content_type(payload: Mapping[str, Any], response: httpx.Response) -> str:
    """Label successful speech output by the requested audio format.

    Failed calls carry the upstream's JSON error body, so they keep the
    upstream Content-Type.
    """
    if response.is_success:
        return f"audio/{payload['response_format']}"
    return upstream_content_type(payload, response)


@dataclass(frozen=True)
class RelayEndpoint:
    """Configuration of one forwarding capability.

    Attributes:
        name: Short name used in logs.
        upstream_path: Path appended to the upstream base URL.
        kind: ``json`` for JSON bodies, ``multipart`` for file uploads.
        required_fields: Fields that must be present and non-empty.
        defaults: Values filled in when the client omits a field.
        allowed_fields: When set, the forwarded body is narrowed to these.
        content_type: Chooses the Content-Type of the relayed response.
    """

    name: str
    upstream_path: str
    kind: Literal["json", "multipart"] = "json"
    required_fields: tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    allowed_fields: frozenset[str] | None = None
    content_type: ContentTypeDeriver = upstream_content_type


CHAT_COMPLETIONS = RelayEndpoint(
    name="chat",
    upstream_path="/chat/completions",
)

SPEECH = RelayEndpoint(
    name="speech",
    upstream_path="/audio/speech",
    required_fields=("input",),
    defaults={"model": "tts-1", "voice": "alloy", "response_format": "mp3"},
    allowed_fields=frozenset({"input", "model", "voice", "response_format"}),
    content_type=audio_content_type,
)

TRANSCRIPTION = RelayEndpoint(
    name="transcription",
    upstream_path="/audio/transcriptions",
    kind="multipart",
    required_fields=("file",),
    defaults={"model": "whisper-1"},
)
