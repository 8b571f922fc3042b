"""Upstream adapter layer: reverse-proxy calls to the AI provider."""

from app.adapters.upstream.endpoints import (
    CHAT_COMPLETIONS,
    SPEECH,
    TRANSCRIPTION,
    RelayEndpoint,
)
from app.adapters.upstream.relay import UploadedAudio, UpstreamRelay, build_http_client

__all__ = [
    "CHAT_COMPLETIONS",
    "SPEECH",
    "TRANSCRIPTION",
    "RelayEndpoint",
    "UploadedAudio",
    "UpstreamRelay",
    "build_http_client",
]
