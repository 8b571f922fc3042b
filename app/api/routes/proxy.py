"""Forwarding routes.

Every route here is rate limited and delegates to the shared
``UpstreamRelay`` with its endpoint descriptor. Errors raised by the relay
are AppError subclasses and are rendered by the global exception handlers.
"""

from fastapi import APIRouter, Depends, Request, Response
from starlette.datastructures import UploadFile

from app.adapters.upstream import (
    CHAT_COMPLETIONS,
    SPEECH,
    TRANSCRIPTION,
    UploadedAudio,
    UpstreamRelay,
)
from app.core.body_limits import read_json_object, read_upload_limited
from app.core.config import ServerSettings
from app.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Proxy"], dependencies=[Depends(enforce_rate_limit)])


def get_relay(request: Request) -> UpstreamRelay:
    return request.app.state.relay


def get_server_settings(request: Request) -> ServerSettings:
    return request.app.state.settings.server


@router.post("/solve")
async def solve(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    server: ServerSettings = Depends(get_server_settings),
) -> Response:
    """Relay a chat-completion request.

    The JSON body is opaque to the proxy: it is forwarded as received and
    the upstream status and body come back verbatim, error shapes included.
    """
    payload, raw = await read_json_object(request, server.max_json_body_bytes)
    return await relay.relay_json(CHAT_COMPLETIONS, payload, raw_body=raw)


@router.post("/audio/speech")
async def speech(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    server: ServerSettings = Depends(get_server_settings),
) -> Response:
    """Synthesize speech from ``input`` text.

    Only ``input``, ``model``, ``voice`` and ``response_format`` are
    forwarded; omitted options default to tts-1 / alloy / mp3. The audio is
    returned with Content-Type ``audio/{response_format}``.
    """
    payload, _ = await read_json_object(request, server.max_json_body_bytes)
    return await relay.relay_json(SPEECH, payload)


@router.post("/audio/transcriptions")
async def transcriptions(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    server: ServerSettings = Depends(get_server_settings),
) -> Response:
    """Transcribe an uploaded audio file.

    Expects multipart/form-data with a ``file`` part; any other text fields
    (``model``, ``language``, ``prompt``...) are forwarded alongside it, and
    repeated fields keep every value.
    """
    audio: UploadedAudio | None = None
    fields: list[tuple[str, str]] = []

    async with request.form() as form:
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                if key == "file" and audio is None:
                    content = await read_upload_limited(value, server.max_upload_bytes)
                    audio = UploadedAudio(
                        filename=value.filename or "audio",
                        content=content,
                        content_type=value.content_type or "application/octet-stream",
                    )
                continue
            fields.append((key, value))

    return await relay.relay_multipart(TRANSCRIPTION, fields, audio)
