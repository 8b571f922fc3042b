"""Request body reading with size ceilings.

JSON bodies and audio uploads are read in chunks so an oversized body is
rejected as soon as it crosses the limit rather than after it has been fully
buffered.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Request, UploadFile

from app.core.errors import PayloadTooLargeAppError, ValidationAppError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def payload_too_large_error(
    max_bytes: int, actual_bytes: int | None = None
) -> PayloadTooLargeAppError:
    details: dict[str, Any] = {"max_bytes": max_bytes}
    if actual_bytes is not None:
        details["actual_bytes"] = actual_bytes
    return PayloadTooLargeAppError(
        code="payload_too_large",
        message=f"Request body too large. Maximum size: {max_bytes} bytes",
        details=details,  # type: ignore[arg-type]
    )


async def read_body_limited(request: Request, max_bytes: int) -> bytes:
    """Read the raw request body, enforcing ``max_bytes``.

    Raises:
        PayloadTooLargeAppError: If the body exceeds the limit.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        logger.warning(
            "body_limit.rejected_by_header",
            extra={"content_length": int(declared), "max_bytes": max_bytes},
        )
        raise payload_too_large_error(max_bytes, int(declared))

    size = 0
    chunks: list[bytes] = []
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            logger.warning(
                "body_limit.rejected_by_stream",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise payload_too_large_error(max_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


async def read_json_object(request: Request, max_bytes: int) -> tuple[dict[str, Any], bytes]:
    """Read and parse a JSON object body.

    Returns:
        Tuple of (parsed object, raw bytes as received).

    Raises:
        PayloadTooLargeAppError: If the body exceeds the limit.
        ValidationAppError: If the body is not a JSON object.
    """
    raw = await read_body_limited(request, max_bytes)
    try:
        payload = json.loads(raw) if raw else None
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationAppError(
            code="invalid_json",
            message="Request body must be valid JSON.",
            details={"reason": str(exc)},
        ) from exc

    if not isinstance(payload, dict):
        raise ValidationAppError(
            code="invalid_json",
            message="Request body must be a JSON object.",
        )
    return payload, raw


async def read_upload_limited(file: UploadFile, max_bytes: int) -> bytes:
    """Read an uploaded file in chunks enforcing the max size limit.

    Raises:
        PayloadTooLargeAppError: If the file exceeds the limit.
    """
    file_size = getattr(file, "size", None)
    if file_size is not None and file_size > max_bytes:
        logger.warning(
            "upload_limit.rejected_by_header",
            extra={"file_size": file_size, "max_bytes": max_bytes},
        )
        raise payload_too_large_error(max_bytes, file_size)

    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            logger.warning(
                "upload_limit.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise payload_too_large_error(max_bytes)
        chunks.append(chunk)

    return b"".join(chunks)
