"""Request/response contracts for the HTTP generation API.

The server and any non-HTTP callers share these models and payload builders
so both surfaces report the same shapes.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from sliding_llama.chat.session import SessionStatus
from sliding_llama.generation.loop import GenerationResult


class RequestValidationError(ValueError):
    """Raised when a request payload is well-formed JSON but unusable."""


class GenerateRequest(BaseModel):
    """One generation request against the server's session.

    Attributes:
        text: User text, or ``continue``/``more`` to extend the last answer.
        max_new_tokens: Optional per-request token cap.
        stream: Stream fragments as Server-Sent Events when true.
    """

    model_config = ConfigDict(extra="ignore")

    text: str
    max_new_tokens: Optional[int] = Field(default=None, ge=1)
    stream: bool = False


def validate_generate_request(request: GenerateRequest) -> None:
    """Reject requests the generation loop cannot act on.

    Raises:
        RequestValidationError: If ``text`` is blank.
    """
    if not request.text.strip():
        raise RequestValidationError("Parameter 'text' must not be empty.")


def build_generate_response(*, result: GenerationResult) -> dict[str, Any]:
    """Build the non-stream generation payload.

    A scorer failure is reported in-band: ``finish_reason`` is
    ``scorer_error``, ``text`` holds whatever was generated before it, and
    ``error`` carries the message.
    """
    return {
        "object": "generation",
        "text": result.text,
        "finish_reason": result.stop_reason.value,
        "error": str(result.error) if result.error is not None else None,
        "usage": {
            "prompt_tokens": result.prompt_tokens,
            "completion_tokens": len(result.tokens),
            "history_tokens": result.history_length,
        },
    }


def build_generate_chunk(
    *,
    text: str,
    token: int | None,
    finish_reason: str | None,
    error: str | None = None,
) -> dict[str, Any]:
    """Build one streamed ``generation.chunk`` payload for SSE ``data:`` lines."""
    chunk: dict[str, Any] = {
        "object": "generation.chunk",
        "text": text,
        "token": token,
        "finish_reason": finish_reason,
    }
    if error is not None:
        chunk["error"] = error
    return chunk


def build_status_response(*, status: SessionStatus) -> dict[str, Any]:
    return {
        "object": "status",
        "history_length": status.history_length,
        "capacity": status.capacity,
        "sliding_window_active": status.sliding_window_active,
        "state": status.state,
    }


def build_health_response(*, session_ready: bool, capacity: int | None) -> dict[str, Any]:
    return {
        "object": "health",
        "status": "ok",
        "session_ready": session_ready,
        "capacity": capacity,
    }


def build_error_response(
    *,
    message: str,
    error_type: str = "invalid_request_error",
    param: str | None = None,
    code: str | None = None,
) -> dict[str, Any]:
    """Build an error payload with the ``error`` envelope.

    Args:
        message: Human-readable error message.
        error_type: Error type identifier.
        param: Optional request parameter associated with the error.
        code: Optional machine-readable code.
    """
    return {
        "error": {
            "message": message,
            "type": error_type,
            "param": param,
            "code": code,
        }
    }
