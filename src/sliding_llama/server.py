"""FastAPI server exposing one chat session over HTTP."""
from __future__ import annotations

import argparse
import itertools
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError as FastAPIRequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from sliding_llama.api_contract import (
    GenerateRequest,
    RequestValidationError,
    build_error_response,
    build_generate_chunk,
    build_generate_response,
    build_health_response,
    build_status_response,
    validate_generate_request,
)
from sliding_llama.chat.session import ChatSession
from sliding_llama.cli.chat import create_session
from sliding_llama.cli.cli_args import build_parser, config_overrides
from sliding_llama.config import load_engine_config
from sliding_llama.errors import SessionBusyError
from sliding_llama.generation.loop import GenerationChunk
from sliding_llama.logging import configure_debug_file_logging, configure_logging, get_logger

logger = get_logger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _invalid_request(message: str, *, param: str | None = None) -> JSONResponse:
    """Return a standardized 400 invalid_request_error payload."""
    return JSONResponse(
        status_code=400,
        content=build_error_response(
            message=message,
            error_type="invalid_request_error",
            param=param,
        ),
    )


def _busy(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content=build_error_response(
            message=message,
            error_type="session_busy_error",
            code="session_busy",
        ),
    )


def _sse_events(session: ChatSession, chunks: Iterator[GenerationChunk]) -> Iterator[str]:
    for chunk in chunks:
        finish = chunk.finish_reason.value if chunk.finish_reason is not None else None
        error = None
        if finish is not None and session.loop.last_error is not None:
            error = str(session.loop.last_error)
        payload = build_generate_chunk(
            text=chunk.text,
            token=chunk.token,
            finish_reason=finish,
            error=error,
        )
        yield f"data: {json.dumps(payload)}\n\n"
    yield "data: [DONE]\n\n"


def create_app(session: ChatSession) -> FastAPI:
    """Build the API around an already-initialized session.

    Args:
        session: Session every request is served from. Requests are not
            queued: a request arriving while another is generating gets 409.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(title="Sliding LLaMA API")
    app.state.session = session

    @app.exception_handler(FastAPIRequestValidationError)
    async def fastapi_validation_error_handler(
        _request: Any, exc: FastAPIRequestValidationError
    ) -> JSONResponse:
        """Normalize FastAPI 422 request validation failures into 400 errors."""
        errors = exc.errors()
        if not errors:
            return _invalid_request("Invalid request payload.")
        first = errors[0]
        message = str(first.get("msg") or "Invalid request payload.")
        loc = first.get("loc")
        param: str | None = None
        if isinstance(loc, (list, tuple)) and loc:
            parts = [str(part) for part in loc if str(part) != "body"]
            if parts:
                param = ".".join(parts)
        return _invalid_request(message, param=param)

    @app.get("/v1/health")
    def health() -> dict[str, Any]:
        return build_health_response(session_ready=True, capacity=session.capacity)

    @app.get("/v1/status")
    def status() -> dict[str, Any]:
        return build_status_response(status=session.status())

    @app.post("/v1/reset")
    def reset() -> Any:
        try:
            session.reset()
        except SessionBusyError as e:
            return _busy(str(e))
        return build_status_response(status=session.status())

    @app.post("/v1/generate")
    def generate(request: GenerateRequest) -> Any:
        try:
            validate_generate_request(request)
        except RequestValidationError as e:
            return _invalid_request(str(e), param="text")

        if request.stream:
            chunks = session.stream(request.text, max_new_tokens=request.max_new_tokens)
            try:
                # Pull the first chunk now so a busy session is a 409, not a broken stream.
                first = next(chunks)
            except SessionBusyError as e:
                return _busy(str(e))
            return StreamingResponse(
                _sse_events(session, itertools.chain([first], chunks)),
                media_type="text/event-stream",
            )

        try:
            result = session.submit(request.text, max_new_tokens=request.max_new_tokens)
        except SessionBusyError as e:
            return _busy(str(e))
        if result.failed:
            logger.warning("Returning partial output after scorer failure: %s", result.error)
        return build_generate_response(result=result)

    return app


def build_server_parser() -> argparse.ArgumentParser:
    parser = build_parser()
    parser.description = "Serve a sliding-window chat session over HTTP."
    parser.add_argument("--host", type=str, default=DEFAULT_HOST, help="Bind address.")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Bind port.")
    return parser


def main() -> None:
    args = build_server_parser().parse_args()
    configure_logging(args.log_level)
    if args.debug:
        configure_debug_file_logging(Path(args.debug_file))
    config = load_engine_config(args.config, overrides=config_overrides(args))
    session = create_session(args, config)
    logger.info("Serving on %s:%d (capacity %d)", args.host, args.port, session.capacity)
    try:
        uvicorn.run(create_app(session), host=args.host, port=args.port)
    finally:
        session.close()


if __name__ == "__main__":
    main()
