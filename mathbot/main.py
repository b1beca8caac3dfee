import time

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .agents import TutorAgent
from .config import APP_NAME, APP_VERSION
from .di import lifespan, tutor_agent
from .errors import InvalidRequestError, RelayError
from .models import ChatRequest, ChatResponse, Choice, ErrorResponse, ResponseMessage

app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)


# ── Error envelopes ─────────────────────────────────────
def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return error_response(400, InvalidRequestError.default_message)


# ── Middleware ──────────────────────────────────────────
@app.middleware("http")
async def global_exception_handler(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled exception on {} {}", request.method, request.url.path)
        return error_response(500, RelayError.default_message)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "{} {} -> {} in {:.1f}ms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


# ── Routes ──────────────────────────────────────────────
async def read_chat_request(request: Request) -> ChatRequest:
    try:
        return ChatRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        logger.warning("Rejected chat request body: {}", type(exc).__name__)
        raise InvalidRequestError() from exc


@app.post(
    "/api/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat_endpoint(
    request: Request,
    agent: TutorAgent = Depends(tutor_agent),
):
    # The body is read only after the credential dependency has been resolved.
    req = await read_chat_request(request)
    result = await agent.reply(req.messages, req.context)
    return ChatResponse(
        choices=[
            Choice(
                message=ResponseMessage(content=result.reply.to_wire()),
                index=0,
                finish_reason=result.finish_reason,
            )
        ]
    )


@app.get("/api/health", tags=["health"])
async def health():
    return {"status": "ok", "app": APP_NAME, "version": APP_VERSION}


"""
curl -X POST http://localhost:8000/api/chat \
  -H "Content-Type: application/json" \
  -d '{"messages": [{"role": "user", "content": "8 fois 7"}]}'
"""


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("mathbot.main:app", host="0.0.0.0", port=8000)
