"""HTTP API（FastAPI）."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..container import Container
from ..errors.database import StoreError, StoreErrorKind, get_database_error_message
from ..errors.request import InvalidRequestError, PersistenceError, SessionNotFoundError
from .schemas import (
    ChatRequest,
    CompareRequest,
    CreateSessionRequest,
    MessagePageResponse,
    RenameSessionRequest,
    SessionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_container(request: Request) -> Container:
    return request.app.state.container


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


@router.post("/chat")
async def chat(
    body: ChatRequest, container: Container = Depends(get_container)
) -> ORJSONResponse:
    """プロンプトを送信（sessionId 未指定または "ephemeral" なら一時セッション）."""
    reply = await container.chat_service.submit(
        body.session_id, body.prompt, body.models
    )
    return ORJSONResponse(reply.results_dict())


@router.get("/sessions")
async def list_sessions(
    container: Container = Depends(get_container),
) -> ORJSONResponse:
    sessions = await container.gateway.list_sessions()
    return ORJSONResponse([_dump(SessionResponse.from_session(s)) for s in sessions])


@router.post("/sessions")
async def create_session(
    body: CreateSessionRequest, container: Container = Depends(get_container)
) -> ORJSONResponse:
    session = await container.chat_service.create_session(
        body.model_type, body.title, first_prompt=body.first_prompt
    )
    return ORJSONResponse(_dump(SessionResponse.from_session(session)))


@router.patch("/sessions")
async def rename_session(
    body: RenameSessionRequest,
    session_id: str | None = Query(default=None, alias="id"),
    container: Container = Depends(get_container),
) -> ORJSONResponse:
    if not session_id:
        raise InvalidRequestError("Session ID is required")
    if not body.title or not body.title.strip():
        raise InvalidRequestError("New title is required")
    session = await container.gateway.rename_session(session_id, body.title.strip())
    return ORJSONResponse(_dump(SessionResponse.from_session(session)))


@router.delete("/sessions")
async def delete_session(
    session_id: str | None = Query(default=None, alias="id"),
    container: Container = Depends(get_container),
) -> ORJSONResponse:
    if not session_id:
        raise InvalidRequestError("Session ID is required")
    await container.gateway.delete_session(session_id)
    return ORJSONResponse({"success": True})


@router.get("/messages")
async def list_messages(
    session_id: str | None = Query(default=None, alias="sessionId"),
    page: int = Query(default=0),
    page_size: int | None = Query(default=None, alias="pageSize"),
    container: Container = Depends(get_container),
) -> ORJSONResponse:
    """メッセージをページ単位で取得（ページ0が最新、各ページ内は古い順）."""
    if not session_id:
        raise InvalidRequestError("Session ID is required")
    if page < 0:
        raise InvalidRequestError("page must be 0 or greater")
    if page_size is not None and page_size < 1:
        raise InvalidRequestError("pageSize must be 1 or greater")
    result = await container.gateway.list_messages(session_id, page, page_size)
    return ORJSONResponse(_dump(MessagePageResponse.from_page(result)))


@router.get("/compare/prompts")
async def list_comparison_prompts(
    container: Container = Depends(get_container),
) -> ORJSONResponse:
    prompts = container.comparison_service.list_prompts()
    return ORJSONResponse([p.to_dict() for p in prompts])


@router.post("/compare")
async def compare(
    body: CompareRequest, container: Container = Depends(get_container)
) -> ORJSONResponse:
    service = container.comparison_service
    prompt = service.resolve_prompt(prompt_id=body.prompt_id, prompt=body.prompt)
    result = await service.compare(prompt)
    return ORJSONResponse(result.to_dict())


def _error(status_code: int, message: str, **extra) -> ORJSONResponse:
    return ORJSONResponse({"error": message, **extra}, status_code=status_code)


def register_exception_handlers(app: FastAPI) -> None:
    """ドメイン例外を HTTP ステータスに変換（スタックトレースは返さない）."""

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request",
            details=jsonable_encoder(exc.errors()),
        )

    @app.exception_handler(InvalidRequestError)
    async def handle_invalid_request(
        request: Request, exc: InvalidRequestError
    ) -> ORJSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(SessionNotFoundError)
    async def handle_session_not_found(
        request: Request, exc: SessionNotFoundError
    ) -> ORJSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Session not found")

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(
        request: Request, exc: PersistenceError
    ) -> ORJSONResponse:
        logger.error(f"Persistence error on {request.url.path}: {exc}")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to save the conversation",
            results=exc.results,
        )

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError) -> ORJSONResponse:
        if exc.kind == StoreErrorKind.NOT_FOUND:
            return _error(status.HTTP_404_NOT_FOUND, "Session not found")
        logger.error(f"Store error on {request.url.path}: {exc}")
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, get_database_error_message(exc.kind)
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        logger.exception(f"Unexpected error on {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app(container: Container) -> FastAPI:
    """FastAPI アプリケーションを作成.

    Args:
        container: 組み立て済みのコンポーネント

    Returns:
        FastAPI アプリケーション
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await container.startup()
        logger.info("Application started")
        try:
            yield
        finally:
            await container.shutdown()
            logger.info("Application stopped")

    app = FastAPI(
        title="dualmind",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.container = container
    app.include_router(router)
    register_exception_handlers(app)

    @app.get("/health")
    async def health() -> ORJSONResponse:
        return ORJSONResponse({"status": "healthy"})

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
