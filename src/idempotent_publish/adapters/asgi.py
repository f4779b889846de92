"""FastAPI adapter exposing the idempotent publish endpoint.

This module maps between Starlette responses and the framework-free
``HttpResponse`` stored in the ledger, and wires the coordinator and the
business writer behind ``POST /admin/newsletters``.

Header bytes and order are taken from ``Response.raw_headers`` and written
back the same way, so a replayed response is byte-identical to the original.

Examples:
    Building the application::

        from idempotent_publish.adapters.asgi import create_app
        from idempotent_publish.config import PublishConfig
        from idempotent_publish.storage.database import create_engine

        config = PublishConfig.from_env()
        app = create_app(create_engine(config), config)

    Plugging in the real identity extractor::

        async def current_user_id(request: Request) -> str:
            return request.session["user_id"]

        app = create_app(engine, config, caller_id_dependency=current_user_id)
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from starlette.responses import PlainTextResponse, RedirectResponse, Response

from idempotent_publish.config import PublishConfig
from idempotent_publish.core.cleanup import start_cleanup_task, stop_cleanup_task
from idempotent_publish.core.codec import HttpResponse
from idempotent_publish.core.coordinator import IdempotencyCoordinator
from idempotent_publish.core.publisher import publish_issue
from idempotent_publish.exceptions import (
    ClaimConflictTimeout,
    PersistenceError,
    ValidationError,
)
from idempotent_publish.models import IdempotencyKey
from idempotent_publish.observability.logging import get_logger
from idempotent_publish.storage.database import create_schema, create_session_factory

logger = get_logger(__name__)

PUBLISHED_FLASH = "The newsletter issue has been published!"


def from_starlette(response: Response) -> HttpResponse:
    """Capture a fully-rendered Starlette response.

    Args:
        response: A response whose body is already in memory

    Returns:
        HttpResponse with the raw header list and body
    """
    return HttpResponse(
        status=response.status_code,
        headers=list(response.raw_headers),
        body=bytes(response.body),
    )


def to_starlette(response: HttpResponse) -> Response:
    """Build a Starlette response that sends exactly the stored bytes.

    Args:
        response: Framework-free response

    Returns:
        Starlette Response with the original raw headers
    """
    result = Response(content=response.body, status_code=response.status)
    result.raw_headers = list(response.headers)
    return result


async def caller_id_from_header(x_user_id: str | None = Header(default=None)) -> str:
    """Default identity extractor: the ``X-User-Id`` header.

    Raises:
        HTTPException: 401 if the header is absent
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id


def published_response(config: PublishConfig) -> HttpResponse:
    """The response returned after a successful publish."""
    response = RedirectResponse(config.published_redirect, status_code=303)
    response.set_cookie("_flash", PUBLISHED_FLASH)
    return from_starlette(response)


def create_app(
    engine: AsyncEngine,
    config: PublishConfig,
    caller_id_dependency: Callable[..., Awaitable[str]] | None = None,
    create_tables: bool = False,
) -> FastAPI:
    """Create the FastAPI application.

    The lifespan starts the ledger retention task and, if requested, creates
    the schema. Clients that drive the app without lifespan events (such as
    ``httpx.ASGITransport``) get the endpoint without the background task.

    Args:
        engine: Async engine for the newsletter database
        config: Configuration object
        caller_id_dependency: FastAPI dependency returning the caller identity
        create_tables: Create tables on startup (development only)

    Returns:
        The configured FastAPI application
    """
    sessions = create_session_factory(engine)
    coordinator = IdempotencyCoordinator(sessions, config)
    identity = caller_id_dependency or caller_id_from_header

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if create_tables:
            await create_schema(engine)
        cleanup_task = await start_cleanup_task(sessions, config)
        try:
            yield
        finally:
            await stop_cleanup_task(cleanup_task)
            await engine.dispose()

    app = FastAPI(title="Newsletter publishing", lifespan=lifespan)
    app.state.coordinator = coordinator

    @app.post("/admin/newsletters")
    async def publish_newsletter(
        title: str = Form(...),
        text_content: str = Form(...),
        html_content: str = Form(...),
        idempotency_key: str = Form(default=""),
        caller_id: str = Depends(identity),
    ) -> Response:
        try:
            key = IdempotencyKey.parse(idempotency_key, max_bytes=config.max_key_bytes)
        except ValidationError as e:
            logger.info("key.rejected", caller_id=caller_id, reason=e.message)
            return PlainTextResponse(e.message, status_code=400)

        async def action(transaction: AsyncSession) -> HttpResponse:
            await publish_issue(transaction, title, text_content, html_content)
            return published_response(config)

        try:
            result = await coordinator.execute(caller_id, key, action)
        except ClaimConflictTimeout:
            return PlainTextResponse(
                "A request with this idempotency key is still being processed",
                status_code=503,
                headers={"retry-after": "5"},
            )
        except PersistenceError as e:
            logger.error(
                "publish.failed",
                caller_id=caller_id,
                error=e.message,
                cause=repr(e.cause) if e.cause is not None else None,
            )
            return PlainTextResponse("Internal server error", status_code=500)

        return to_starlette(result.response)

    return app
