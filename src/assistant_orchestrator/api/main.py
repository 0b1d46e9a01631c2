"""FastAPI app entrypoint for the chat assistant webhook."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from html import escape

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import ValidationError as PydanticValidationError

from assistant_orchestrator.config.settings import Settings, get_settings
from assistant_orchestrator.errors import InboundValidationError
from assistant_orchestrator.logging_config import configure_logging
from assistant_orchestrator.messaging import (
    InboundMessage,
    InboundWebhookPayload,
    LoggingMessageSender,
    MediaFetcher,
    MessageSender,
    VonageMessageSender,
    parse_inbound,
    verify_signature,
)
from assistant_orchestrator.orchestration.loop import OrchestrationLoop
from assistant_orchestrator.service import AssistantService
from assistant_orchestrator.session.prompts import PromptRenderer
from assistant_orchestrator.session.provider import ChatModel, OpenAIChatModel
from assistant_orchestrator.storage import InMemoryTaskStorage, PostgresTaskStorage, TaskStorage
from assistant_orchestrator.storage.models import TaskRecord
from assistant_orchestrator.tools import SplitwiseClient, ToolRegistry, build_registry
from assistant_orchestrator.tracing import build_tracer

logger = logging.getLogger(__name__)


def build_storage(settings: Settings) -> TaskStorage:
    backend = settings.storage_backend.lower().strip()
    if backend == "memory":
        return InMemoryTaskStorage()
    if backend != "postgres":
        raise RuntimeError(f"Unsupported storage backend: {settings.storage_backend}")
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set ASSISTANT_DATABASE_URL "
            "or DATABASE_URL before starting the app."
        )
    return PostgresTaskStorage(database_url)


def build_chat_model(settings: Settings) -> ChatModel:
    if settings.llm_provider.lower().strip() != "openai":
        raise RuntimeError(f"Unsupported LLM provider: {settings.llm_provider}")
    api_key = settings.resolved_openai_api_key()
    if not api_key:
        logger.warning("startup event=missing_llm_key provider=%s", settings.llm_provider)
    return OpenAIChatModel(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
        temperature=settings.llm_temperature,
    )


def build_tool_registry(settings: Settings) -> ToolRegistry:
    ledger_client = SplitwiseClient(
        api_key=settings.resolved_ledger_api_key(),
        base_url=settings.ledger_base_url,
        timeout_s=settings.ledger_timeout_s,
        max_retries=settings.ledger_max_retries,
        backoff_s=settings.ledger_backoff_s,
    )
    return build_registry(ledger_client=ledger_client)


def build_sender(settings: Settings) -> MessageSender:
    if not (settings.vonage_api_key and settings.vonage_api_secret and settings.allowed_sender):
        logger.warning("startup event=outbound_disabled reason=missing_vonage_credentials")
        return LoggingMessageSender()
    return VonageMessageSender(
        api_key=settings.vonage_api_key,
        api_secret=settings.vonage_api_secret,
        from_number=settings.vonage_from_number,
        to_number=settings.allowed_sender,
        api_host=settings.vonage_api_host,
    )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: TaskStorage | None,
    model_override: ChatModel | None,
    registry_override: ToolRegistry | None,
    sender_override: MessageSender | None,
    media_fetcher_override: MediaFetcher | None,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or build_storage(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "registry"):
        app.state.registry = registry_override or build_tool_registry(settings)

    if not hasattr(app.state, "service"):
        loop = OrchestrationLoop(
            model=model_override or build_chat_model(settings),
            registry=app.state.registry,
            prompts=PromptRenderer(
                template_path=settings.prompt_path,
                timezone=settings.timezone,
                cache_ttl_s=settings.prompt_cache_ttl_s,
            ),
            max_tool_rounds=settings.max_tool_rounds,
            tracer=build_tracer(settings.trace_mode),
        )
        app.state.service = AssistantService(
            storage=app.state.storage,
            loop=loop,
            sender=sender_override or build_sender(settings),
            media_fetcher=media_fetcher_override
            or MediaFetcher(
                allowed_host_suffix=settings.media_host_suffix,
                media_dir=settings.media_dir,
                timeout_s=settings.media_timeout_s,
            ),
        )


def create_app(
    *,
    storage: TaskStorage | None = None,
    settings_override: Settings | None = None,
    model: ChatModel | None = None,
    registry: ToolRegistry | None = None,
    sender: MessageSender | None = None,
    media_fetcher: MediaFetcher | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    configure_logging(settings.log_level)
    webhook_path = "/" + settings.webhook_path.strip("/")

    def _ensure(app: FastAPI) -> None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            model_override=model,
            registry_override=registry,
            sender_override=sender,
            media_fetcher_override=media_fetcher,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure(app)
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure(app)

    def _service_for(target: FastAPI) -> AssistantService:
        if not hasattr(target.state, "service"):
            _ensure(target)
        return target.state.service

    def _get_service(request: Request) -> AssistantService:
        return _service_for(request.app)

    def _background_service(target: FastAPI) -> AssistantService | None:
        # Runs after the 200 ack; a runtime that cannot be built is logged only.
        try:
            return _service_for(target)
        except Exception:
            logger.exception("inbound event=runtime_unavailable")
            return None

    def _run_cycle(target: FastAPI, message: InboundMessage) -> None:
        service = _background_service(target)
        if service is not None:
            service.handle(message)

    def _notify(target: FastAPI, text: str) -> None:
        service = _background_service(target)
        if service is not None:
            service.notify(text)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools(request: Request) -> dict[str, list[str]]:
        _get_service(request)
        return {"tools": [tool.name for tool in request.app.state.registry.list_tools()]}

    @app.get("/tasks/{task_id}", response_model=TaskRecord)
    def get_task(task_id: str, request: Request) -> TaskRecord:
        service = _get_service(request)
        record = service.storage.get_task(task_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return record

    @app.get(webhook_path, response_class=HTMLResponse)
    def status_page() -> str:
        release = escape(settings.resolved_release())
        return f"{escape(settings.app_name)} is up and running! (commit: <b>{release}</b>)"

    @app.post(webhook_path)
    async def inbound(request: Request, background_tasks: BackgroundTasks) -> Response:
        body = await request.body()
        try:
            verify_signature(request.headers.get("authorization"), body, settings.webhook_secret)
        except InboundValidationError as exc:
            logger.warning("inbound event=rejected reason=%s", exc)
            return Response(status_code=401)

        try:
            payload = InboundWebhookPayload.model_validate_json(body)
        except PydanticValidationError as exc:
            logger.warning("inbound event=malformed errors=%d", exc.error_count())
            return Response(status_code=400)

        try:
            message = parse_inbound(payload, allowed_sender=settings.allowed_sender)
        except InboundValidationError as exc:
            logger.warning(
                "inbound event=invalid message_id=%s reason=%s", payload.message_uuid, exc
            )
            background_tasks.add_task(_notify, request.app, exc.user_message)
            return Response(status_code=200)

        # Acknowledge now; the service is resolved and the cycle runs after the response.
        background_tasks.add_task(_run_cycle, request.app, message)
        return Response(status_code=200)

    @app.post(f"{webhook_path}/message-status")
    async def message_status(request: Request) -> Response:
        body = await request.body()
        logger.debug("inbound event=message_status bytes=%d", len(body))
        return Response(status_code=200)

    return app


app = create_app()
