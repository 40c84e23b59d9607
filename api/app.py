# api/app.py
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from api.deps import get_logger
from api.pipeline import router as pipeline_router
from api.stages import router as stages_router
from core.obs import JsonRepoLogger, bind_log_context
from core.settings import get_app_settings

SETTINGS = get_app_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # ----- startup -----
    if getattr(app.state, "logger", None) is None:
        app.state.logger = JsonRepoLogger(
            service=SETTINGS.service_name, env=SETTINGS.app_env, log_dir=SETTINGS.log_dir
        )
    # LLM clients are built per request from its agent_config; tests may preset app.state.llm.
    if not hasattr(app.state, "llm"):
        app.state.llm = None

    app.state.logger.info("service.start", env=SETTINGS.app_env, service=SETTINGS.service_name)
    try:
        yield
    finally:
        # ----- shutdown -----
        app.state.logger.info("service.stop", env=SETTINGS.app_env, service=SETTINGS.service_name)


app = FastAPI(
    title="Application Tailoring API",
    version=SETTINGS.app_version,
    description="JD → title, summary, work history, skills, cover letter via critique loops",
    lifespan=lifespan,
)


# ----- Middleware -----


@app.middleware("http")
async def add_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Attach a request ID to every request/response and log basic access info."""
    req_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.req_id = req_id
    logger = get_logger(request)

    with bind_log_context(req_id=req_id):
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            client=str(request.client.host if request.client else None),
        )

        response: Response = await call_next(request)
        response.headers["x-request-id"] = req_id

        logger.info(
            "http.response",
            status_code=response.status_code,
            path=request.url.path,
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_allowlist(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----- Simple health & root -----


@app.get("/", tags=["meta"])
async def root(request: Request) -> dict[str, str | None]:
    return {
        "service": SETTINGS.service_name,
        "env": SETTINGS.app_env,
        "version": app.version,
        "request_id": getattr(request.state, "req_id", None),
    }


@app.get("/healthz", tags=["meta"])
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


# ----- Routers -----

app.include_router(pipeline_router, tags=["pipeline"])
if SETTINGS.stage_endpoints:
    app.include_router(stages_router, tags=["stages"])
