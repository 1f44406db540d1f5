"""Badge orchestrator FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from badges.interactions import InteractionService
from badges.repository import list_installed_networks
from badges.router import router as badges_router
from badges.service import BadgeOrchestrationService, create_orchestration_service
from core import settings

log = logging.getLogger("uvicorn.error").getChild("app")


def _restore_installations(service: BadgeOrchestrationService) -> None:
    # only the badge config survives a restart; everything else is rebuilt by install
    try:
        networks = list_installed_networks(settings)
    except Exception:
        log.exception("Could not list app installations; skipping restore")
        return
    log.info("Restoring %d installations", len(networks))
    for network_id in networks:
        service.install(network_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_required()
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    service: BadgeOrchestrationService = app.state.orchestration
    if settings.restore_installations:
        await run_in_threadpool(_restore_installations, service)
    try:
        yield
    finally:
        service.scheduler.shutdown()
        service.sync.shutdown()


def create_app(orchestration: Optional[BadgeOrchestrationService] = None) -> FastAPI:
    app = FastAPI(title="Badge Orchestrator", version="1.0", lifespan=lifespan)
    app.state.orchestration = orchestration or create_orchestration_service(settings)
    app.state.interactions = InteractionService(app.state.orchestration)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        log.error("Uncaught error on %s: %s", request.url.path, exc, exc_info=exc)
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    @app.get("/")
    def root():
        return {
            "success": True,
            "message": f"Badge orchestrator is up and running! {datetime.now(timezone.utc).isoformat()}",
        }

    @app.get("/_health")
    def health():
        return {"status": "ok"}

    app.include_router(badges_router)
    return app


app = create_app()
