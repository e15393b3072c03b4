# main.py: FlavorCoach billing webhook service
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import build_pipeline
from app.api.routers import health, webhooks
from app.core.config import Settings
from app.infra.crm.client import CrmClient
from app.infra.crm.stages import log_pipelines_and_stages
from app.services.crm_sync import WebhookSyncPipeline

logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("uvicorn.error")


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[WebhookSyncPipeline] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        closers = []
        try:
            if app.state.pipeline is None:
                # refuse to start without the webhook credentials
                settings.ensure_required()
                settings.warn_missing_optional()

                crm_client = None
                if settings.crm_enabled:
                    crm_client = CrmClient.from_settings(settings)
                    closers.append(crm_client.close)
                    if settings.crm_debug_pipelines:
                        await log_pipelines_and_stages(crm_client)

                built, owned = build_pipeline(settings, crm_client=crm_client)
                closers.extend(owned)
                app.state.pipeline = built
                logger.info(
                    "[startup] webhook pipeline ready: crm=%s convertkit=%s",
                    settings.crm_enabled,
                    settings.convertkit_enabled,
                )
            yield
        finally:
            for close in closers:
                close()

    app = FastAPI(
        title="FlavorCoach Billing Webhooks",
        description="Stripe webhook → CRM contact/tag sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhooks.router, tags=["Webhooks"])
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run("main:app", host="0.0.0.0", port=port)
