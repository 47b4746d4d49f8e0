"""smartsos FastAPI application."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from contextlib import asynccontextmanager

from fastapi import FastAPI

from smartsos.api import contacts, health, location, sos
from smartsos.core.clock import Clock
from smartsos.core.config import Settings, settings as default_settings
from smartsos.services.container import build_services
from smartsos.services.notifications import NotificationGateway


def create_app(
    settings: Settings | None = None,
    clock: Clock | None = None,
    gateway: NotificationGateway | None = None,
    executor: Executor | None = None,
    use_executor: bool = True,
) -> FastAPI:
    """Build the app with its own service graph; started and stopped by the lifespan."""
    settings = settings or default_settings

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    services = build_services(
        settings,
        clock=clock,
        gateway=gateway,
        executor=executor,
        use_executor=use_executor,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.start()
        try:
            yield
        finally:
            services.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.services = services

    app.include_router(health.router)
    app.include_router(sos.router, prefix=settings.api_prefix)
    app.include_router(location.router, prefix=settings.api_prefix)
    app.include_router(contacts.router, prefix=settings.api_prefix)
    return app


app = create_app()
