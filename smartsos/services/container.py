"""Builds and tears down the SOS service graph."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field

from sqlalchemy import Engine

from smartsos.core.clock import Clock, SystemClock
from smartsos.core.config import Settings
from smartsos.db.session import create_tables, make_engine, make_session_factory
from smartsos.services.alert_store import AlertStore, InMemoryAlertStore, SqlAlertStore
from smartsos.services.contact_book import ContactBook, InMemoryContactBook, SqlContactBook
from smartsos.services.coordinator import SosCoordinator
from smartsos.services.location_registry import (
    InMemoryLocationRegistry,
    LocationRegistry,
    SqlLocationRegistry,
)
from smartsos.services.notifications import (
    LoggingNotificationGateway,
    NotificationGateway,
    WebhookNotificationGateway,
)
from smartsos.services.scheduler import EscalationScheduler

logger = logging.getLogger(__name__)


@dataclass
class SosServices:
    settings: Settings
    clock: Clock
    alerts: AlertStore
    locations: LocationRegistry
    contacts: ContactBook
    scheduler: EscalationScheduler
    gateway: NotificationGateway
    coordinator: SosCoordinator
    executor: Executor | None = None
    engine: Engine | None = None
    _started: bool = field(default=False, repr=False)

    def start(self) -> None:
        if self._started:
            return
        self.clock.start()
        if self.engine is not None:
            create_tables(self.engine)
            self.coordinator.rearm_pending()
        self._started = True
        logger.info("SOS services started (backend=%s)", self.settings.store_backend)

    def close(self) -> None:
        self.scheduler.shutdown()
        self.clock.shutdown()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
        self.gateway.close()
        if self.engine is not None:
            self.engine.dispose()
        self._started = False
        logger.info("SOS services stopped")


def _default_gateway(settings: Settings) -> NotificationGateway:
    if settings.authority_webhook_url or settings.peer_webhook_url:
        return WebhookNotificationGateway(
            authority_url=settings.authority_webhook_url,
            peer_url=settings.peer_webhook_url,
            timeout=settings.webhook_timeout_seconds,
        )
    return LoggingNotificationGateway()


def build_services(
    settings: Settings,
    clock: Clock | None = None,
    gateway: NotificationGateway | None = None,
    executor: Executor | None = None,
    use_executor: bool = True,
) -> SosServices:
    """Wire stores, scheduler and coordinator for the configured backend.

    ``use_executor=False`` delivers notifications inline, which keeps tests
    deterministic.
    """
    clock = clock or SystemClock()
    gateway = gateway or _default_gateway(settings)
    if executor is None and use_executor:
        executor = ThreadPoolExecutor(max_workers=settings.notify_workers, thread_name_prefix="sos-notify")

    engine = None
    if settings.store_backend == "sql":
        engine = make_engine(settings.database_url, echo=settings.debug)
        session_factory = make_session_factory(engine)
        alerts: AlertStore = SqlAlertStore(clock, session_factory)
        locations: LocationRegistry = SqlLocationRegistry(clock, session_factory)
        contacts: ContactBook = SqlContactBook(clock, session_factory)
    else:
        alerts = InMemoryAlertStore(clock)
        locations = InMemoryLocationRegistry(clock)
        contacts = InMemoryContactBook(clock)

    scheduler = EscalationScheduler(clock)
    coordinator = SosCoordinator(
        alerts=alerts,
        locations=locations,
        scheduler=scheduler,
        gateway=gateway,
        clock=clock,
        contacts=contacts,
        peer_radius_km=settings.peer_radius_km,
        escalation_delay_seconds=settings.escalation_delay_seconds,
        executor=executor,
    )
    return SosServices(
        settings=settings,
        clock=clock,
        alerts=alerts,
        locations=locations,
        contacts=contacts,
        scheduler=scheduler,
        gateway=gateway,
        coordinator=coordinator,
        executor=executor,
        engine=engine,
    )
