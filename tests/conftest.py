"""Pytest fixtures."""

import math
import threading

import pytest
from fastapi.testclient import TestClient

from smartsos.core.clock import ManualClock
from smartsos.core.config import Settings
from smartsos.core.errors import NotificationError
from smartsos.core.sos_policies import EARTH_RADIUS_KM
from smartsos.main import create_app
from smartsos.services.container import build_services
from smartsos.services.notifications import NotificationGateway

CHENNAI = (13.0827, 80.2707)


def north_of(origin, km):
    """Point ``km`` due north of ``origin``; haversine distance is exactly ``km``."""
    lat, lon = origin
    return lat + math.degrees(km / EARTH_RADIUS_KM), lon


class RecordingGateway(NotificationGateway):
    """Gateway double that records every call and can be told to fail."""

    def __init__(self):
        self.peer_calls = []
        self.authority_calls = []
        self.failing_peers = set()
        self.fail_authority = False
        self._lock = threading.Lock()

    def notify_peer(self, peer_user_id, summary):
        with self._lock:
            self.peer_calls.append((peer_user_id, summary))
        if peer_user_id in self.failing_peers:
            raise NotificationError(f"peer {peer_user_id} unreachable")

    def notify_authority(self, summary):
        with self._lock:
            self.authority_calls.append(summary)
        if self.fail_authority:
            raise NotificationError("authority unreachable")

    @property
    def notified_peers(self):
        return [peer for peer, _ in self.peer_calls]


def make_settings(tmp_path, backend="memory", **overrides):
    return Settings(
        _env_file=None,
        store_backend=backend,
        database_url=f"sqlite:///{tmp_path / 'smartsos.db'}",
        **overrides,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture(params=["memory", "sql"])
def backend(request):
    """Run the test against both store backends."""
    return request.param


@pytest.fixture
def services(tmp_path, backend, clock, gateway):
    svc = build_services(make_settings(tmp_path, backend), clock=clock, gateway=gateway, use_executor=False)
    svc.start()
    yield svc
    svc.close()


@pytest.fixture
def coordinator(services):
    return services.coordinator


@pytest.fixture
def client(tmp_path, clock, gateway):
    """Test client over an in-memory app driven by the manual clock."""
    app = create_app(make_settings(tmp_path), clock=clock, gateway=gateway, use_executor=False)
    with TestClient(app) as c:
        yield c
