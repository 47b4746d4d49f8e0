"""Location registry tests, run against both backends."""

import threading

import pytest

from smartsos.core.errors import InvalidArgumentError
from tests.conftest import CHENNAI, north_of


@pytest.fixture
def registry(services):
    return services.locations


def test_update_creates_record_for_unknown_user(registry, clock):
    loc = registry.update_location("a", *CHENNAI)

    assert loc.user_id == "a"
    assert loc.online is True
    assert loc.last_updated == clock.now()
    assert registry.get_location("a") == loc


def test_update_is_last_write_wins(registry, clock):
    registry.update_location("a", *CHENNAI)
    clock.advance(30)
    registry.update_location("a", 10.0, 79.0)

    loc = registry.get_location("a")
    assert (loc.latitude, loc.longitude) == (10.0, 79.0)
    assert loc.last_updated == clock.now()


def test_get_location_unknown_returns_none(registry):
    assert registry.get_location("nobody") is None


@pytest.mark.parametrize("lat, lon", [(91, 0), (0, 181), (None, 0)])
def test_update_rejects_invalid_coordinates(registry, lat, lon):
    with pytest.raises(InvalidArgumentError):
        registry.update_location("a", lat, lon)
    assert registry.get_location("a") is None


def test_query_nearby_radius(registry):
    registry.update_location("near", *north_of(CHENNAI, 5))
    registry.update_location("edge_in", *north_of(CHENNAI, 14.99))
    registry.update_location("edge_out", *north_of(CHENNAI, 15.01))
    registry.update_location("far", *north_of(CHENNAI, 20))

    found = {loc.user_id for loc in registry.query_nearby(*CHENNAI, 15)}

    assert found == {"near", "edge_in"}


def test_query_nearby_excludes_offline(registry):
    registry.update_location("on", *north_of(CHENNAI, 1))
    registry.update_location("off", *CHENNAI, online=False)

    found = {loc.user_id for loc in registry.query_nearby(*CHENNAI, 15)}

    assert found == {"on"}
    assert registry.get_location("off").online is False


def test_going_offline_then_online_again(registry):
    registry.update_location("a", *CHENNAI)
    registry.update_location("a", *CHENNAI, online=False)
    assert registry.query_nearby(*CHENNAI, 1) == []

    registry.update_location("a", *CHENNAI, online=True)
    assert [loc.user_id for loc in registry.query_nearby(*CHENNAI, 1)] == ["a"]


def test_query_nearby_empty_is_not_an_error(registry):
    assert registry.query_nearby(*CHENNAI, 15) == []


def test_query_nearby_rejects_bad_input(registry):
    with pytest.raises(InvalidArgumentError):
        registry.query_nearby(100, 0, 15)
    with pytest.raises(InvalidArgumentError):
        registry.query_nearby(*CHENNAI, -1)


def test_concurrent_updates_for_different_users(registry):
    def report(i):
        registry.update_location(f"u{i}", *north_of(CHENNAI, i * 0.1))

    threads = [threading.Thread(target=report, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry.query_nearby(*CHENNAI, 15)) == 20
