from datetime import timedelta

from caddate.realtime.presence import PresenceEntry, PresenceRegistry

from conftest import NOW


def test_two_devices_give_two_entries():
    registry = PresenceRegistry()
    registry.add(PresenceEntry("alice", "sid-phone", "alice@example.com", NOW))
    registry.add(PresenceEntry("alice", "sid-tablet", "alice@example.com", NOW + timedelta(seconds=1)))

    assert len(registry) == 2
    assert registry.connections_for("alice") == ["sid-phone", "sid-tablet"]

    removed = registry.remove("sid-phone")

    assert removed.connection_id == "sid-phone"
    assert "sid-phone" not in registry
    assert [e.connection_id for e in registry.list_online()] == ["sid-tablet"]


def test_remove_unknown_connection_returns_none():
    assert PresenceRegistry().remove("missing") is None


def test_snapshot_is_ordered_by_join_time():
    registry = PresenceRegistry()
    registry.add(PresenceEntry("bob", "sid-2", None, NOW + timedelta(seconds=5)))
    registry.add(PresenceEntry("alice", "sid-1", "alice@example.com", NOW))

    snapshot = registry.snapshot()

    assert [u["user_id"] for u in snapshot] == ["alice", "bob"]
    assert snapshot[0] == {
        "user_id": "alice",
        "user_email": "alice@example.com",
        "socket_id": "sid-1",
        "joined_at": NOW.isoformat(),
    }


def test_registries_are_independent():
    a = PresenceRegistry()
    b = PresenceRegistry()
    a.add(PresenceEntry("alice", "sid-1", None, NOW))
    assert len(b) == 0
