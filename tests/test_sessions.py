# tests/test_sessions.py
import pytest

from sessions import Role, SessionRegistry


class Conn:
    """Opaque connection handle; the registry only compares identity."""


@pytest.fixture
def p():
    return Conn()


@pytest.fixture
def q():
    return Conn()


def test_get_or_create_returns_same_session(registry, clock):
    s1 = registry.get_or_create("ABC123")
    s2 = registry.get_or_create("ABC123")
    assert s1 is s2
    assert s1.last_activity == clock.now
    assert s1.is_empty


def test_attach_fills_slots_and_peer_of_returns_complement(registry, p, q):
    registry.attach("ABC123", Role.INITIATOR, p)
    assert registry.peer_of("ABC123", p) is None

    session = registry.attach("ABC123", Role.JOINER, q)
    assert session.is_full
    assert registry.peer_of("ABC123", p) is q
    assert registry.peer_of("ABC123", q) is p


def test_peer_of_unknown_session_or_stranger_is_none(registry, p, q):
    assert registry.peer_of("missing", p) is None
    registry.attach("ABC123", Role.INITIATOR, p)
    registry.attach("ABC123", Role.JOINER, Conn())
    # q never joined, so it has no peer even though the session is full
    assert registry.peer_of("ABC123", q) is None


def test_attach_same_role_overwrites_previous_occupant(registry, p, q):
    registry.attach("ABC123", Role.INITIATOR, p)
    session = registry.attach("ABC123", Role.INITIATOR, q)
    assert session.initiator is q
    assert session.role_of(p) is None


def test_attach_updates_last_activity(registry, clock, p, q):
    registry.attach("ABC123", Role.INITIATOR, p)
    clock.advance(30)
    session = registry.attach("ABC123", Role.JOINER, q)
    assert session.last_activity == clock.now


def test_detach_last_occupant_removes_session(registry, p, q):
    registry.attach("ABC123", Role.INITIATOR, p)
    registry.attach("ABC123", Role.JOINER, q)

    assert registry.detach("ABC123", p) is False
    assert "ABC123" in registry
    assert registry.get("ABC123").initiator is None

    assert registry.detach("ABC123", q) is True
    assert "ABC123" not in registry
    assert len(registry) == 0


def test_detach_is_idempotent_and_ignores_unknown(registry, p, q):
    registry.attach("ABC123", Role.INITIATOR, p)
    registry.detach("ABC123", p)
    assert registry.detach("ABC123", p) is False
    assert registry.detach("nope", q) is False

    registry.attach("ABC123", Role.INITIATOR, p)
    assert registry.detach("ABC123", q) is False
    assert registry.get("ABC123").initiator is p


def test_sweep_removes_only_idle_sessions(registry, clock, p, q):
    registry.attach("old", Role.INITIATOR, p)
    clock.advance(601)
    registry.attach("fresh", Role.INITIATOR, q)

    removed = registry.sweep(600)

    assert removed == 1
    assert "old" not in registry
    assert "fresh" in registry


def test_touch_keeps_session_alive(registry, clock, p):
    registry.attach("ABC123", Role.INITIATOR, p)
    clock.advance(500)
    registry.touch("ABC123")
    clock.advance(500)
    assert registry.sweep(600) == 0


def test_role_other():
    assert Role.INITIATOR.other is Role.JOINER
    assert Role.JOINER.other is Role.INITIATOR


def test_registry_uses_wall_clock_by_default():
    registry = SessionRegistry()
    session = registry.get_or_create("x")
    assert session.last_activity > 0


def test_connection_holding_both_slots_has_no_peer(registry, p):
    registry.attach("ABC123", Role.INITIATOR, p)
    session = registry.attach("ABC123", Role.JOINER, p)
    assert session.is_full
    assert not session.is_paired
    assert registry.peer_of("ABC123", p) is None

    assert registry.detach("ABC123", p) is True
    assert "ABC123" not in registry
