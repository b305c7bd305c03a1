"""Tests for the session validation cache."""

import logging
from datetime import UTC, datetime, timedelta

from vidstore.services.session import Session
from vidstore.services.session_cache import SessionCache


def _session(token: str = "t" * 64) -> Session:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    return Session(
        id="s1",
        user_id="u1",
        token=token,
        created_at=now,
        expires_at=now + timedelta(hours=24),
    )


class TestFreshness:
    def test_entry_fresh_within_ttl(self, session_cache, clock):
        session_cache.put("tok", _session())
        clock.advance(29.9)
        entry = session_cache.get_fresh("tok")
        assert entry is not None
        assert entry.session.id == "s1"

    def test_entry_stale_at_ttl(self, session_cache, clock):
        session_cache.put("tok", _session())
        clock.advance(30.0)
        assert session_cache.get_fresh("tok") is None
        assert session_cache.get("tok") is not None

    def test_negative_results_are_cached(self, session_cache):
        session_cache.put("bad", None)
        entry = session_cache.get_fresh("bad")
        assert entry is not None
        assert entry.session is None

    def test_clear_keeps_in_flight_markers(self, session_cache):
        session_cache.put("tok", _session())
        session_cache.mark_in_flight("tok")
        session_cache.clear()
        assert len(session_cache) == 0
        assert session_cache.is_in_flight("tok")

    def test_clear_bumps_generation(self, session_cache):
        before = session_cache.generation
        session_cache.clear()
        session_cache.clear()
        assert session_cache.generation == before + 2


class TestInFlight:
    def test_mark_and_clear(self):
        cache = SessionCache()
        assert not cache.is_in_flight("tok")
        cache.mark_in_flight("tok")
        assert cache.is_in_flight("tok")
        cache.clear_in_flight("tok")
        assert not cache.is_in_flight("tok")
        cache.clear_in_flight("tok")


class TestHitLogging:
    def _hit_logs(self, caplog):
        return [r for r in caplog.records if "Served cached session" in r.getMessage()]

    def test_logs_at_most_once_per_interval(self, session_cache, clock, caplog):
        caplog.set_level(logging.INFO, logger="vidstore.services.session_cache")
        for _ in range(50):
            session_cache.record_hit()
            clock.advance(0.01)
        assert len(self._hit_logs(caplog)) == 1

        clock.advance(5.0)
        session_cache.record_hit()
        logs = self._hit_logs(caplog)
        assert len(logs) == 2
        assert "50 validations" in logs[1].getMessage()
