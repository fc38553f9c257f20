"""Tests for the clock helpers and the payload envelope."""

from datetime import UTC, datetime, timedelta, timezone

from cadence.infrastructure.clock import FrozenClock, SystemClock, ensure_utc, from_db, to_db
from cadence.payload import Payload


class TestClock:
    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is UTC

    def test_frozen_clock_advance(self):
        clock = FrozenClock(datetime(2024, 1, 1))
        assert clock.now() == datetime(2024, 1, 1, tzinfo=UTC)
        clock.advance(timedelta(minutes=5))
        assert clock.now() == datetime(2024, 1, 1, 0, 5, tzinfo=UTC)

    def test_db_round_trip_normalizes_offsets(self):
        local = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert from_db(to_db(local)) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        assert to_db(None) is None
        assert from_db(None) is None

    def test_db_strings_sort_chronologically(self):
        earlier = to_db(datetime(2024, 1, 1, 0, 0, 0, tzinfo=UTC))
        later = to_db(datetime(2024, 1, 1, 0, 0, 0, 500, tzinfo=UTC))
        assert earlier < later

    def test_ensure_utc_naive(self):
        assert ensure_utc(datetime(2024, 1, 1)).tzinfo is UTC


class TestPayload:
    def test_wrap_and_reload(self):
        payload = Payload.wrap({"ticker": "VALE3"})
        reloaded = Payload.loads(payload.dumps())
        assert reloaded.format_version == 1
        assert reloaded.data == {"ticker": "VALE3"}

    def test_wrap_is_idempotent(self):
        payload = Payload(data=[1])
        assert Payload.wrap(payload) is payload

    def test_loads_bare_legacy_value(self):
        assert Payload.loads('{"ticker": "VALE3"}').data == {"ticker": "VALE3"}

    def test_loads_empty(self):
        assert Payload.loads(None).data is None
