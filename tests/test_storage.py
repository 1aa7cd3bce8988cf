"""Tests for the monthly snapshot store and the symbol override store."""

import asyncio
import json
import threading
from datetime import datetime

import pytest

from conftest import records
from market_moves.models.datatypes import DailyRecord, Instrument
from market_moves.storage.overrides import OverrideStore, effective_instruments
from market_moves.storage.snapshots import SnapshotStore, merge_series

FIXED_NOW = datetime(2024, 4, 15, 10, 0, 0)


@pytest.fixture
def store(tmp_path) -> SnapshotStore:
    return SnapshotStore(tmp_path / "daily-cache.json", clock=lambda: FIXED_NOW)


class TestMergeSeries:
    def test_fresh_wins_and_history_survives(self) -> None:
        existing = {"sp500": records([("2024-03-01", 100.0), ("2024-03-04", 101.0)])}
        fresh = {"sp500": records([("2024-03-04", 102.0), ("2024-03-05", 103.0)])}

        merged = merge_series(existing, fresh)

        assert [(r.date, r.close) for r in merged["sp500"]] == [
            ("2024-03-01", 100.0),
            ("2024-03-04", 102.0),
            ("2024-03-05", 103.0),
        ]

    def test_union_of_instruments(self) -> None:
        existing = {"sp500": records([("2024-03-01", 100.0)])}
        fresh = {"nvidia": records([("2024-03-05", 9.0), ("2024-03-01", 8.0)])}

        merged = merge_series(existing, fresh)

        assert set(merged) == {"sp500", "nvidia"}
        assert [r.date for r in merged["nvidia"]] == ["2024-03-01", "2024-03-05"]

    def test_empty_fresh_keeps_existing(self) -> None:
        existing = {"sp500": records([("2024-03-01", 100.0)])}
        assert merge_series(existing, {"sp500": []}) == existing

    def test_inputs_untouched(self) -> None:
        existing = {"sp500": records([("2024-03-01", 100.0)])}
        fresh = {"sp500": records([("2024-03-02", 101.0)])}
        merge_series(existing, fresh)
        assert len(existing["sp500"]) == 1
        assert len(fresh["sp500"]) == 1


class TestSnapshotStoreLoad:
    def test_missing_file_starts_empty(self, store) -> None:
        store.load()
        assert store.keys() == []

    def test_malformed_file_starts_empty(self, store) -> None:
        store.path.write_text("{not json", encoding="utf-8")
        store.load()
        assert store.keys() == []

    def test_skips_malformed_periods_and_records(self, store) -> None:
        content = {
            "2024-03": {
                "year": 2024,
                "month": 3,
                "data": {"sp500": [{"date": "2024-03-01", "close": 100.0}, {"date": "2024-03-04"}, "junk"]},
                "updatedAt": "2024-04-01T00:00:00",
            },
            "2024-02": {"data": {}},
        }
        store.path.write_text(json.dumps(content), encoding="utf-8")

        store.load()

        assert store.keys() == ["2024-03"]
        snapshot = store.get(2024, 3)
        assert [r.date for r in snapshot.data["sp500"]] == ["2024-03-01"]
        assert snapshot.updated_at == "2024-04-01T00:00:00"

    def test_non_finite_closes_are_dropped(self, store) -> None:
        store.path.write_text(
            '{"2024-03": {"year": 2024, "month": 3, "updatedAt": "2024-04-01T00:00:00", "data": {"sp500": ['
            '{"date": "2024-03-01", "close": 100.0, "volume": Infinity}, '
            '{"date": "2024-03-04", "close": NaN}, '
            '{"date": "2024-03-05", "close": 1e300}, '
            '{"date": "2024-03-06", "close": -Infinity}]}}}',
            encoding="utf-8",
        )

        store.load()

        kept = store.get(2024, 3).data["sp500"]
        assert [r.date for r in kept] == ["2024-03-01"]
        assert kept[0].volume is None


class TestSnapshotStoreWrites:
    def test_put_without_loop_saves_immediately(self, store) -> None:
        store.put(2024, 3, {"sp500": records([("2024-03-04", 101.0), ("2024-03-01", 100.0)])})

        saved = json.loads(store.path.read_text(encoding="utf-8"))
        assert list(saved) == ["2024-03"]
        assert saved["2024-03"]["updatedAt"] == FIXED_NOW.isoformat()
        assert [r["date"] for r in saved["2024-03"]["data"]["sp500"]] == ["2024-03-01", "2024-03-04"]

    def test_round_trip_through_disk(self, store, tmp_path) -> None:
        store.put(2024, 3, {"sp500": [DailyRecord(date="2024-03-01", close=100.0, open=99.5, volume=1200)]})

        reloaded = SnapshotStore(tmp_path / "daily-cache.json")
        reloaded.load()

        assert reloaded.get(2024, 3).data == store.get(2024, 3).data

    def test_saves_coalesce_within_one_loop_turn(self, store, monkeypatch) -> None:
        writers = []
        real_write = store._write

        def counting_write(payload, version):
            writers.append(threading.current_thread())
            return real_write(payload, version)

        monkeypatch.setattr(store, "_write", counting_write)

        async def scenario():
            store.put(2024, 3, {"sp500": records([("2024-03-01", 100.0)])})
            store.put(2024, 2, {"sp500": records([("2024-02-01", 90.0)])})
            store.merge(2024, 3, {"sp500": records([("2024-03-04", 101.0)])})
            assert writers == []
            await asyncio.sleep(0)

        asyncio.run(scenario())

        assert len(writers) == 1
        assert writers[0] is not threading.main_thread()
        saved = json.loads(store.path.read_text(encoding="utf-8"))
        assert sorted(saved) == ["2024-02", "2024-03"]
        assert len(saved["2024-03"]["data"]["sp500"]) == 2

    def test_stale_payload_never_overwrites_newer(self, store) -> None:
        store.put(2024, 3, {"sp500": records([("2024-03-01", 100.0)])})
        stale = store.to_dict()
        store.put(2024, 2, {"sp500": records([("2024-02-01", 90.0)])})

        assert store._write(stale, 1) is True

        saved = json.loads(store.path.read_text(encoding="utf-8"))
        assert sorted(saved) == ["2024-02", "2024-03"]

    def test_write_failure_keeps_memory(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = SnapshotStore(blocker / "daily-cache.json")

        store.put(2024, 3, {"sp500": records([("2024-03-01", 100.0)])})

        assert store.flush() is False
        assert store.get(2024, 3) is not None


class TestOverrides:
    @pytest.fixture
    def base(self) -> list:
        return [
            Instrument(id="sp500", name="S&P 500", symbol="^GSPC", news_symbol="SPY"),
            Instrument(id="kospi", name="KOSPI Composite", symbol="^KS11"),
        ]

    def test_effective_instruments_overlay(self, base) -> None:
        result = effective_instruments(base, {"kospi": {"symbol": "^KS200", "name": "KOSPI 200"}})

        assert [(i.symbol, i.name, i.overridden) for i in result] == [
            ("^GSPC", "S&P 500", False),
            ("^KS200", "KOSPI 200", True),
        ]
        assert base[1].symbol == "^KS11"

    def test_override_without_symbol_is_ignored(self, base) -> None:
        result = effective_instruments(base, {"kospi": {"name": "Renamed"}})
        assert result[1].name == "KOSPI Composite"
        assert result[1].overridden is False

    def test_override_without_name_keeps_base_name(self, base) -> None:
        result = effective_instruments(base, {"sp500": {"symbol": "SPY", "name": ""}})
        assert result[0].name == "S&P 500"
        assert result[0].news_symbol == "SPY"

    def test_store_persists_immediately(self, tmp_path) -> None:
        path = tmp_path / "symbol-overrides.json"
        store = OverrideStore(path)
        store.set("kospi", "^KS200", "KOSPI 200")

        reloaded = OverrideStore(path)
        reloaded.load()
        assert reloaded.get("kospi") == {"symbol": "^KS200", "name": "KOSPI 200"}

        assert reloaded.remove("kospi") is True
        assert reloaded.remove("kospi") is False
        assert json.loads(path.read_text(encoding="utf-8")) == {}

    def test_failed_write_leaves_overrides_unchanged(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store = OverrideStore(blocker / "symbol-overrides.json")

        with pytest.raises(OSError):
            store.set("kospi", "^KS200", "KOSPI 200")

        assert store.get("kospi") is None
        assert store.as_dict() == {}

    def test_failed_remove_keeps_override(self, tmp_path) -> None:
        path = tmp_path / "symbol-overrides.json"
        store = OverrideStore(path)
        store.set("kospi", "^KS200", "KOSPI 200")
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory", encoding="utf-8")
        store.path = blocker / "symbol-overrides.json"

        with pytest.raises(OSError):
            store.remove("kospi")

        assert store.get("kospi") == {"symbol": "^KS200", "name": "KOSPI 200"}

    def test_load_skips_invalid_entries(self, tmp_path) -> None:
        path = tmp_path / "symbol-overrides.json"
        path.write_text(json.dumps({"a": {"symbol": "X"}, "b": {"name": "no symbol"}, "c": "junk"}), encoding="utf-8")

        store = OverrideStore(path)
        store.load()

        assert store.as_dict() == {"a": {"symbol": "X", "name": ""}}


class TestMergeSeriesProperties:
    def test_commutative_on_disjoint_dates(self) -> None:
        """Order of application does not matter when no dates collide."""
        a = {"sp500": records([("2024-03-01", 100.0), ("2024-03-05", 88.0)])}
        b = {"sp500": records([("2024-03-04", 95.0)]), "kospi": records([("2024-03-04", 2640.0)])}

        left = merge_series(a, b)
        right = merge_series(b, a)

        assert {k: left[k] for k in sorted(left)} == {k: right[k] for k in sorted(right)}

    def test_idempotent(self) -> None:
        """Merging the same data twice changes nothing."""
        a = {"sp500": records([("2024-03-01", 100.0)])}
        b = {"sp500": records([("2024-03-04", 95.0)])}

        once = merge_series(a, b)
        assert merge_series(once, b) == once
        assert merge_series(once, once) == once
