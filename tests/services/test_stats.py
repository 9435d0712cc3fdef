from __future__ import annotations

import random
import threading

import pytest

from omniplexer.services.stats import StatsEngine, nearest_rank


def _engine_with(samples: list[float], name: str = "s") -> StatsEngine:
    engine = StatsEngine([name])
    for sample in samples:
        engine.record_sample(name, sample)
    return engine


# ---- record_sample ----


def test_record_sample_updates_counters() -> None:
    engine = _engine_with([30.0, 10.0, 20.0])
    stats = engine.snapshot("s")
    assert stats.request_count == 3
    assert stats.response_times_ms == [30.0, 10.0, 20.0]
    assert stats.total_response_time_ms == pytest.approx(60.0)
    assert stats.min_response_time_ms == 10.0
    assert stats.max_response_time_ms == 30.0


def test_min_max_unset_before_first_sample() -> None:
    stats = StatsEngine(["s"]).snapshot("s")
    assert stats.min_response_time_ms is None
    assert stats.max_response_time_ms is None


def test_record_error_counts_per_server_and_globally() -> None:
    engine = _engine_with([5.0, 6.0])
    engine.record_error("s")
    assert engine.snapshot("s").error_count == 1
    assert engine.global_snapshot().error_count == 1


def test_record_request_counts_inbound_requests() -> None:
    engine = StatsEngine()
    engine.record_request()
    engine.record_request()
    assert engine.global_snapshot().request_count == 2


def test_unknown_server_starts_with_empty_stats() -> None:
    engine = StatsEngine()
    engine.record_sample("late", 4.0)
    assert engine.snapshot("late").request_count == 1
    assert engine.snapshot("never").request_count == 0


def test_snapshot_is_a_copy() -> None:
    engine = _engine_with([1.0])
    snap = engine.snapshot("s")
    snap.response_times_ms.append(999.0)
    assert engine.snapshot("s").response_times_ms == [1.0]


def test_invariants_hold_for_random_samples() -> None:
    rng = random.Random(7)
    engine = StatsEngine(["s"])
    for _ in range(200):
        engine.record_sample("s", rng.uniform(0.1, 5000.0))
        if rng.random() < 0.3:
            engine.record_error("s")

    stats = engine.snapshot("s")
    assert stats.error_count <= stats.request_count
    assert all(
        stats.min_response_time_ms <= x <= stats.max_response_time_ms
        for x in stats.response_times_ms
    )


def test_concurrent_recording_loses_no_updates() -> None:
    engine = StatsEngine(["s"])

    def work() -> None:
        for i in range(500):
            engine.record_sample("s", float(i))
            engine.record_error("s")

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = engine.snapshot("s")
    assert stats.request_count == 4000
    assert stats.error_count == 4000
    assert len(stats.response_times_ms) == 4000
    assert engine.global_snapshot().error_count == 4000


# ---- percentile ----


def test_percentile_nearest_rank_on_ten_samples() -> None:
    engine = _engine_with([float(x) for x in (100, 10, 90, 20, 80, 30, 70, 40, 60, 50)])
    # ceil(0.5 * 10) - 1 = 4 -> 5th smallest
    assert engine.percentile("s", 0.50) == 50.0
    assert engine.percentile("s", 0.95) == 100.0
    assert engine.percentile("s", 0.10) == 10.0
    assert engine.percentile("s", 1.0) == 100.0


def test_percentile_single_sample() -> None:
    engine = _engine_with([7.5])
    assert engine.percentile("s", 0.01) == 7.5
    assert engine.percentile("s", 0.99) == 7.5


def test_percentile_does_not_reorder_stored_samples() -> None:
    engine = _engine_with([3.0, 1.0, 2.0])
    engine.percentile("s", 0.5)
    assert engine.snapshot("s").response_times_ms == [3.0, 1.0, 2.0]


def test_percentiles_are_monotonic() -> None:
    rng = random.Random(11)
    for n in (1, 2, 3, 17, 100):
        engine = _engine_with([rng.uniform(0, 1000) for _ in range(n)])
        p50 = engine.percentile("s", 0.50)
        p95 = engine.percentile("s", 0.95)
        p99 = engine.percentile("s", 0.99)
        assert p50 <= p95 <= p99


def test_percentile_without_samples_raises() -> None:
    with pytest.raises(ValueError, match="empty"):
        StatsEngine(["s"]).percentile("s", 0.5)


@pytest.mark.parametrize("p", [0.0, -0.1, 1.5])
def test_nearest_rank_rejects_out_of_range(p: float) -> None:
    with pytest.raises(ValueError, match=r"\(0, 1\]"):
        nearest_rank([1.0, 2.0], p)


# ---- rates ----


def test_success_rate_defaults_to_100_without_traffic() -> None:
    engine = StatsEngine(["s"])
    assert engine.success_rate("s") == 100.0
    assert engine.success_rate("unknown") == 100.0


def test_success_rate_with_errors() -> None:
    engine = _engine_with([10.0, 20.0, 30.0, 40.0])
    engine.record_error("s")
    assert engine.success_rate("s") == 75.0


def test_average_response_time() -> None:
    assert StatsEngine(["s"]).average_response_time("s") == 0.0
    assert _engine_with([10.0, 20.0, 30.0, 40.0]).average_response_time("s") == 25.0


def test_uptime_uses_injected_clock() -> None:
    now = [1000.0]
    engine = StatsEngine(clock=lambda: now[0])
    now[0] = 1061.9
    assert engine.uptime_seconds() == 61
