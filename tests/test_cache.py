"""Tests for the archive TTL cache and the periodic sweeper."""

from __future__ import annotations

import asyncio

from archiver.capture.cache import ArchiveCache
from archiver.capture.models import ArchiveResult, BodyAttrs, HtmlAttrs
from archiver.capture.sweeper import PeriodicSweeper


class _Clock:
    def __init__(self, now: float = 50.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(url: str = "https://example.com/post") -> ArchiveResult:
    return ArchiveResult(
        html="<p>hi</p>",
        css="",
        title="Post",
        author="",
        published_time="",
        domain="example.com",
        url=url,
        extraction_time=12,
        content_size=9,
        html_attrs=HtmlAttrs(lang="en"),
        body_attrs=BodyAttrs(),
    )


# ---------------------------------------------------------------------------
# ArchiveCache
# ---------------------------------------------------------------------------

class TestArchiveCache:
    def test_miss_returns_none(self) -> None:
        cache = ArchiveCache(ttl=900, clock=_Clock())
        assert cache.get("https://example.com/") is None

    def test_hit_within_ttl(self) -> None:
        clock = _Clock()
        cache = ArchiveCache(ttl=900, clock=clock)
        result = _result()
        cache.set(result.url, result)

        clock.now += 900
        assert cache.get(result.url) is result

    def test_expired_entry_is_not_returned_but_kept_until_sweep(self) -> None:
        clock = _Clock()
        cache = ArchiveCache(ttl=900, clock=clock)
        result = _result()
        cache.set(result.url, result)

        clock.now += 901
        assert cache.get(result.url) is None
        assert result.url in cache

        assert cache.sweep() == 1
        assert result.url not in cache
        assert len(cache) == 0

    def test_sweep_keeps_fresh_entries(self) -> None:
        clock = _Clock()
        cache = ArchiveCache(ttl=900, clock=clock)
        cache.set("https://a.example/", _result("https://a.example/"))
        clock.now += 500
        cache.set("https://b.example/", _result("https://b.example/"))
        clock.now += 500

        assert cache.sweep() == 1
        assert "https://b.example/" in cache


class TestArchiveResult:
    def test_to_dict_uses_wire_names(self) -> None:
        data = _result().to_dict()
        assert data["publishedTime"] == ""
        assert data["extractionTime"] == 12
        assert data["contentSize"] == 9
        assert data["htmlAttrs"] == {"class": "", "style": "", "lang": "en"}
        assert data["bodyAttrs"] == {"class": "", "style": ""}


# ---------------------------------------------------------------------------
# PeriodicSweeper
# ---------------------------------------------------------------------------

class _Target:
    def __init__(self, removed: int = 1, error: Exception | None = None) -> None:
        self.removed = removed
        self.error = error
        self.calls = 0

    def sweep(self) -> int:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.removed


class TestPeriodicSweeper:
    def test_sweep_once_sums_targets(self) -> None:
        sweeper = PeriodicSweeper(900, _Target(2), _Target(3))
        assert sweeper.sweep_once() == 5

    def test_failing_target_does_not_stop_others(self) -> None:
        broken, healthy = _Target(error=RuntimeError("boom")), _Target(4)
        sweeper = PeriodicSweeper(900, broken, healthy)

        assert sweeper.sweep_once() == 4
        assert broken.calls == 1
        assert healthy.calls == 1

    async def test_runs_on_interval_until_stopped(self) -> None:
        target = _Target()
        sweeper = PeriodicSweeper(0.01, target)
        sweeper.start()
        assert sweeper.running is True

        await asyncio.sleep(0.1)
        await sweeper.stop()

        assert sweeper.running is False
        assert target.calls >= 2

    async def test_stop_without_start_is_noop(self) -> None:
        sweeper = PeriodicSweeper(900)
        await sweeper.stop()
        assert sweeper.running is False
