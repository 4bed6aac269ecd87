import pytest

from fieldfill.config import ScanOptions
from fieldfill.detector.cache import DetectionCache, make_cache_key
from fieldfill.detector.detector import FieldDetector
from fieldfill.detector.scoring import CandidateScorer
from fieldfill.tests.stub_dom import StubElement, StubPage


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingScorer(CandidateScorer):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def score_all(self, pool, key, options=None, **kwargs):
        self.calls += 1
        return super().score_all(pool, key, options, **kwargs)


def _key(name: str, options: ScanOptions = ScanOptions()):
    return make_cache_key(("input",), name, options)


def test_lookup_hits_within_ttl_and_evicts_after():
    clock = FakeClock()
    cache = DetectionCache(ttl_ms=1000, max_entries=10, clock=clock)
    cache.store(_key("email"), ["candidate"])

    clock.advance(0.5)
    assert cache.lookup(_key("email")) == ["candidate"]

    clock.advance(0.6)
    assert cache.lookup(_key("email")) is None
    assert _key("email") not in cache

    stats = cache.stats()
    assert (stats.hits, stats.misses) == (1, 1)


def test_store_evicts_oldest_when_full():
    clock = FakeClock()
    cache = DetectionCache(ttl_ms=60_000, max_entries=2, clock=clock)
    cache.store(_key("a"), [1])
    clock.advance(1)
    cache.store(_key("b"), [2])
    clock.advance(1)
    cache.store(_key("c"), [3])

    assert len(cache) == 2
    assert cache.lookup(_key("a")) is None
    assert cache.lookup(_key("b")) == [2]
    assert cache.lookup(_key("c")) == [3]


def test_store_purges_expired_entries_before_evicting():
    clock = FakeClock()
    cache = DetectionCache(ttl_ms=10_000, max_entries=3, clock=clock)
    cache.store(_key("a"), [1])
    clock.advance(8)
    cache.store(_key("b"), [2])
    cache.store(_key("c"), [3])
    clock.advance(3)
    cache.store(_key("d"), [4])

    assert _key("a") not in cache
    assert all(_key(name) in cache for name in ("b", "c", "d"))
    assert len(cache) == 3


def test_refresh_replaces_entry_wholesale():
    clock = FakeClock()
    cache = DetectionCache(ttl_ms=1000, clock=clock)
    cache.store(_key("email"), [1, 2])
    clock.advance(0.5)
    cache.store(_key("email"), [3])
    clock.advance(0.7)

    assert cache.lookup(_key("email")) == [3]
    assert len(cache) == 1


def test_cache_key_ignores_scheduling_options():
    base = ScanOptions()

    assert _key("email", base) == _key("email", base.with_overrides(debounce_ms=50, cache_ttl_ms=5))
    assert _key("email", base) != _key("email", base.with_overrides(min_score=20))
    assert _key("email") != _key("phone")


def test_clear_empties_the_cache():
    cache = DetectionCache()
    cache.store(_key("email"), [1])
    cache.clear()

    assert len(cache) == 0
    assert cache.stats().to_dict()["size"] == 0


@pytest.mark.asyncio
async def test_second_scan_within_ttl_skips_extraction_and_scoring():
    elements = [StubElement(type="email", name="user_email"), StubElement(name="company")]
    page = StubPage(elements)
    scorer = CountingScorer()
    detector = FieldDetector(scorer=scorer, cache=DetectionCache(ttl_ms=30_000))

    first = await detector.find_fields(page, "email")
    queries = list(page.queries)
    second = await detector.find_fields(page, "email")

    assert [candidate.element for candidate in first] == [candidate.element for candidate in second]
    assert scorer.calls == 1
    assert all(element.snapshot_calls == 1 for element in elements)
    assert page.queries == queries


@pytest.mark.asyncio
async def test_expired_entry_triggers_a_fresh_scan():
    clock = FakeClock()
    element = StubElement(type="email", name="user_email")
    page = StubPage([element])
    detector = FieldDetector(cache=DetectionCache(ttl_ms=1000, clock=clock))

    await detector.find_fields(page, "email")
    clock.advance(2)
    await detector.find_fields(page, "email")

    assert element.snapshot_calls == 2


@pytest.mark.asyncio
async def test_invalid_selector_is_skipped():
    element = StubElement(type="email", name="user_email")
    page = StubPage([element], invalid_selectors={"input[[broken"})
    detector = FieldDetector()

    candidates = await detector.find_fields(page, "email", selectors=("input[[broken", "input"))

    assert [candidate.element for candidate in candidates] == [element]
    assert page.queries[:2] == ["input[[broken", "input"]
