"""Tests for query routing: bypass, refresh, cache hits and disposal."""

import logging
import subprocess
import sys
import textwrap

import pytest

from alncache.cache import AlignmentCache, CacheState
from alncache.cache import registry as registry_module
from alncache.cache.store import RecordStore
from alncache.errors import CacheDisposedError, StoreError, WindowCapacityError
from alncache.records import record_key
from alncache.regions import ContainmentMode, Region

from conftest import REPO_ROOT, FakeSource, make_record

ANY = ContainmentMode.ANY_OVERLAP
FULL = ContainmentMode.FULLY_CONTAINED


def keys_of(groups):
    return [tuple(record_key(r) for r in group.alignments) for group in groups]


def test_first_query_fills_exact_window(cache, fake_source):
    assert cache.state is CacheState.UNINITIALIZED

    groups = list(cache.query(Region("chr1", 100, 1100)))

    assert cache.state is CacheState.ACTIVE
    assert (cache.window.chrom, cache.window.start, cache.window.end) == ("chr1", 100, 1100)
    assert fake_source.fetches == 1
    assert keys_of(groups) == [
        ("a-100:150", "b-100:150"),
        ("c-140:400",),
        ("g-900:940",),
        ("d-1000:1100",),
    ]


def test_contained_regions_do_not_refresh(cache, fake_source):
    list(cache.query(Region("chr1", 100, 1100)))

    for start, end in [(100, 1100), (100, 101), (500, 700), (1099, 1100), (300, 300)]:
        list(cache.query(Region("chr1", start, end)))

    assert fake_source.fetches == 1
    assert cache.stats.refreshes == 1
    assert cache.stats.hits == 5


def test_oversized_regions_bypass_the_cache(cache, fake_source):
    list(cache.query(Region("chr1", 100, 1100)))
    window = cache.window

    groups = list(cache.query(Region("chr1", 0, 1001)))

    assert cache.window == window
    assert cache.stats.refreshes == 1
    assert cache.stats.bypasses == 1
    assert fake_source.fetches == 2
    assert all(group.count == 1 for group in groups)
    assert [g.representative.query_name for g in groups] == ["a", "b", "c", "d", "g"]


def test_bypass_before_first_window_keeps_cache_uninitialized(cache):
    list(cache.query(Region("chr1", 0, 5000)))
    assert cache.state is CacheState.UNINITIALIZED
    assert cache.window is None


def test_bypass_does_not_apply_validity_filter(fake_source, cache_config, registry):
    fake_source.records.append(make_record("unmapped", 50, 60, flag=0x4))
    with AlignmentCache(fake_source, cache_config, registry=registry) as cache:
        bypassed = [g.representative.query_name for g in cache.query(Region("chr1", 0, 2000))]
        cached = [g.representative.query_name for g in cache.query(Region("chr1", 0, 200))]

    assert "unmapped" in bypassed
    assert "unmapped" not in cached


def test_forward_slide(cache, fake_source):
    list(cache.query(Region("chr1", 100, 1100)))

    groups = list(cache.query(Region("chr1", 1050, 1150)))

    assert (cache.window.start, cache.window.end) == (1050, 2050)
    assert fake_source.queries[-1][0] == Region("chr1", 1050, 2050)
    assert keys_of(groups) == [("d-1000:1100",), ("e-1120:1200",)]


def test_backward_slide(cache, fake_source):
    list(cache.query(Region("chr1", 100, 1100)))
    list(cache.query(Region("chr1", 1050, 1150)))
    assert (cache.window.start, cache.window.end) == (1050, 2050)

    groups = list(cache.query(Region("chr1", 900, 950)))

    assert (cache.window.start, cache.window.end) == (-50, 950)
    assert keys_of(groups) == [("g-900:940",)]
    # everything between -50 and 950 is now cached
    list(cache.query(Region("chr1", 0, 200)))
    assert fake_source.fetches == 3


def test_chromosome_change_uses_exact_bounds(cache):
    list(cache.query(Region("chr1", 100, 1100)))

    groups = list(cache.query(Region("chr2", 0, 100)))

    assert (cache.window.chrom, cache.window.start, cache.window.end) == ("chr2", 0, 100)
    assert keys_of(groups) == [("h-10:60",)]


def test_mode_change_forces_refresh_with_same_bounds(cache, fake_source):
    list(cache.query(Region("chr1", 100, 1100), ANY))
    window = cache.window

    list(cache.query(Region("chr1", 100, 1100), FULL))

    assert fake_source.fetches == 2
    assert cache.window.mode is FULL
    assert (cache.window.start, cache.window.end) == (window.start, window.end)


def test_fully_contained_queries_only_return_contained_records(cache):
    groups = list(cache.query(Region("chr1", 100, 1100), FULL))
    assert keys_of(groups) == [
        ("a-100:150", "b-100:150"),
        ("c-140:400",),
        ("g-900:940",),
        ("d-1000:1100",),
    ]

    groups = list(cache.query(Region("chr1", 120, 950), FULL))
    assert keys_of(groups) == [("c-140:400",), ("g-900:940",)]


def test_identical_queries_return_identical_keys(cache):
    list(cache.query(Region("chr1", 100, 1100)))

    first = keys_of(cache.query(Region("chr1", 120, 1000)))
    second = keys_of(cache.query(Region("chr1", 120, 1000)))

    assert first == second
    assert first


def test_evicted_keys_are_skipped(cache, monkeypatch):
    list(cache.query(Region("chr1", 100, 1100)))
    store = cache.manager.store
    original_get = store.get

    def evicting_get(key):
        if key in ("a-100:150", "c-140:400"):
            return None
        return original_get(key)

    monkeypatch.setattr(store, "get", evicting_get)
    groups = list(cache.query(Region("chr1", 100, 500)))

    assert keys_of(groups) == [("b-100:150",)]
    assert groups[0].representative.query_name == "b"
    assert cache.stats.stale_keys == 2


def test_expired_store_yields_no_groups(fake_source, cache_config, monkeypatch):
    now = [0.0]
    cache = AlignmentCache(fake_source, cache_config)
    monkeypatch.setattr(cache.registry, "_clock", lambda: now[0])

    list(cache.query(Region("chr1", 100, 1100)))
    now[0] += cache_config.max_entry_lifetime_seconds

    assert list(cache.query(Region("chr1", 100, 1100))) == []
    assert cache.state is CacheState.ACTIVE
    cache.dispose()


def test_query_result_is_one_shot(cache):
    groups = cache.query(Region("chr1", 100, 1100))
    assert len(list(groups)) == 4
    assert list(groups) == []


def test_query_accepts_region_strings(cache):
    assert cache.count("chr1:100-1,100") == (4, 5)


def test_invalid_records_are_not_cached(fake_source, cache_config, registry):
    fake_source.records.extend(
        [
            make_record("lowq", 500, 550, mapq=2),
            make_record("unmapped", 600, 650, flag=0x4),
        ]
    )
    cache_config.read_filter = {"min_mapping_quality": 10}
    with AlignmentCache(fake_source, cache_config, registry=registry) as cache:
        names = [g.representative.query_name for g in cache.query(Region("chr1", 300, 700))]
        assert names == ["c"]
        assert cache.manager.records_rejected == 2


def test_custom_validity_predicate(fake_source, cache_config, registry):
    with AlignmentCache(
        fake_source, cache_config, registry=registry, is_valid=lambda r: r.query_name != "c"
    ) as cache:
        names = [g.representative.query_name for g in cache.query(Region("chr1", 100, 500))]
    assert names == ["a"]


def test_store_write_failure_skips_record(cache, monkeypatch, caplog):
    original_put = RecordStore.put

    def failing_put(self, key, record):
        if key == "c-140:400":
            raise StoreError("no space left")
        return original_put(self, key, record)

    monkeypatch.setattr(RecordStore, "put", failing_put)
    with caplog.at_level(logging.WARNING):
        groups = list(cache.query(Region("chr1", 100, 1100)))

    assert "c-140:400" not in [key for keys in keys_of(groups) for key in keys]
    assert cache.manager.write_failures == 1
    assert "Failure to add 140:400" in caplog.text


def test_source_failure_propagates_and_clears_window(cache, fake_source, registry):
    list(cache.query(Region("chr1", 100, 1100)))
    fake_source.error = OSError("truncated file")

    with pytest.raises(OSError):
        cache.query(Region("chr1", 5000, 5100))

    assert cache.state is CacheState.UNINITIALIZED
    assert registry.live_names == []

    fake_source.error = None
    groups = list(cache.query(Region("chr1", 1000, 1100)))
    assert keys_of(groups) == [("d-1000:1100",)]
    assert (cache.window.start, cache.window.end) == (1000, 1100)


def test_previous_store_is_disposed_on_refresh(cache, registry):
    list(cache.query(Region("chr1", 100, 1100)))
    first = cache.manager.store

    list(cache.query(Region("chr2", 0, 100)))

    assert first.disposed
    assert registry.live_names == [cache.manager.store.name]
    assert len(registry.created_names) == 2


def test_manager_rejects_oversized_refresh(cache):
    with pytest.raises(WindowCapacityError):
        cache.manager.refresh("chr1", 0, 1001, ANY)


def test_dispose_is_terminal_and_idempotent(fake_source, cache_config):
    cache = AlignmentCache(fake_source, cache_config)
    list(cache.query(Region("chr1", 100, 1100)))
    store = cache.manager.store

    cache.dispose()
    cache.dispose()

    assert cache.state is CacheState.DISPOSED
    assert store.disposed
    assert cache.registry.live_names == []
    with pytest.raises(CacheDisposedError):
        cache.query(Region("chr1", 100, 200))


def test_pending_results_survive_as_misses_after_refresh(cache):
    list(cache.query(Region("chr1", 100, 1100)))
    pending = cache.query(Region("chr1", 100, 1100))

    list(cache.query(Region("chr2", 0, 100)))

    assert list(pending) == []


def test_empty_source(cache_config, registry):
    source = FakeSource([])
    with AlignmentCache(source, cache_config, registry=registry) as cache:
        assert list(cache.query(Region("chr1", 0, 10))) == []
        assert cache.state is CacheState.ACTIVE


def test_owned_registry_registers_shutdown(fake_source, cache_config, registry, monkeypatch):
    registered = []
    monkeypatch.setattr(registry_module.atexit, "register", registered.append)

    owning = AlignmentCache(fake_source, cache_config)
    borrowing = AlignmentCache(fake_source, cache_config, registry=registry)

    assert registered == [owning.registry.dispose_all]
    owning.dispose()
    borrowing.dispose()


def test_undisposed_cache_releases_spool_at_exit(tmp_path):
    spool = tmp_path / "spool"
    script = textwrap.dedent(
        f"""
        from alncache.cache import AlignmentCache
        from alncache.config import CacheConfig
        from alncache.records import AlignmentRecord

        class ListSource:
            def query(self, region, mode):
                for i in range(50):
                    yield AlignmentRecord(f"r{{i}}", "chr1", i, i + 10, 0, 60, "10M", "")

        config = CacheConfig(
            window_capacity=1000, store_directory={str(spool)!r}, max_in_memory_entries=5
        )
        cache = AlignmentCache(ListSource(), config)
        print(len(list(cache.query("chr1:0-100"))), cache.manager.store.spilled > 0)
        """
    )

    result = subprocess.run(
        [sys.executable, "-c", script],
        cwd=REPO_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )

    assert result.returncode == 0, result.stderr
    assert result.stdout.split() == ["50", "True"]
    assert list(spool.iterdir()) == []
