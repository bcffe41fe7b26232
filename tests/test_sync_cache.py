"""Tests for the incremental sync cache."""

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from notion_md_gen.errors import CacheError
from notion_md_gen.sync_cache import (
    SyncCache,
    cache_timestamp,
    is_unchanged,
    load_cache,
    save_cache,
)


class TestLoadSave:

    def test_empty_path_gives_empty_cache(self):
        assert load_cache("").pages == {}
        assert load_cache(None).pages == {}

    def test_missing_file_gives_empty_cache(self, tmp_path):
        assert load_cache(tmp_path / "nope.json").pages == {}

    def test_corrupt_file_is_an_error(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CacheError):
            load_cache(path)

    def test_non_object_is_an_error(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(CacheError):
            load_cache(path)

    def test_missing_pages_key_is_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{}", encoding="utf-8")
        assert load_cache(path).pages == {}

    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "cache.json"
        cache = SyncCache()
        cache.put("page-a", "2024-03-05T10:00:00.123456789Z", "hello-world!.md")
        cache.put("page-b", "2024-03-06T00:00:00Z", "2024-03-06/other.md")

        save_cache(path, cache)
        loaded = load_cache(path)

        assert loaded.get("page-a").last_edited == "2024-03-05T10:00:00.123456789Z"
        assert loaded.get("page-a").output_path == "hello-world!.md"
        assert loaded.get("page-b").last_edited == "2024-03-06T00:00:00Z"
        assert loaded.get("page-b").output_path == "2024-03-06/other.md"

    def test_saved_format(self, tmp_path):
        path = tmp_path / "cache.json"
        cache = SyncCache()
        cache.put("page-a", "2024-03-05T10:00:00Z", "a.md")

        save_cache(path, cache)

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "pages": {"page-a": {"last_edited": "2024-03-05T10:00:00Z", "output_path": "a.md"}}
        }
        assert path.read_text(encoding="utf-8").startswith('{\n  "pages"')

    def test_save_with_empty_path_writes_nothing(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        save_cache("", SyncCache())
        assert list(tmp_path.iterdir()) == []

    def test_concurrent_puts(self):
        cache = SyncCache()

        def worker(n):
            for i in range(100):
                cache.put(f"page-{n}-{i}", "t", "p.md")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache.pages) == 800


class TestTimestamp:

    def test_utc_whole_seconds(self):
        stamp = cache_timestamp(datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc))
        assert stamp == "2024-03-05T10:00:00Z"

    def test_fraction_trailing_zeros_trimmed(self):
        stamp = cache_timestamp(datetime(2024, 3, 5, 10, 0, 0, 500000, tzinfo=timezone.utc))
        assert stamp == "2024-03-05T10:00:00.5Z"

    def test_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        stamp = cache_timestamp(datetime(2024, 3, 5, 12, 0, tzinfo=plus_two))
        assert stamp == "2024-03-05T10:00:00Z"

    def test_equal_instants_have_equal_strings(self):
        a = datetime(2024, 3, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        b = datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)
        assert cache_timestamp(a) == cache_timestamp(b)


class TestIsUnchanged:

    EDITED = datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)

    def test_unchanged_with_existing_file(self, tmp_path):
        output = tmp_path / "a.md"
        output.write_text("x")
        cache = SyncCache()
        cache.put("page-a", cache_timestamp(self.EDITED), "a.md")
        assert is_unchanged(cache, "page-a", self.EDITED, output)

    def test_missing_file_forces_render(self, tmp_path):
        cache = SyncCache()
        cache.put("page-a", cache_timestamp(self.EDITED), "a.md")
        assert not is_unchanged(cache, "page-a", self.EDITED, tmp_path / "a.md")

    def test_newer_edit_forces_render(self, tmp_path):
        output = tmp_path / "a.md"
        output.write_text("x")
        cache = SyncCache()
        cache.put("page-a", cache_timestamp(self.EDITED), "a.md")
        later = self.EDITED + timedelta(seconds=1)
        assert not is_unchanged(cache, "page-a", later, output)

    def test_unknown_page_forces_render(self, tmp_path):
        output = tmp_path / "a.md"
        output.write_text("x")
        assert not is_unchanged(SyncCache(), "page-a", self.EDITED, output)
