"""Unit tests for result file discovery."""

import threading
from unittest.mock import MagicMock

import pytest

from src.features.evaluation.discovery import (
    ResultFileFinder,
    find_result_file,
    infer_subdirectories,
    parse_s3_uri,
    select_result_key,
)
from src.features.evaluation.errors import ConfigError, FormatError, TransportError
from tests.helpers.fakes import FakeObjectStore


def is_subsequence(expected: list[str], actual: list[str]) -> bool:
    it = iter(actual)
    return all(item in it for item in expected)


class TestParseS3Uri:
    """Tests for S3 URI parsing."""

    def test_bucket_and_key(self) -> None:
        """Test splitting a full URI."""
        assert parse_s3_uri("s3://bucket/output-abc/job/") == (
            "bucket",
            "output-abc/job/",
        )

    @pytest.mark.parametrize(
        "uri",
        [
            "https://bucket/key",
            "bucket/key",
            "s3://",
            "s3:///key",
            "s3://bucket",
            "s3://bucket/",
            "",
        ],
    )
    def test_invalid_uri(self, uri: str) -> None:
        """Test malformed URIs raise FormatError."""
        with pytest.raises(FormatError):
            parse_s3_uri(uri)


class TestSelectResultKey:
    """Tests for result file priority."""

    def test_canonical_name_first(self) -> None:
        """Test the canonical results file beats other JSON files."""
        keys = ["x/out.jsonl", "x/other.json", "x/evaluation_results.json"]
        assert select_result_key(keys) == "x/evaluation_results.json"

    def test_jsonl_before_json(self) -> None:
        """Test JSON Lines files beat plain JSON files."""
        assert select_result_key(["x/a.json", "x/b.jsonl"]) == "x/b.jsonl"

    def test_metadata_files_excluded(self) -> None:
        """Test metadata JSON files are never chosen."""
        assert select_result_key(["x/job_metadata.json"]) is None
        assert select_result_key(["x/job_metadata.json", "x/r.json"]) == "x/r.json"

    def test_directories_ignored(self) -> None:
        """Test directory entries are not files."""
        assert select_result_key(["x/evaluation_results.json/"]) is None


class TestInferSubdirectories:
    """Tests for virtual directory inference."""

    def test_directory_entries_and_file_parents(self) -> None:
        """Test both directory keys and file parents are inferred."""
        keys = ["a/b/", "a/c/file.txt", "a/c/other.txt", "a/top.txt"]
        assert infer_subdirectories(keys, "a/") == ["a/b/", "a/c/"]

    def test_prefix_itself_skipped(self) -> None:
        """Test the listed prefix is never returned."""
        assert infer_subdirectories(["a/b/c/x.txt"], "a/b/c/") == []

    def test_keys_without_separator(self) -> None:
        """Test top-level keys imply no directory."""
        assert infer_subdirectories(["readme.txt"], "") == []


class TestResultFileFinder:
    """Tests for the recursive search."""

    @pytest.mark.unit
    def test_canonical_file_wins_over_recursion(self) -> None:
        """Test the canonical file is returned without entering c/."""
        store = FakeObjectStore()
        store.add_objects(
            "bucket",
            {"a/b/evaluation_results.json": {}, "a/b/c/ignored.txt": ""},
        )
        finder = ResultFileFinder(store)

        key = finder.find("bucket", "a")

        assert key == "a/b/evaluation_results.json"
        assert "a/b/c/" not in finder.listed_prefixes

    @pytest.mark.unit
    def test_recurses_through_inferred_directories(self) -> None:
        """Test discovery walks a/b/ then a/b/c/ to find the JSONL file."""
        store = FakeObjectStore()
        store.add_objects("bucket", {"a/b/c/results.jsonl": []})
        finder = ResultFileFinder(store)

        key = finder.find("bucket", "a")

        assert key == "a/b/c/results.jsonl"
        assert is_subsequence(["a/b/", "a/b/c/"], finder.listed_prefixes)

    @pytest.mark.unit
    def test_flat_listing_returns_directly(self) -> None:
        """Test a recursive listing finds the file in one call."""
        store = FakeObjectStore(delimited=False)
        store.add_objects("bucket", {"a/b/c/results.jsonl": []})
        finder = ResultFileFinder(store)

        assert finder.find("bucket", "a") == "a/b/c/results.jsonl"
        assert finder.listed_prefixes == ["a"]

    @pytest.mark.unit
    def test_find_result_file_helper(self) -> None:
        """Test the one-off helper searches like a finder."""
        store = FakeObjectStore()
        store.add_objects("bucket", {"out/job/evaluation_results.json": []})

        assert find_result_file(store, "bucket", "out/") == (
            "out/job/evaluation_results.json"
        )

    @pytest.mark.unit
    def test_not_found(self) -> None:
        """Test None when nothing matches."""
        store = FakeObjectStore()
        store.add_objects("bucket", {"a/b/notes.txt": "", "a/c/d/log.txt": ""})
        finder = ResultFileFinder(store)

        assert finder.find("bucket", "a/") is None
        assert sorted(finder.listed_prefixes) == ["a/", "a/b/", "a/c/", "a/c/d/"]

    @pytest.mark.unit
    def test_listing_budget_bounds_search(self) -> None:
        """Test the search stops once the listing budget is spent."""
        store = FakeObjectStore()
        store.add_objects(
            "bucket", {f"out/d{i}/x{i}/log.txt": "" for i in range(10)}
        )
        finder = ResultFileFinder(store, max_listings=3)

        assert finder.find("bucket", "out/") is None
        assert len(store.list_calls) == 3

    @pytest.mark.unit
    def test_exhausted_budget_logged_once(self) -> None:
        """Test a wide layout stops at the budget with a single warning."""
        store = FakeObjectStore()
        store.add_objects(
            "bucket", {f"out/d{i}/log.txt": "" for i in range(20)}
        )
        finder = ResultFileFinder(store, max_listings=2)
        finder._log = MagicMock()  # noqa: SLF001

        assert finder.find("bucket", "out/") is None

        events = [c.args[0] for c in finder._log.warning.call_args_list]  # noqa: SLF001
        assert events.count("discovery_budget_exhausted") == 1
        assert store.listed_prefixes == ["out/", "out/d0/"]

    @pytest.mark.unit
    def test_concurrent_searches_keep_separate_budgets(self) -> None:
        """Test overlapping searches on one finder do not share state."""
        entered = threading.Event()
        release = threading.Event()

        class BlockingStore(FakeObjectStore):
            def list_objects(self, bucket: str, prefix: str) -> list[str]:
                if bucket == "deep" and prefix == "p/d1/":
                    entered.set()
                    release.wait(5.0)
                return super().list_objects(bucket, prefix)

        store = BlockingStore()
        chain = "/".join(f"d{i}" for i in range(1, 10))
        store.add_objects("deep", {f"p/{chain}/log.txt": ""})
        store.add_objects("other", {"q/results.jsonl": []})
        finder = ResultFileFinder(store, max_listings=3)
        deep_results: list[str | None] = []

        thread = threading.Thread(
            target=lambda: deep_results.append(finder.find("deep", "p/"))
        )
        thread.start()
        assert entered.wait(5.0)

        assert finder.find("other", "q/") == "q/results.jsonl"

        release.set()
        thread.join(5.0)

        deep_listings = [p for b, p in store.list_calls if b == "deep"]
        assert deep_results == [None]
        assert deep_listings == ["p/", "p/d1/", "p/d1/d2/"]

    @pytest.mark.unit
    def test_prefix_never_listed_twice(self) -> None:
        """Test a store that lists the prefix itself cannot loop."""

        class LoopingStore(FakeObjectStore):
            def list_objects(self, bucket: str, prefix: str) -> list[str]:
                self.list_calls.append((bucket, prefix))
                return ["loop/", "loop/x/"]

        store = LoopingStore()
        finder = ResultFileFinder(store)

        assert finder.find("bucket", "loop/") is None
        assert store.listed_prefixes == ["loop/", "loop/x/"]

    @pytest.mark.unit
    def test_listing_error_propagates(self) -> None:
        """Test transport failures are raised to the aggregator."""
        store = FakeObjectStore()
        store.list_error = TransportError("boom")
        finder = ResultFileFinder(store)

        with pytest.raises(TransportError):
            finder.find("bucket", "a/")

    def test_rejects_zero_budget(self) -> None:
        """Test the listing budget must allow one listing."""
        with pytest.raises(ConfigError):
            ResultFileFinder(FakeObjectStore(), max_listings=0)
