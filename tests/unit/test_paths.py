"""
Unit tests for nested-array field paths.
"""

from dynpage.paths import (
    IndexedPath,
    ScalarPath,
    compact_arrays,
    parse_path,
    read_path,
    write_path,
)


class TestParsePath:
    def test_indexed_form(self):
        assert parse_path("batches[2].batchId") == IndexedPath(array="batches", index=2, prop="batchId")

    def test_plain_key(self):
        assert parse_path("title") == ScalarPath(key="title")

    def test_anything_else_is_scalar(self):
        assert isinstance(parse_path("batches[0]"), ScalarPath)
        assert isinstance(parse_path("batches[x].id"), ScalarPath)
        assert isinstance(parse_path("a.b"), ScalarPath)
        assert isinstance(parse_path("a[0].b.c"), ScalarPath)

    def test_str_gives_back_the_source(self):
        assert str(parse_path("batches[1].name")) == "batches[1].name"
        assert str(parse_path("title")) == "title"


class TestReadPath:
    def test_reads_scalar(self):
        assert read_path({"title": "x"}, ScalarPath("title")) == "x"

    def test_reads_indexed(self):
        row = {"batches": [{"batchId": 1}, {"batchId": 2}]}

        assert read_path(row, IndexedPath("batches", 1, "batchId")) == 2

    def test_missing_steps_are_none(self):
        path = IndexedPath("batches", 3, "batchId")

        assert read_path({"batches": [{"batchId": 1}]}, path) is None
        assert read_path({"batches": "oops"}, path) is None
        assert read_path({"batches": [None]}, IndexedPath("batches", 0, "batchId")) is None
        assert read_path(None, ScalarPath("title")) is None


class TestWritePath:
    def test_grows_array_with_empty_slots(self):
        payload = {}

        write_path(payload, IndexedPath("batches", 2, "batchId"), 7)

        assert payload == {"batches": [None, None, {"batchId": 7}]}

    def test_merges_into_existing_entry(self):
        payload = {}

        write_path(payload, IndexedPath("batches", 0, "batchId"), 7)
        write_path(payload, IndexedPath("batches", 0, "name"), "Morning")

        assert payload == {"batches": [{"batchId": 7, "name": "Morning"}]}

    def test_compact_drops_unpopulated_slots(self):
        payload = {"batches": [None, {"batchId": 7}, {}], "tags": [None]}

        compact_arrays(payload, {"batches"})

        assert payload == {"batches": [{"batchId": 7}], "tags": [None]}
