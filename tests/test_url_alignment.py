"""
Tests for search-replace pair generation.
"""

from wp_migrate.database.url_alignment import (
    SearchReplacePair,
    URLAlignmentEngine,
    host_only,
    json_escape,
    variants_for,
)


class TestVariantsFor:
    """Test cases for variants_for()."""

    def test_trailing_slash_example(self):
        pairs = variants_for("https://old.example.com/", "https://new.example.com")

        assert SearchReplacePair("https://old.example.com/", "https://new.example.com") in pairs
        assert SearchReplacePair("https://old.example.com", "https://new.example.com") in pairs
        assert SearchReplacePair("https://old.example.com/", "https://new.example.com/") in pairs
        assert SearchReplacePair("https:\\/\\/old.example.com", "https:\\/\\/new.example.com") in pairs
        assert SearchReplacePair("old.example.com", "new.example.com") in pairs
        assert SearchReplacePair("//old.example.com", "//new.example.com") in pairs
        assert all(pair.old != pair.new for pair in pairs)
        assert len(pairs) == len(set(pairs))

    def test_order_is_exact_first_host_last(self):
        pairs = variants_for("http://a.test", "https://b.test")
        assert pairs[0] == SearchReplacePair("http://a.test", "https://b.test")
        assert pairs[-2:] == [
            SearchReplacePair("a.test", "b.test"),
            SearchReplacePair("//a.test", "//b.test"),
        ]

    def test_equal_urls_produce_nothing(self):
        assert variants_for("https://same.test/", "https://same.test/") == []

    def test_empty_side_produces_nothing(self):
        assert variants_for("", "https://new.test") == []
        assert variants_for("https://old.test", "") == []

    def test_scheme_change_keeps_host_pairs_out(self):
        pairs = variants_for("http://site.test", "https://site.test")
        assert SearchReplacePair("site.test", "site.test") not in pairs
        assert all(pair.old != pair.new for pair in pairs)

    def test_without_host(self):
        pairs = variants_for("https://old.test/blog", "https://new.test/blog", include_host=False)
        assert SearchReplacePair("old.test", "new.test") not in pairs


class TestHelpers:
    """Test cases for URL helpers."""

    def test_host_only(self):
        assert host_only("https://example.com/blog") == "example.com"
        assert host_only("//example.com:8080/x") == "example.com:8080"
        assert host_only("example.com") == "example.com"

    def test_json_escape(self):
        assert json_escape("https://a.test/x") == "https:\\/\\/a.test\\/x"


class TestURLAlignmentEngine:
    """Test cases for URLAlignmentEngine."""

    def test_deduplicates_across_alignments(self):
        engine = URLAlignmentEngine()
        first = engine.add_alignment("https://old.test", "https://new.test")
        second = engine.add_alignment("https://old.test/", "https://new.test/")
        assert first > 0
        assert second == 0
        assert len(engine.pairs) == len(set(engine.pairs))

    def test_insertion_order_preserved(self):
        engine = URLAlignmentEngine()
        engine.add_pair("b", "c")
        engine.add_pair("a", "b")
        engine.add_pair("b", "c")
        assert [str(pair) for pair in engine] == ["b -> c", "a -> b"]

    def test_rejects_noop_pairs(self):
        engine = URLAlignmentEngine()
        assert engine.add_pair("x", "x") is False
        assert engine.add_pair("", "y") is False
        assert not engine

    def test_host_alignment(self):
        engine = URLAlignmentEngine()
        assert engine.add_host_alignment("https://old.test/wp", "https://new.test") == 2
        assert engine.pairs[1] == SearchReplacePair("//old.test", "//new.test")
