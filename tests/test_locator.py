"""
Tests for wp-content location and SQL consolidation.
"""

import pytest

from wp_migrate.archive.consolidator import SQLConsolidator
from wp_migrate.archive.locator import ContentLocator
from wp_migrate.core.exceptions import DatabaseImportError


def make_content(root, *children):
    root.mkdir(parents=True, exist_ok=True)
    for child in children:
        (root / child).mkdir()
    return root


class TestContentLocator:
    """Test cases for ContentLocator."""

    @pytest.fixture
    def locator(self):
        return ContentLocator()

    def test_score(self, locator, temp_dir):
        assert locator.score(make_content(temp_dir / "a" / "wp-content", "plugins")) == 1
        assert locator.score(make_content(temp_dir / "b" / "wp-content", "plugins", "themes", "uploads")) == 3

    def test_full_candidate_beats_shallower_partial(self, locator, temp_dir):
        make_content(temp_dir / "wp-content", "uploads")
        deep = make_content(temp_dir / "x" / "y" / "wp-content", "plugins", "themes", "uploads")
        assert locator.locate_best(temp_dir) == deep

    def test_full_candidate_wins_regardless_of_name_order(self, locator, temp_dir):
        full = make_content(temp_dir / "a" / "wp-content", "plugins", "themes", "uploads")
        make_content(temp_dir / "b" / "wp-content", "cache")
        assert locator.locate_best(temp_dir) == full

        make_content(temp_dir / "0" / "wp-content", "uploads")
        assert locator.locate_best(temp_dir) == full

    def test_ties_prefer_shallowest(self, locator, temp_dir):
        shallow = make_content(temp_dir / "wp-content", "plugins", "themes")
        make_content(temp_dir / "cache" / "wp-content", "plugins", "themes")
        assert locator.locate_best(temp_dir) == shallow

    def test_all_zero_falls_back_to_first(self, locator, temp_dir):
        first = make_content(temp_dir / "a" / "wp-content")
        make_content(temp_dir / "b" / "wp-content")
        assert locator.locate_best(temp_dir) == first

    def test_none_found(self, locator, temp_dir):
        assert locator.locate_best(temp_dir) is None

    def test_nested_best_of_best(self, locator, temp_dir):
        roots = [temp_dir / "site1", temp_dir / "site2"]
        make_content(roots[0] / "wp-content", "uploads")
        best = make_content(roots[1] / "public" / "wp-content", "plugins", "themes")
        assert locator.locate_best_nested(roots) == best

    def test_flags(self, locator, temp_dir):
        path = make_content(temp_dir / "wp-content", "plugins", "uploads")
        assert locator.flags(path) == (True, False, True)


class TestSQLConsolidator:
    """Test cases for SQLConsolidator."""

    @pytest.fixture
    def consolidator(self):
        return SQLConsolidator()

    def test_byte_exact_concatenation(self, consolidator, temp_dir):
        sql_dir = temp_dir / "sql"
        sql_dir.mkdir()
        (sql_dir / "wp_posts.sql").write_bytes(b"INSERT posts;")
        (sql_dir / "wp_options.sql").write_bytes(b"INSERT options;\n")
        (sql_dir / "notes.txt").write_bytes(b"ignored")

        output = consolidator.consolidate(sql_dir, temp_dir / "all.sql")
        assert output.read_bytes() == b"INSERT options;\n\nINSERT posts;\n"

    def test_recursive_and_order_by_relative_path(self, consolidator, temp_dir):
        sql_dir = temp_dir / "sql"
        (sql_dir / "b").mkdir(parents=True)
        (sql_dir / "a.sql").write_bytes(b"1")
        (sql_dir / "b" / "a.sql").write_bytes(b"2")
        output = consolidator.consolidate(sql_dir, temp_dir / "all.sql", recursive=True)
        assert output.read_bytes() == b"1\n2\n"

    def test_zero_files_creates_no_output(self, consolidator, temp_dir):
        sql_dir = temp_dir / "sql"
        sql_dir.mkdir()
        with pytest.raises(DatabaseImportError):
            consolidator.consolidate(sql_dir, temp_dir / "all.sql")
        assert not (temp_dir / "all.sql").exists()

    def test_minimum_file_count(self, consolidator, temp_dir):
        sql_dir = temp_dir / "sql"
        sql_dir.mkdir()
        for name in ("a", "b"):
            (sql_dir / f"{name}.sql").write_bytes(b"x")
        with pytest.raises(DatabaseImportError):
            consolidator.consolidate(sql_dir, temp_dir / "all.sql", min_files=5)
        assert consolidator.count(sql_dir) == 2

    def test_output_inside_source_dir_is_not_reread(self, consolidator, temp_dir):
        sql_dir = temp_dir / "sql"
        sql_dir.mkdir()
        (sql_dir / "wp_options.sql").write_bytes(b"A")
        output = sql_dir / "zz-consolidated.sql"
        output.write_bytes(b"stale")
        consolidator.consolidate(sql_dir, output)
        assert output.read_bytes() == b"A\n"
