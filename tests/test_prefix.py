"""
Tests for table prefix detection and reconciliation.
"""

import re

import pytest

from conftest import FakeRunner, FakeWordPress
from wp_migrate.core.exceptions import DatabaseImportError, ReconciliationError
from wp_migrate.database.prefix import TablePrefixReconciler, detect_prefix, rewrite_prefix
from wp_migrate.utils.runner import WPCLI


class ConfigFileWordPress(FakeWordPress):
    """WordPress whose ``db prefix`` reads wp-config.php and whose ``config set`` is a no-op."""

    def __init__(self, root, writable: bool = True, **kwargs):
        super().__init__(root, **kwargs)
        self.writable = writable

    def handle(self, args, stdin_path=None, stdout_path=None):
        if args[:2] == ["db", "prefix"]:
            text = (self.root / "wp-config.php").read_text()
            match = re.search(r"\$table_prefix\s*=\s*'([^']*)'", text)
            return 0, (match.group(1) if match else "") + "\n"
        if args[:2] == ["config", "set"]:
            return 1, ""
        return super().handle(args, stdin_path, stdout_path)


class TestDetectPrefix:
    """Test cases for detect_prefix()."""

    def test_plugin_options_table_does_not_win(self):
        tables = ["wp_statistics_options", "wp_options", "wp_posts", "wp_users", "wp_statistics_visits"]
        assert detect_prefix(tables) == "wp_"

    def test_custom_prefix(self):
        assert detect_prefix(["abc_options", "abc_posts", "abc_users"]) == "abc_"

    def test_requires_core_tables(self):
        assert detect_prefix(["wp_options", "wp_posts"]) is None

    def test_first_complete_candidate_wins(self):
        tables = ["a_options", "a_posts", "a_users", "b_options", "b_posts", "b_users"]
        assert detect_prefix(tables) == "a_"

    def test_empty(self):
        assert detect_prefix([]) is None


class TestRewritePrefix:
    """Test cases for rewrite_prefix()."""

    def test_rewrites_assignment_only(self):
        text = "<?php\n// $table_prefix = 'x_';\n$table_prefix  = \"wp_\";\ndefine('A', 1);\n"
        new_text, count = rewrite_prefix(text, "new_")
        assert count == 1
        assert "$table_prefix  = 'new_';" in new_text
        assert "// $table_prefix = 'x_';" in new_text


class TestTablePrefixReconciler:
    """Test cases for TablePrefixReconciler."""

    @pytest.mark.asyncio
    async def test_detect_live(self, wp_root):
        wordpress = FakeWordPress(wp_root, tables=["wp_stats_options", "wps_options", "wps_posts", "wps_users"])
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))
        assert await reconciler.detect_live() == "wps_"

    @pytest.mark.asyncio
    async def test_detect_live_unreachable_database(self, wp_root):
        wordpress = FakeWordPress(wp_root)
        wordpress.failing = [("db", "query")]
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))
        with pytest.raises(DatabaseImportError):
            await reconciler.detect_live()

    @pytest.mark.asyncio
    async def test_unchanged(self, wp_root):
        wordpress = FakeWordPress(wp_root, prefix="wp_")
        runner = FakeRunner(wordpress)
        reconciler = TablePrefixReconciler(WPCLI(runner, wp_root))
        assert await reconciler.reconcile("wp_") == "unchanged"
        assert ["config", "set", "table_prefix", "wp_", "--type=variable"] not in runner.wp_calls()

    @pytest.mark.asyncio
    async def test_config_set_path(self, wp_root):
        wordpress = FakeWordPress(wp_root, prefix="wp_")
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))
        assert await reconciler.reconcile("wps_") == "config-set"
        assert wordpress.prefix == "wps_"

    @pytest.mark.asyncio
    async def test_file_edit_fallback(self, wp_root):
        wordpress = ConfigFileWordPress(wp_root)
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))
        assert await reconciler.reconcile("wps_") == "file-edit"
        assert "$table_prefix = 'wps_';" in (wp_root / "wp-config.php").read_text()
        assert not (wp_root / "wp-config.php.bak").exists()

    @pytest.mark.asyncio
    async def test_failure_restores_config(self, wp_root):
        original = "<?php\n$table_prefix = 'wp_';\n"
        (wp_root / "wp-config.php").write_text(original)
        wordpress = ConfigFileWordPress(wp_root)

        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))

        async def never_verifies(prefix):
            return False

        reconciler._verify = never_verifies
        with pytest.raises(ReconciliationError):
            await reconciler.reconcile("wps_")
        assert (wp_root / "wp-config.php").read_text() == original

    @pytest.mark.asyncio
    async def test_invalid_prefix_refused(self, wp_root):
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(FakeWordPress(wp_root)), wp_root))
        with pytest.raises(ReconciliationError):
            await reconciler.reconcile("wp_'; DROP")

    @pytest.mark.asyncio
    async def test_verify_assumed(self, wp_root):
        wordpress = FakeWordPress(wp_root, tables=["wp_options"])
        reconciler = TablePrefixReconciler(WPCLI(FakeRunner(wordpress), wp_root))
        await reconciler.verify_assumed("wp_")
        with pytest.raises(ReconciliationError):
            await reconciler.verify_assumed("other_")
