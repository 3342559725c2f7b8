"""
Push mode: copy the local WordPress site to a remote destination.

Runs on the source WordPress root. The database is exported locally,
transferred with rsync into ``<dest_root>/db-imports`` and imported there;
wp-content is pushed with rsync after the destination copy has been moved
aside.
"""

import gzip
import logging
import re
import shlex
import shutil
import socket
from pathlib import Path
from typing import List, Optional

from wp_migrate.core.exceptions import DatabaseImportError, PreflightError, TransferError
from wp_migrate.database.prefix import TablePrefixReconciler
from wp_migrate.models.config import PushOptions
from wp_migrate.models.run import RunMode, RunState
from wp_migrate.orchestrator.orchestrator import MigrationOrchestrator
from wp_migrate.transfer.rsync import RsyncTransfer
from wp_migrate.utils.runner import WPCLI, RemoteShell

logger = logging.getLogger(__name__)

DUMP_DIR = "db-dumps"
REMOTE_IMPORT_DIR = "db-imports"


def site_tag(url: str) -> str:
    """Filesystem-safe tag for a site URL: host only, odd characters replaced."""
    tag = re.sub(r"^https?://", "", url or "")
    tag = tag.split("/", 1)[0]
    return re.sub(r"[^A-Za-z0-9._-]", "_", tag) or "site"


class PushMigration(MigrationOrchestrator):
    """Push the local site's database and wp-content to ``dest_host:dest_root``."""

    mode = RunMode.PUSH

    def __init__(self, options: PushOptions, **kwargs):
        super().__init__(options, **kwargs)
        self.options: PushOptions = options
        self.remote = self.guard.track_remote(
            RemoteShell(options.dest_host, self.runner, ssh_opts=options.ssh_opts)
        )
        self.source = WPCLI(self.runner, options.wp_root, label="source")
        self.dest = WPCLI(self.runner, options.dest_root, remote=self.remote, label="destination")
        self.transfer = RsyncTransfer(self.runner, remote=self.remote, extra_opts=options.rsync_opts)

        self.source_prefix = ""
        self.dest_prefix = ""
        self.source_home = self.source_site = ""
        self.dest_home = self.dest_site = ""
        self.source_content = ""
        self.dest_content = ""
        self.source_size = "unknown"
        self.dest_free = "unknown"
        self.content_backup: Optional[str] = None

    @property
    def remote_import_dir(self) -> str:
        return f"{self.options.dest_root.rstrip('/')}/{REMOTE_IMPORT_DIR}"

    def dump_path(self) -> Path:
        name = f"db_{site_tag(self.source_home or self.source_site)}_{self.run.stamp}.sql"
        path = Path(self.options.wp_root) / DUMP_DIR / name
        return path.with_name(path.name + ".gz") if self.options.gzip_db else path

    async def _execute(self):
        self.advance(RunState.VERIFY)
        await self.preflight()
        await self.discover()

        self.advance(RunState.PREVIEW)
        self.show_preview("MIGRATION PREVIEW", self.preview_lines())
        self.confirm()

        self.advance(RunState.MAINTENANCE_ON)
        if self.options.maintenance_source:
            await self.maintenance.enable("source", self.source)
        else:
            logger.info("Skipping maintenance mode on source (--no-maint-source).")
        await self.maintenance.enable("destination", self.dest)

        self.advance(RunState.APPLY_DB)
        dump = await self.export_database()
        await self.send_dump(dump)
        if self.options.import_db:
            await self.import_dump(dump)
            self.advance(RunState.RECONCILE)
            await self.reconcile_prefix()
            await self.align_urls(self.dest, self.dest_home, self.dest_site)
        else:
            self.report_unimported(dump)

        self.advance(RunState.APPLY_CONTENT)
        if self.options.preserve_dest_plugins:
            logger.info("Detecting plugins/themes for preservation...")
            await self.collect_unique_destination_items(
                self.dest, await self.source.plugin_names(), await self.source.theme_names()
            )
        await self.backup_destination_content()
        try:
            with self.progress(f"Pushing {self.source_content}"):
                await self.transfer.push_tree(
                    self.source_content, self.dest_content,
                    dry_run=self.dry_run, stellarsites=self.options.stellarsites
                )
        except TransferError:
            await self.restore_destination_content()
            raise
        if self.options.preserve_dest_plugins and self.content_backup:
            await self.restore_unique_items()
        await self.flush_redis(self.dest)

        self.advance(RunState.MAINTENANCE_OFF)
        await self.maintenance.disable("destination")
        await self.maintenance.disable("source")
        self.report_completion(dump)

    async def preflight(self):
        self.check_dependencies(["wp", "rsync", "ssh"])
        self.remote.open()
        await self.remote.check_connection()
        logger.info(f"SSH connection to {self.remote.host} verified.")
        await self.verify_installed(self.source, "source")
        await self.verify_installed(self.dest, "destination")

        if self.options.gzip_db and self.options.import_db:
            result = await self.remote.run("command -v gzip >/dev/null 2>&1")
            if not result.ok:
                raise PreflightError(
                    "Destination server is missing gzip command.",
                    missing_tools=["gzip"],
                    hint=(
                        f"Install gzip on the destination (ssh {self.remote.host} \"sudo apt-get install gzip\")\n"
                        "or skip compression with --no-gzip."
                    )
                )

    async def _url(self, wp: WPCLI, name: str) -> str:
        result = await wp.run("option", "get", name, check=False)
        return result.stdout.strip() if result.ok else ""

    async def discover(self):
        self.source_prefix = await self.source.db_prefix()
        self.dest_prefix = await self.dest.db_prefix()
        logger.info(f"Source DB prefix: {self.source_prefix}")
        logger.info(f"Dest   DB prefix: {self.dest_prefix}")

        self.source_home = await self._url(self.source, "home")
        self.source_site = await self._url(self.source, "siteurl")
        self.dest_home = await self._url(self.dest, "home")
        self.dest_site = await self._url(self.dest, "siteurl")
        if self.options.dest_home_url:
            logger.info(f"Using --dest-home-url override: {self.options.dest_home_url}")
            self.dest_home = self.options.dest_home_url
        if self.options.dest_site_url:
            logger.info(f"Using --dest-site-url override: {self.options.dest_site_url}")
            self.dest_site = self.options.dest_site_url

        source_display = self.source_home or self.source_site
        dest_display = self.dest_home or self.dest_site
        self.run.pairs.add_alignment(self.source_home, self.dest_home)
        self.run.pairs.add_alignment(self.source_site, self.dest_site)
        self.run.pairs.add_host_alignment(source_display, dest_display)
        if self.run.pairs:
            for pair in self.run.pairs:
                logger.info(f"Detected URL mismatch (align after import): {pair.old} -> {pair.new}")
        elif source_display and dest_display:
            logger.info("Source and destination URLs already aligned.")
        else:
            logger.info("Skipping URL alignment check: missing site URL on source or destination.")

        self.source_content = await self.source.content_dir()
        self.dest_content = await self.dest.content_dir()
        logger.info(f"Source WP_CONTENT_DIR: {self.source_content}")
        logger.info(f"Dest   WP_CONTENT_DIR: {self.dest_content}")
        self.source_size = await self._source_size()
        self.dest_free = await self._dest_free()
        logger.info(f"Approx source wp-content size: {self.source_size}")
        logger.info(f"Approx destination free space: {self.dest_free}")

    async def _source_size(self) -> str:
        result = await self.runner.run(["du", "-sh", self.source_content])
        return result.stdout.split()[0] if result.ok and result.stdout.strip() else "unknown"

    async def _dest_free(self) -> str:
        result = await self.remote.run(
            f"df -h {shlex.quote(self.dest_content)} | awk 'NR==2{{print $4}}'"
        )
        return result.stdout.strip() if result.ok and result.stdout.strip() else "unknown"

    def preview_lines(self) -> List[str]:
        source_url = self.source_home or self.source_site
        dest_url = self.dest_home or self.dest_site
        lines = [
            "Mode: PUSH (source -> destination via SSH)",
            "",
            "Source:",
            f"  Location: {socket.gethostname()}:{self.options.wp_root}",
        ]
        if source_url:
            lines.append(f"  URL: {source_url}")
        lines += [f"  wp-content: {self.source_content} ({self.source_size})", "", "Destination:",
                  f"  Location: {self.remote.host}:{self.options.dest_root}"]
        if dest_url:
            lines.append(f"  URL: {dest_url}")
        lines += [f"  wp-content: {self.dest_content}", f"  Free space: {self.dest_free}", "", "Operations:",
                  "  - Export database from source",
                  f"  - Transfer database to destination ({'gzipped' if self.options.gzip_db else 'uncompressed'})"]
        if self.options.import_db:
            lines.append("  - Import database on destination")
            if self.source_prefix != self.dest_prefix:
                lines.append(f"  - Update table prefix {self.dest_prefix} -> {self.source_prefix}")
            if self.run.pairs:
                lines.append(
                    "  - Run search-replace for URL alignment" if self.options.search_replace
                    else "  - Update home/siteurl only (--no-search-replace)"
                )
        else:
            lines.append("  - Skip database import (--no-import-db)")
        lines += ["  - Backup destination wp-content", "  - Sync wp-content from source to destination"]
        if self.options.preserve_dest_plugins:
            lines.append("  - Restore unique destination plugins/themes")
        lines += ["", "Maintenance mode:",
                  f"  Source: {'YES' if self.options.maintenance_source else 'NO (--no-maint-source)'}",
                  "  Destination: YES"]
        return lines

    async def export_database(self) -> Path:
        dump = self.dump_path()
        if self.dry_run:
            logger.info(f"[dry-run] Would export DB to: {dump} (gzip: {self.options.gzip_db})")
            logger.info(f"[dry-run] Would create dest dir: {self.remote_import_dir} and transfer dump")
            return dump

        dump.parent.mkdir(parents=True, exist_ok=True)
        raw = dump.with_suffix("") if self.options.gzip_db else dump
        logger.info("Exporting DB on source...")
        with self.progress("Exporting database"):
            result = await self.source.run("db", "export", "-", "--add-drop-table", check=False, stdout_path=raw)
        if not result.ok:
            raise DatabaseImportError(f"Database export failed on source: {result.stderr.strip()}")
        if self.options.gzip_db:
            with open(raw, "rb") as src, gzip.open(dump, "wb") as dst:
                shutil.copyfileobj(src, dst)
            raw.unlink()
        logger.info(f"DB dump created: {dump}")
        return dump

    async def send_dump(self, dump: Path):
        if self.dry_run:
            return
        logger.info(f"Preparing destination import dir: {self.remote_import_dir}")
        result = await self.remote.run(f"mkdir -p {shlex.quote(self.remote_import_dir)}")
        if not result.ok:
            raise TransferError(f"Cannot create {self.remote_import_dir} on destination: {result.stderr.strip()}")
        logger.info("Transferring DB dump to destination...")
        with self.progress("Transferring database dump"):
            await self.transfer.send_file(str(dump), self.remote_import_dir)

    async def import_dump(self, dump: Path):
        remote_dump = f"{self.remote_import_dir}/{dump.name}"
        if self.dry_run:
            logger.info("[dry-run] Would import DB on destination after transfer.")
            if self.source_prefix != self.dest_prefix:
                logger.info(
                    f"[dry-run] Would update destination table prefix from "
                    f"'{self.dest_prefix}' to '{self.source_prefix}'."
                )
            return

        sql_path = remote_dump
        if self.options.gzip_db:
            sql_path = remote_dump[:-len(".gz")]
            logger.info("Decompressing DB dump on destination for import...")
            result = await self.remote.run(f"gzip -dc {shlex.quote(remote_dump)} > {shlex.quote(sql_path)}")
            if not result.ok:
                raise DatabaseImportError(f"Failed to decompress {remote_dump}: {result.stderr.strip()}")

        logger.info(f"Importing DB on destination: {sql_path}")
        try:
            with self.progress("Importing database"):
                result = await self.dest.run("db", "import", sql_path, check=False)
            if not result.ok:
                raise DatabaseImportError(
                    f"Database import failed on destination: {result.stderr.strip()}",
                    hint=(
                        "The destination database may be partially imported. Re-run the import manually:\n"
                        f"  ssh {self.remote.host} \"cd {self.options.dest_root} && wp db import {sql_path}\""
                    )
                )
        finally:
            if self.options.gzip_db:
                logger.info("Removing temporary decompressed DB dump on destination.")
                await self.remote.run(f"rm -f {shlex.quote(sql_path)}")

    async def reconcile_prefix(self):
        if self.source_prefix == self.dest_prefix:
            return
        if self.dry_run:
            return
        self.run.notes["previous_prefix"] = self.dest_prefix
        reconciler = TablePrefixReconciler(self.dest)
        await reconciler.reconcile(self.source_prefix)
        self.dest_prefix = self.source_prefix

    def report_unimported(self, dump: Path):
        remote_dump = f"{self.remote_import_dir}/{dump.name}"
        logger.info(f"DB dump ready on destination (not imported): {remote_dump}")
        for pair in self.run.pairs:
            logger.info(
                f"NOTE: After importing manually, replace '{pair.old}' with '{pair.new}' on the destination database."
            )

    async def backup_destination_content(self):
        backup = f"{self.dest_content.rstrip('/')}.backup-{self.run.stamp}"
        if self.dry_run:
            logger.info(f"[dry-run] Would move {self.dest_content} to {backup} on destination.")
            self.content_backup = backup
            return
        exists = await self.remote.run(f"[ -e {shlex.quote(self.dest_content)} ]")
        if not exists.ok:
            logger.info("Destination wp-content not found; skipping backup step.")
            return
        logger.info(f"Backing up destination wp-content to: {backup}")
        result = await self.remote.run(f"mv {shlex.quote(self.dest_content)} {shlex.quote(backup)}")
        if not result.ok:
            raise TransferError(f"Failed to move destination wp-content aside: {result.stderr.strip()}")
        self.content_backup = backup
        self.run.notes["content_backup"] = backup

    async def restore_destination_content(self):
        """Move the destination wp-content backup back into place after a failed push."""
        if self.dry_run or not self.content_backup:
            return
        dest = shlex.quote(self.dest_content)
        backup = shlex.quote(self.content_backup)
        logger.error(f"wp-content push failed; restoring {self.content_backup} on destination")
        result = await self.remote.run(f"rm -rf {dest} && mv {backup} {dest}")
        if not result.ok:
            logger.error(f"Could not restore destination wp-content: {result.stderr.strip()}")
            logger.error(f"Restore manually: ssh {self.remote.host} \"rm -rf {dest} && mv {backup} {dest}\"")
            return
        logger.info(f"Destination wp-content restored from {self.content_backup}")
        self.content_backup = None
        self.run.notes.pop("content_backup", None)

    async def restore_unique_items(self):
        plugins = self.run.notes.get("unique_plugins", [])
        themes = self.run.notes.get("unique_themes", [])
        if not plugins and not themes:
            return
        logger.info("Restoring destination plugins/themes not in source...")
        for kind, items in (("plugins", plugins), ("themes", themes)):
            for item in items:
                if self.dry_run:
                    logger.info(f"[dry-run]   Would restore {kind[:-1]}: {item}")
                    continue
                logger.info(f"    Restoring {kind[:-1]}: {item}")
                source = f"{self.content_backup}/{kind}/{item}"
                target = f"{self.dest_content}/{kind}/"
                result = await self.remote.run(f"cp -a {shlex.quote(source)} {shlex.quote(target)}")
                if not result.ok:
                    logger.warning(f"Failed to restore {kind[:-1]}: {item}")
        if not self.dry_run:
            await self.deactivate_plugins(self.dest, plugins)

    def report_completion(self, dump: Path):
        remote_dump = f"{self.remote_import_dir}/{dump.name}"
        if self.dry_run:
            logger.info("[dry-run] Migration preview complete.")
            logger.info(f"[dry-run] DB file would be placed at: {remote_dump}")
            return

        logger.info("Migration complete.")
        logger.info(f"DB file on destination: {remote_dump}")
        if self.content_backup:
            lines = [
                "To restore the previous wp-content on destination:",
                f"  ssh {self.remote.host} \"rm -rf '{self.dest_content}' && mv '{self.content_backup}' '{self.dest_content}'\"",
            ]
            previous = self.run.notes.get("previous_prefix")
            if previous:
                lines += [
                    "",
                    "If restoring the database from backup, also restore the table prefix:",
                    f"  ssh {self.remote.host} \"cd '{self.options.dest_root}' && "
                    f"wp config set table_prefix '{previous}' --type=variable\"",
                ]
            lines += ["", f"Backup location on destination: {self.content_backup}"]
            self.show_preview("ROLLBACK INSTRUCTIONS (if needed)", lines)
        if not self.options.import_db:
            sql_name = remote_dump[:-len(".gz")] if self.options.gzip_db else remote_dump
            command = f"cd \"{self.options.dest_root}\" && "
            if self.options.gzip_db:
                command += f"gzip -dc \"{remote_dump}\" > \"{sql_name}\" && wp db import \"{sql_name}\" && rm \"{sql_name}\""
            else:
                command += f"wp db import \"{remote_dump}\""
            logger.info(f"NOTE: Import was skipped (--no-import-db). To import later on destination:\n  {command}")
