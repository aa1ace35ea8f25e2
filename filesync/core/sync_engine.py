"""
Sync driver - walks the directory pairs, reconciles, applies and reports
"""
import sys
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath

from .. import config as _cfg
from ..errors import ConfigError, attempt
from ..models import DirectoryPlan, Download, Skip, Upload, rel_join, remote_join
from ..operations.scanner import EMPTY, local_level, remote_level
from ..operations.transfer import apply_actions, describe
from ..state.progress import MB, SyncProgress
from ..utils.ignore_patterns import load_ignore_patterns
from ..utils.logging import block, log, set_verbose, vlog, warn
from .reconciler import plan_totals, reconcile
from .timestamps import METADATA_NAME, format_metadata, get_codec, merge_times, metadata_entries


class SyncDriver:
    """
    One batch pass over a list of SyncPairs.

    Every pair is planned first (parents before children) so the totals are
    known before the first transfer; then each pair's directory plans are
    applied in order, creating a missing folder before anything is put in it.
    Pairs are independent and may be applied on a bounded worker pool.
    """

    def __init__(self, provider, codec, workers: int = 1, dry_run: bool = False):
        self.provider = provider
        self.codec = codec
        self.workers = max(1, workers)
        self.dry_run = dry_run
        self._dir_locks: dict = {}
        self._dir_locks_guard = threading.Lock()

    # ── planning ────────────────────────────────────────────────────────────

    def prepare_roots(self, pair):
        """Create both roots if missing; an existing root is not an error."""
        try:
            pair.local_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            warn(f"cannot create local root {pair.local_root}: {exc}")
        outcome = attempt(self.provider.create_folder, pair.remote_root)
        if not outcome.ok:
            warn(f"cannot create remote root {pair.remote_root}: {outcome.error}")

    def plan_pair(self, pair) -> list:
        """DirectoryPlans for the whole tree of *pair*, parents first."""
        patterns = load_ignore_patterns(pair.local_root)
        plans: list = []
        self._plan_directory(pair, "", pair.local_root, pair.remote_root,
                             True, True, patterns, plans)
        return plans

    def _plan_directory(self, pair, rel_dir: str, local_dir: Path, remote_dir: str,
                        local_exists: bool, remote_exists: bool, patterns: list, out: list):
        local = local_level(local_dir, rel_dir, self.codec, patterns) if local_exists else EMPTY
        remote = (remote_level(self.provider, remote_dir, rel_dir, self.codec, patterns)
                  if remote_exists else EMPTY)

        actions = reconcile(local.files, remote.files, self.codec, local_dir, remote_dir, rel_dir)
        plan = DirectoryPlan(
            pair=pair,
            rel_dir=rel_dir,
            local_dir=local_dir,
            remote_dir=remote_dir,
            actions=actions,
            create_local=not local_exists,
            create_remote=not remote_exists,
        )
        if self.codec.uses_sidecar:
            plan.remote_times = {
                PurePosixPath(r.stored_as).name: r.modified_at
                for r in remote.files.values()
                if r.modified_at is not None
            }
        out.append(plan)
        vlog(f"[plan] {rel_dir or '.'}: {len(actions)} file(s) considered")

        for key in sorted(set(local.folders) | set(remote.folders)):
            l_name = local.folders.get(key)
            r_name = remote.folders.get(key)
            name = l_name or r_name
            self._plan_directory(
                pair,
                rel_join(rel_dir, name),
                local_dir / (l_name or r_name),
                remote_join(remote_dir, r_name or l_name),
                l_name is not None,
                r_name is not None,
                patterns,
                out,
            )

    # ── applying ────────────────────────────────────────────────────────────

    def _directory_lock(self, remote_dir: str) -> threading.Lock:
        key = remote_dir.lower().rstrip("/")
        with self._dir_locks_guard:
            return self._dir_locks.setdefault(key, threading.Lock())

    def apply_directory(self, plan: DirectoryPlan, progress: SyncProgress) -> bool:
        """
        Create the folder where it is missing, then apply its actions.
        False when the folder could not be created and nothing was applied.
        """
        if plan.create_local:
            try:
                plan.local_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                warn(f"cannot create local folder {plan.local_dir}: {exc}; skipping it")
                return False
        if plan.create_remote:
            outcome = attempt(self.provider.create_folder, plan.remote_dir)
            if not outcome.ok:
                warn(f"cannot create remote folder {plan.remote_dir}: {outcome.error}; skipping it")
                return False
            log(f"[dir] created remote folder {plan.remote_dir}")

        if not self.codec.uses_sidecar:
            apply_actions(self.provider, plan.actions, progress)
            return True

        # held from the first transfer until the sidecar is rewritten; another
        # pair may cover the same remote folder
        with self._directory_lock(plan.remote_dir):
            updates: dict = {}

            def record(action):
                if isinstance(action, (Upload, Download)) and action.modified_at is not None:
                    merge_times(updates, {PurePosixPath(action.remote_path).name: action.modified_at})

            apply_actions(self.provider, plan.actions, progress, on_done=record)
            self._write_metadata(plan, updates)
        return True

    def _write_metadata(self, plan: DirectoryPlan, updates: dict):
        """
        Re-read the sidecar and merge: times seen while planning, then what is
        on the remote now, then what this plan transferred.
        """
        path = remote_join(plan.remote_dir, METADATA_NAME)
        try:
            current = self.provider.read_text(path)
        except ConfigError:
            raise
        except Exception as exc:
            warn(f"[meta] cannot read {path}: {exc}; not rewritten")
            return
        times = merge_times(dict(plan.remote_times), metadata_entries(current))
        merge_times(times, updates)
        content = format_metadata(times)
        if content == (current or ""):
            return
        outcome = attempt(self.provider.write_text, content, path)
        if outcome.ok:
            vlog(f"[meta] wrote {path} ({len(times)} entries)")
        else:
            warn(f"cannot write {path}: {outcome.error}; previous metadata kept")

    def _abandon(self, plan: DirectoryPlan, progress: SyncProgress):
        for action in plan.actions:
            if not isinstance(action, Skip):
                progress.record_failure()

    def apply_pair(self, plans: list, progress: SyncProgress):
        """Apply plans in order; a folder that cannot be created takes its subtree with it."""
        failed: list = []
        for plan in plans:
            key = plan.rel_dir.lower()
            if any(key.startswith(prefix) for prefix in failed):
                vlog(f"[dir] {plan.rel_dir}: parent folder missing, skipped")
                self._abandon(plan, progress)
                continue
            if not self.apply_directory(plan, progress):
                self._abandon(plan, progress)
                failed.append(f"{key}/" if key else "")

    # ── run ─────────────────────────────────────────────────────────────────

    def plan(self, pairs) -> list:
        """[(pair, [DirectoryPlan, …]), …]"""
        planned = []
        for pair in pairs:
            log(f"[scan] {pair.local_root} ↔ {pair.remote_root}")
            if not self.dry_run:
                self.prepare_roots(pair)
            planned.append((pair, self.plan_pair(pair)))
        return planned

    def run(self, pairs) -> SyncProgress:
        planned = self.plan(pairs)
        actions = [a for _, plans in planned for p in plans for a in p.actions]
        total_files, total_bytes = plan_totals(actions)
        progress = SyncProgress(total_files, total_bytes)

        log("Sync Analysis Complete:")
        log(f"  Total Files to Sync: {total_files}")
        log(f"  Total Size to Sync: {total_bytes / MB:.2f} MB")

        if self.dry_run:
            for action in actions:
                if not isinstance(action, Skip):
                    log(f"  {describe(action)}  (dry-run)")
            return progress
        if total_files == 0:
            log("[sync] Nothing to transfer — already in sync ✓")

        if self.workers == 1 or len(planned) < 2:
            for _, plans in planned:
                self.apply_pair(plans, progress)
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [pool.submit(self.apply_pair, plans, progress) for _, plans in planned]
                for future in futures:
                    future.result()
        return progress


def run_sync(pairs=None, dry_run=False, verbose=False, workers=None) -> SyncProgress:
    """Run one pass with the current config; exit 1 on a fatal config error."""
    set_verbose(verbose)
    pairs = list(pairs if pairs is not None else _cfg.SYNC_PAIRS)

    header = [f"  Sync  {len(pairs)} pair(s) via {_cfg.PROVIDER} "
              f"({_cfg.TIMESTAMP_STRATEGY} timestamps)"]
    header += [f"   {pair.local_root}  ↔  {pair.remote_root}" for pair in pairs]
    if dry_run:
        header.append("  *** DRY-RUN — no files will be changed ***")
    print()
    block(header)
    print()

    from ..providers import get_provider

    try:
        _cfg.validate()
        provider = get_provider()
        codec = get_codec(_cfg.TIMESTAMP_STRATEGY)
        with provider:
            driver = SyncDriver(provider, codec,
                                workers=workers or _cfg.WORKERS, dry_run=dry_run)
            progress = driver.run(pairs)
    except ConfigError as exc:
        warn(f"Configuration error: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        print()
        warn("Interrupted by user. Run again to pick up where this run stopped.")
        sys.exit(130)
    except Exception as exc:
        warn(f"Sync failed: {exc}")
        if verbose:
            traceback.print_exc()
        sys.exit(1)

    print()
    block([
        " SUMMARY",
        f"  Synced  : {progress.files_done}/{progress.total_files} "
        f"({progress.file_percent:.1f}%)",
        f"  Data    : {progress.bytes_done / MB:.2f}/{progress.total_bytes / MB:.2f} MB "
        f"({progress.byte_percent:.1f}%)",
        f"  Failed  : {progress.failed}",
    ], rule="─")
    return progress
