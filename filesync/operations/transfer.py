"""
Applying sync actions through a storage provider
"""
import os
import uuid
from typing import Callable, Optional

from ..core.timestamps import to_epoch
from ..errors import Outcome, attempt
from ..models import PARTIAL_SUFFIX, Delete, Download, Skip, Upload
from ..state.progress import SyncProgress
from ..utils.logging import log, warn


def upload_file(provider, action: Upload) -> Outcome:
    """
    Upload, then remove the copy it supersedes. The old copy is only deleted
    once the new one is in place; if that delete fails the next run sees two
    timestamped copies and removes the older one.
    """
    outcome = attempt(provider.upload, str(action.local_path), action.remote_path)
    if outcome.ok and action.supersedes:
        removed = attempt(provider.delete, action.supersedes)
        if not removed.ok:
            warn(f"  could not remove superseded {action.supersedes}: {removed.error}")
    return outcome


def download_file(provider, action: Download) -> Outcome:
    """
    Download into a temporary sibling and move it into place only when the
    copy is complete, so the destination is never a truncated file. The local
    mtime is set to the remote instant so the next run sees them as equal.
    """
    dest = action.local_path
    tmp = dest.with_name(f".{dest.name}.{uuid.uuid4().hex[:8]}{PARTIAL_SUFFIX}")
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return Outcome(False, str(exc))
    outcome = attempt(provider.download, action.remote_path, str(tmp))
    try:
        if outcome.ok:
            if action.modified_at is not None:
                ts = to_epoch(action.modified_at)
                os.utime(tmp, (ts, ts))
            os.replace(tmp, dest)
    except OSError as exc:
        outcome = Outcome(False, str(exc))
    finally:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            warn(f"  could not remove temporary {tmp}: {exc}")
    return outcome


def apply_action(provider, action) -> Outcome:
    if isinstance(action, Upload):
        return upload_file(provider, action)
    if isinstance(action, Download):
        return download_file(provider, action)
    if isinstance(action, Delete):
        return attempt(provider.delete, action.remote_path)
    return Outcome(True)


def describe(action) -> str:
    if isinstance(action, Upload):
        extra = f" (replaces {action.supersedes})" if action.supersedes else ""
        return f"[UPLOAD] {action.rel_path} → {action.remote_path}{extra}"
    if isinstance(action, Download):
        return f"[DOWNLOAD] {action.remote_path} → {action.local_path}"
    if isinstance(action, Delete):
        return f"[DELETE] {action.remote_path} (stale copy of {action.rel_path})"
    return f"[SKIP] {action.rel_path}"


def apply_actions(provider, actions: list, progress: Optional[SyncProgress] = None,
                  on_done: Optional[Callable] = None) -> SyncProgress:
    """
    Apply *actions* in order. Failures are logged and skipped; the progress
    accumulator advances only for actions that completed. If *progress* is not
    given, totals are taken from *actions*.
    """
    if progress is None:
        pending = [a for a in actions if not isinstance(a, Skip)]
        progress = SyncProgress(len(pending), sum(a.size_bytes for a in pending))

    for action in actions:
        if isinstance(action, Skip):
            continue
        outcome = apply_action(provider, action)
        if not outcome.ok:
            progress.record_failure()
            warn(f"{describe(action)} failed: {outcome.error}")
            continue
        log(f"  {describe(action)} ✓")
        progress.advance(action)
        if on_done is not None:
            on_done(action)
        for line in progress.lines():
            log(line)
    return progress
