"""
Reconciler - per-file decisions for one directory of a sync pair
"""
from pathlib import Path, PurePosixPath
from typing import Optional

from ..models import Delete, Download, FileRecord, Skip, Upload, remote_join
from .timestamps import truncate


def _tail(rel_path: str, rel_dir: str) -> str:
    """Strip the directory prefix. Both sides' prefixes differ in case at most."""
    return rel_path[len(rel_dir) + 1:] if rel_dir else rel_path


def _newer(local: FileRecord, remote: FileRecord) -> Optional[str]:
    """
    'local', 'remote' or None when equal to the second. An unknown remote
    timestamp loses, unless the local copy carries the store's own time
    (it was downloaded from that remote object).
    """
    if remote.modified_at is None:
        if remote.reported_at is not None and \
                truncate(local.modified_at) == truncate(remote.reported_at):
            return None
        return "local"
    l_time = truncate(local.modified_at)
    r_time = truncate(remote.modified_at)
    if l_time > r_time:
        return "local"
    if r_time > l_time:
        return "remote"
    return None


def reconcile(local: dict, remote: dict, codec,
              local_dir: Path, remote_dir: str, rel_dir: str = "") -> list:
    """
    Compare a local and a remote snapshot of the directory *rel_dir* (pair
    relative, "" for the root) and return the ordered actions:

      only local            → Upload
      only remote           → Download
      both, local newer     → Upload  (supersedes the old physical name if it changes)
      both, remote newer    → Download
      both, same second     → Skip
      stale remote copies   → Delete, after the file's own action

    *local_dir* / *remote_dir* are where *rel_dir* lives on each side.
    """
    actions: list = []

    def upload(l_rec: FileRecord, r_rec: Optional[FileRecord]) -> Upload:
        if r_rec is not None and r_rec.stored_as:
            physical_tail = _tail(r_rec.stored_as, rel_dir)
        else:
            physical_tail = _tail(l_rec.rel_path, rel_dir)
        parent = str(PurePosixPath(physical_tail).parent)
        new_name = codec.remote_name(l_rec.name, l_rec.modified_at)
        remote_path = remote_join(remote_dir, "" if parent == "." else parent, new_name)
        supersedes = None
        if r_rec is not None and r_rec.modified_at is not None and r_rec.stored_as:
            old_path = remote_join(remote_dir, _tail(r_rec.stored_as, rel_dir))
            if old_path != remote_path:
                supersedes = old_path
        return Upload(
            rel_path=l_rec.rel_path,
            local_path=local_dir / _tail(l_rec.rel_path, rel_dir),
            remote_path=remote_path,
            size_bytes=l_rec.size_bytes,
            modified_at=truncate(l_rec.modified_at),
            supersedes=supersedes,
        )

    def download(r_rec: FileRecord, l_rec: Optional[FileRecord]) -> Download:
        target = l_rec.rel_path if l_rec is not None else r_rec.rel_path
        instant = r_rec.modified_at or r_rec.reported_at
        return Download(
            rel_path=r_rec.rel_path,
            remote_path=remote_join(remote_dir, _tail(r_rec.stored_as or r_rec.rel_path, rel_dir)),
            local_path=local_dir / _tail(target, rel_dir),
            size_bytes=r_rec.size_bytes,
            modified_at=truncate(instant) if instant is not None else None,
        )

    for key in sorted(set(local) | set(remote)):
        l_rec = local.get(key)
        r_rec = remote.get(key)

        if r_rec is None:
            actions.append(upload(l_rec, None))
        elif l_rec is None:
            actions.append(download(r_rec, None))
        else:
            winner = _newer(l_rec, r_rec)
            if winner == "local":
                actions.append(upload(l_rec, r_rec))
            elif winner == "remote":
                actions.append(download(r_rec, l_rec))
            else:
                actions.append(Skip(l_rec.rel_path, truncate(l_rec.modified_at)))

        if r_rec is not None:
            for stale in r_rec.stale:
                actions.append(Delete(r_rec.rel_path, remote_join(remote_dir, _tail(stale, rel_dir))))

    return actions


def plan_totals(actions: list) -> tuple:
    """(number of actions to apply, bytes they move). Skips do not count."""
    pending = [a for a in actions if not isinstance(a, Skip)]
    return len(pending), sum(a.size_bytes for a in pending)
