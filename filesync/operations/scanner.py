"""
Directory snapshots (local and remote)
"""
import os
from pathlib import Path
from typing import NamedTuple, Optional

from .. import config as _cfg
from ..core.timestamps import METADATA_NAME, from_epoch, parse_metadata
from ..errors import ConfigError
from ..models import PARTIAL_SUFFIX, FileRecord, rel_join, remote_join
from ..utils.ignore_patterns import is_ignored
from ..utils.logging import vlog, warn


class Level(NamedTuple):
    """One directory of one side: its files (snapshot) and its subfolders."""
    files: dict
    folders: dict          # lower-cased name → actual name
    ok: bool = True


EMPTY = Level({}, {})


def _skip_name(name: str, rel_dir: str, codec) -> bool:
    if name.endswith(PARTIAL_SUFFIX):
        return True
    if codec is not None and codec.is_reserved(name):
        return True
    return not rel_dir and name == _cfg.IGNORE_FILE


def local_level(local_dir: Path, rel_dir: str = "", codec=None,
                patterns: Optional[list] = None) -> Level:
    """
    Files and folders directly under *local_dir*. Mtimes are truncated to
    whole seconds in UTC. An unreadable directory yields an empty level
    flagged ok=False.
    """
    patterns = patterns or []
    files: dict = {}
    folders: dict = {}
    try:
        with os.scandir(local_dir) as it:
            for entry in it:
                rel = rel_join(rel_dir, entry.name)
                if is_ignored(rel, patterns):
                    vlog(f"  [IGNORE] {rel}")
                    continue
                if entry.is_dir():
                    folders[entry.name.lower()] = entry.name
                elif entry.is_file():
                    if _skip_name(entry.name, rel_dir, codec):
                        continue
                    st = entry.stat()
                    record = FileRecord(rel, from_epoch(st.st_mtime), st.st_size)
                    files[record.key] = record
    except OSError as exc:
        warn(f"[scan] cannot list local {local_dir}: {exc}; treating it as empty")
        return Level({}, {}, False)
    return Level(files, folders)


def remote_level(provider, remote_dir: str, rel_dir: str, codec,
                 patterns: Optional[list] = None) -> Level:
    """
    Files and folders directly under *remote_dir*, timestamps resolved by
    *codec*. A listing failure is reported and yields an empty level flagged
    ok=False so the rest of the tree can still be reconciled.
    """
    patterns = patterns or []
    try:
        entries, folder_names = provider.list_level(remote_dir)
    except ConfigError:
        raise
    except Exception as exc:
        warn(f"[scan] cannot list remote {remote_dir}: {exc}; assuming it is empty")
        return Level({}, {}, False)

    metadata: dict = {}
    if codec.uses_sidecar:
        try:
            metadata = parse_metadata(provider.read_text(remote_join(remote_dir, METADATA_NAME)))
        except ConfigError:
            raise
        except Exception as exc:
            warn(f"[scan] cannot read {METADATA_NAME} in {remote_dir}: {exc}; "
                 f"falling back to store times")

    entries = [e for e in entries if not _skip_name(e.name, rel_dir, codec)]
    files = {
        key: record
        for key, record in codec.resolve(rel_dir, entries, metadata).items()
        if not is_ignored(record.rel_path, patterns)
    }
    folders = {
        name.lower(): name
        for name in folder_names
        if not is_ignored(rel_join(rel_dir, name), patterns)
    }
    return Level(files, folders)


def scan_local(root: Path, codec=None, patterns: Optional[list] = None) -> dict:
    """Recursive snapshot of a local tree: {lower rel path: FileRecord}."""
    snapshot: dict = {}

    def walk(directory: Path, rel_dir: str):
        level = local_level(directory, rel_dir, codec, patterns)
        snapshot.update(level.files)
        for name in sorted(level.folders.values()):
            walk(directory / name, rel_join(rel_dir, name))

    walk(Path(root), "")
    return snapshot


def scan_remote(provider, root: str, codec, patterns: Optional[list] = None) -> dict:
    """Recursive snapshot of a remote tree: {lower rel path: FileRecord}."""
    snapshot: dict = {}

    def walk(directory: str, rel_dir: str):
        level = remote_level(provider, directory, rel_dir, codec, patterns)
        snapshot.update(level.files)
        for name in sorted(level.folders.values()):
            walk(remote_join(directory, name), rel_join(rel_dir, name))

    walk(root, "")
    return snapshot
