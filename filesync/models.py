"""
Value types shared by the scanner, reconciler and sync driver
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Optional, Union

# suffix of in-flight transfer files; never listed, never synced
PARTIAL_SUFFIX = ".filesync-part"


def path_key(rel_path: str) -> str:
    """Case-insensitive identity of a relative path (forward slashes)."""
    return rel_path.replace("\\", "/").strip("/").lower()


def rel_join(rel_dir: str, name: str) -> str:
    """Join a pair-relative directory ("" for the root) and a name."""
    return f"{rel_dir}/{name}" if rel_dir else name


def remote_join(root: str, *parts: str) -> str:
    """Join remote path segments with '/', ignoring empty ones."""
    path = PurePosixPath(root or "/")
    for part in parts:
        if part:
            path = path / part
    return str(path)


@dataclass(frozen=True)
class SyncPair:
    local_root: Path
    remote_root: str

    def __post_init__(self):
        object.__setattr__(self, "local_root", Path(self.local_root))
        object.__setattr__(self, "remote_root", str(self.remote_root).replace("\\", "/"))


@dataclass(frozen=True)
class FileRecord:
    """
    One file on one side of a pair.

    rel_path     logical path relative to the pair root, '/' separated
    modified_at  UTC, whole seconds; None when a remote timestamp is unknown
    stored_as    physical remote path relative to the pair root (remote only)
    reported_at  the store's own modification time (remote only)
    stale        older physical copies of the same logical file (remote only)
    """
    rel_path: str
    modified_at: Optional[datetime]
    size_bytes: int
    stored_as: Optional[str] = None
    reported_at: Optional[datetime] = None
    stale: tuple = ()

    @property
    def key(self) -> str:
        return path_key(self.rel_path)

    @property
    def name(self) -> str:
        return self.rel_path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class Upload:
    rel_path: str
    local_path: Path
    remote_path: str
    size_bytes: int
    modified_at: datetime
    supersedes: Optional[str] = None


@dataclass(frozen=True)
class Download:
    rel_path: str
    remote_path: str
    local_path: Path
    size_bytes: int
    modified_at: Optional[datetime]


@dataclass(frozen=True)
class Delete:
    rel_path: str
    remote_path: str
    size_bytes: int = 0


@dataclass(frozen=True)
class Skip:
    rel_path: str
    modified_at: Optional[datetime] = None
    size_bytes: int = 0


SyncAction = Union[Upload, Download, Delete, Skip]


@dataclass
class DirectoryPlan:
    """Reconciled actions for one directory level of one pair."""
    pair: SyncPair
    rel_dir: str
    local_dir: Path
    remote_dir: str
    actions: list = field(default_factory=list)
    create_local: bool = False
    create_remote: bool = False
    # sidecar strategy: {remote file name: instant} as scanned
    remote_times: dict = field(default_factory=dict)
