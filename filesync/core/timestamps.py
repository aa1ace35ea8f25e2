"""
Timestamp codecs: how a remote file's modification instant is recorded

Two strategies, one per deployment:

  embedded  remote name is "<YYYYMMDDTHHMMSSZ>_<original name>"; the token is
            fixed width so decoding never has to guess where it ends.
  sidecar   remote names are untouched; a "sync_metadata" file in every remote
            directory maps "name<TAB>YYYY-MM-DDTHH:MM:SSZ".

Every instant is normalised to UTC and truncated to whole seconds, because
remote stores do not round-trip sub-second precision.
"""
import math
import re
from datetime import datetime, timezone
from typing import Optional

from ..models import FileRecord, rel_join
from ..utils.logging import vlog

TOKEN_FORMAT = "%Y%m%dT%H%M%SZ"
TOKEN_WIDTH = 16
SEPARATOR = "_"
_TOKEN_RE = re.compile(r"\d{8}T\d{6}Z")

METADATA_NAME = "sync_metadata"
METADATA_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


# ── instants ─────────────────────────────────────────────────────────────────

def truncate(value: datetime) -> datetime:
    """UTC, whole seconds. Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def from_epoch(epoch: float) -> datetime:
    """Filesystem mtime → truncated UTC instant."""
    return datetime.fromtimestamp(math.floor(epoch), tz=timezone.utc)


def to_epoch(value: datetime) -> int:
    return int(truncate(value).timestamp())


# ── embedded: filename token ────────────────────────────────────────────────

def encode_name(name: str, instant: datetime) -> str:
    """'save.dat' + 2024-01-01T00:00:00.4Z → '20240101T000000Z_save.dat'"""
    if not name or "/" in name:
        raise ValueError(f"not a plain file name: {name!r}")
    return f"{truncate(instant).strftime(TOKEN_FORMAT)}{SEPARATOR}{name}"


def decode_name(physical: str) -> Optional[tuple]:
    """
    Inverse of encode_name. Returns (original name, instant) or None when
    *physical* is not something encode_name could have produced.
    """
    token = physical[:TOKEN_WIDTH]
    rest = physical[TOKEN_WIDTH:]
    if not _TOKEN_RE.fullmatch(token) or not rest.startswith(SEPARATOR):
        return None
    name = rest[len(SEPARATOR):]
    if not name or "/" in name:
        return None
    try:
        instant = datetime.strptime(token, TOKEN_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        # right shape, impossible date (e.g. month 13)
        return None
    return name, instant


class EmbeddedTimestampCodec:
    strategy = "embedded"
    uses_sidecar = False

    def remote_name(self, name: str, modified_at: datetime) -> str:
        return encode_name(name, modified_at)

    def is_reserved(self, name: str) -> bool:
        return False

    def resolve(self, rel_dir: str, entries: list, metadata: Optional[dict] = None) -> dict:
        """
        Group one remote directory's entries by original name. The newest
        decodable entry is the file of record; other decodable entries are
        stale copies left by an interrupted replacement. Undecodable names keep
        an unknown timestamp and are never reported as stale.
        """
        groups: dict = {}
        for entry in entries:
            decoded = decode_name(entry.name)
            if decoded is None:
                logical, instant = entry.name, None
            else:
                logical, instant = decoded
            groups.setdefault(logical.lower(), []).append((logical, instant, entry))

        records = {}
        for members in groups.values():
            known = sorted((m for m in members if m[1] is not None),
                           key=lambda m: (m[1], m[2].name))
            if known:
                logical, instant, entry = known[-1]
                stale = tuple(rel_join(rel_dir, m[2].name) for m in known[:-1])
                for m in members:
                    if m[1] is None:
                        vlog(f"  [IGNORE] {rel_join(rel_dir, m[2].name)} shadows no timestamped copy")
            else:
                logical, instant, entry = sorted(members, key=lambda m: m[2].name)[0]
                stale = ()
            record = FileRecord(
                rel_path=rel_join(rel_dir, logical),
                modified_at=instant,
                size_bytes=entry.size_bytes,
                stored_as=rel_join(rel_dir, entry.name),
                reported_at=entry.modified_at,
                stale=stale,
            )
            records[record.key] = record
        return records


# ── sidecar: metadata file ──────────────────────────────────────────────────

def metadata_entries(text: Optional[str]) -> dict:
    """
    'name<TAB>instant' lines → {name as written: instant}.
    Malformed lines are dropped; a missing file is an empty mapping.
    """
    result: dict = {}
    if not text:
        return result
    for line in text.splitlines():
        name, sep, stamp = line.partition("\t")
        if not sep or not name:
            continue
        stamp = stamp.strip()
        try:
            instant = datetime.strptime(stamp, METADATA_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            try:
                instant = truncate(datetime.fromisoformat(stamp.replace("Z", "+00:00")))
            except ValueError:
                continue
        result[name] = instant
    return result


def parse_metadata(text: Optional[str]) -> dict:
    """Sidecar text → {lower-cased name: instant}, for lookups."""
    return {name.lower(): instant for name, instant in metadata_entries(text).items()}


def merge_times(times: dict, updates: dict) -> dict:
    """Overlay *updates* on *times*; a name replaces any differently-cased twin."""
    for name, instant in updates.items():
        for existing in [n for n in times if n.lower() == name.lower()]:
            del times[existing]
        times[name] = instant
    return times


def format_metadata(entries: dict) -> str:
    """{name: instant} → sidecar text, sorted by name."""
    lines = []
    for name in sorted(entries, key=str.lower):
        if "\t" in name or "\n" in name or "\r" in name:
            continue
        lines.append(f"{name}\t{truncate(entries[name]).strftime(METADATA_FORMAT)}")
    return "\n".join(lines) + ("\n" if lines else "")


class SidecarTimestampCodec:
    strategy = "sidecar"
    uses_sidecar = True
    metadata_name = METADATA_NAME

    def remote_name(self, name: str, modified_at: datetime) -> str:
        return name

    def is_reserved(self, name: str) -> bool:
        return name.lower() == METADATA_NAME

    def resolve(self, rel_dir: str, entries: list, metadata: Optional[dict] = None) -> dict:
        """Instant of record comes from the sidecar, else from the store."""
        metadata = metadata or {}
        records = {}
        for entry in entries:
            if self.is_reserved(entry.name):
                continue
            instant = metadata.get(entry.name.lower())
            if instant is None and entry.modified_at is not None:
                instant = truncate(entry.modified_at)
            record = FileRecord(
                rel_path=rel_join(rel_dir, entry.name),
                modified_at=instant,
                size_bytes=entry.size_bytes,
                stored_as=rel_join(rel_dir, entry.name),
                reported_at=entry.modified_at,
            )
            records[record.key] = record
        return records


def get_codec(strategy: str):
    if strategy == "embedded":
        return EmbeddedTimestampCodec()
    if strategy == "sidecar":
        return SidecarTimestampCodec()
    raise ValueError(f"unknown timestamp strategy: {strategy!r}")
