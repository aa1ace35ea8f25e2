"""
Ignore patterns handling (.syncignore file parsing)
"""
import re
from pathlib import Path
from .. import config as _cfg


def _compile_pattern(raw: str):
    """Compile a .syncignore glob into a case-insensitive regex"""
    p = raw.strip()
    if not p or p.startswith("#"):
        return None
    anchored = p.startswith("/")
    p = p.lstrip("/")
    if p.endswith("/**"):
        p = p[:-3]
    # "build/" names the folder; the trailing group below covers its contents
    p = p.rstrip("/")
    if not p:
        return None
    escaped = re.escape(p)
    escaped = escaped.replace(r"\*\*/", "§DSS§")
    escaped = escaped.replace(r"\*\*", "§DS§")
    escaped = escaped.replace(r"\*", "[^/]*")
    escaped = escaped.replace(r"\?", "[^/]")
    escaped = escaped.replace("§DSS§", "(.*/)?")
    escaped = escaped.replace("§DS§", ".*")
    prefix = "^" if anchored else r"(^|.*/)"
    try:
        return re.compile(prefix + escaped + r"(/.*)?$", re.IGNORECASE)
    except re.error:
        return None


def compile_patterns(lines) -> list:
    return [c for c in (_compile_pattern(line) for line in lines) if c]


def load_ignore_patterns(root: Path) -> list:
    """Load ignore patterns from the pair's ignore file, if any"""
    f = Path(root) / _cfg.IGNORE_FILE
    if not f.is_file():
        return []
    return compile_patterns(f.read_text(encoding="utf-8", errors="replace").splitlines())


def is_ignored(rel_path: str, patterns: list) -> bool:
    """Check if a path matches any ignore pattern"""
    norm = rel_path.replace("\\", "/")
    return any(p.search(norm) for p in patterns)
