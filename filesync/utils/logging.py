"""
Console output for filesync

Pairs may be applied on worker threads, so every write goes through one lock
and a multi-line block is never interleaved with another thread's lines.
"""
import threading
from datetime import datetime

_verbose = False
_lock = threading.Lock()


def set_verbose(verbose: bool):
    global _verbose
    _verbose = verbose


def _stamp() -> str:
    return datetime.now().strftime("%H:%M:%S")


def log(msg: str):
    """Log a message with timestamp"""
    line = f"[{_stamp()}] {msg}"
    with _lock:
        print(line, flush=True)


def vlog(msg: str):
    """Log a verbose message (only if verbose mode is enabled)"""
    if _verbose:
        log(msg)


def warn(msg: str):
    log(f"⚠  {msg}")


def block(lines, rule: str = "=", width: int = 64):
    """Print *lines* between two horizontal rules, without timestamps."""
    bar = rule * width
    with _lock:
        print(bar)
        for line in lines:
            print(line)
        print(bar, flush=True)
