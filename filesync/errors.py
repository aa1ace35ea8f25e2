"""
Error types and explicit result values for remote operations
"""
from typing import Callable, NamedTuple, Optional


class FileSyncError(Exception):
    """Base class for filesync errors"""


class ConfigError(FileSyncError):
    """Fatal: unsupported provider, missing or rejected credentials, bad config."""


class RemoteError(FileSyncError):
    """Transient: a remote call failed; the run continues without it."""


class Outcome(NamedTuple):
    ok: bool
    error: Optional[str] = None


OK = Outcome(True)


def attempt(fn: Callable, *args, **kwargs) -> Outcome:
    """
    Call a provider operation and turn its failure into a value.
    ConfigError is fatal and propagates; everything else is transient.
    """
    try:
        fn(*args, **kwargs)
    except ConfigError:
        raise
    except Exception as exc:
        return Outcome(False, str(exc) or exc.__class__.__name__)
    return OK
