"""
Configuration for filesync
"""
import os
from pathlib import Path
from typing import Optional

from .models import SyncPair
from .errors import ConfigError

# ══════════════════════════════════════════════════════════════════════════════
#  DEFAULTS  ── overridden by YAML config or apply_profile()
# ══════════════════════════════════════════════════════════════════════════════

PROVIDER = "sftp"
SUPPORTED_PROVIDERS = ("sftp", "dropbox")

SSH_HOST = "example.com"
SSH_PORT = 22
SSH_USER = "root"
# Path to your private key, or None to use ssh-agent / ~/.ssh/id_*
SSH_KEY_PATH: Optional[str] = None
SSH_PASSWORD: Optional[str] = None

# Dropbox: either a refresh token + app key/secret, or a long-lived access token
DROPBOX_APP_KEY: Optional[str] = None
DROPBOX_APP_SECRET: Optional[str] = None
DROPBOX_REFRESH_TOKEN: Optional[str] = None
DROPBOX_ACCESS_TOKEN: Optional[str] = None

SYNC_PAIRS: list = []

# "embedded" renames remote files to <timestamp>_<name>;
# "sidecar" keeps names and writes a sync_metadata file per remote directory.
# Never switch an existing remote tree from one to the other.
TIMESTAMP_STRATEGY = "embedded"
SUPPORTED_STRATEGIES = ("embedded", "sidecar")

# Pairs applied concurrently; keep low to respect remote rate limits
WORKERS = 1

# Seconds before a single remote call is abandoned
REMOTE_TIMEOUT = 60

# Retry settings
RETRY_MAX = 5
RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt

IGNORE_FILE = ".syncignore"

CONFIG_FILE_NAME = ".filesync"


# ══════════════════════════════════════════════════════════════════════════════
#  GLOBAL CONFIG FILE  ── $XDG_CONFIG_HOME/filesync/config.yaml
# ══════════════════════════════════════════════════════════════════════════════

def get_global_config_dir() -> Path:
    """Return the global config directory for filesync."""
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) / "filesync"
    if os.name == "nt":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "filesync"
    return Path.home() / ".config" / "filesync"


def load_global_config() -> dict:
    """Load global config (shared defaults such as credentials); {} if absent."""
    cfg_path = get_global_config_dir() / "config.yaml"
    if not cfg_path.is_file():
        return {}
    return load_config_file(cfg_path)


# ══════════════════════════════════════════════════════════════════════════════
#  PROJECT CONFIG FILE  ── .filesync (searched upward)
# ══════════════════════════════════════════════════════════════════════════════

def find_config(start: Optional[Path] = None) -> Optional[Path]:
    """
    Search upward from *start* (default: cwd) for a .filesync YAML file.
    Returns the Path if found, or None if no .filesync exists in any parent.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config_file(path: Path) -> dict:
    """Parse a YAML config file and return its contents as a dict."""
    import yaml

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("expected a mapping at the top level")
    return data


def get_profile(data: dict, profile_name: str = "default") -> dict:
    """
    Extract a named profile from a .filesync or config.yaml data dict.
    Falls back to the first profile if the named one is not found.
    Returns a flat profile dict merged with top-level defaults.
    """
    defaults = data.get("defaults", {}) or {}
    profiles = data.get("profiles", []) or []
    if not profiles:
        return defaults.copy()
    profile = next((p for p in profiles if p.get("name") == profile_name), None)
    if profile is None:
        profile = profiles[0]
    merged = defaults.copy()
    merged.update(profile)
    return merged


def parse_pairs(raw, base_dir: Optional[Path] = None) -> list:
    """
    Turn the `pairs` list of a profile into SyncPair values.
    Accepts {local, remote} or {local_root, remote_root} mappings; relative
    local paths are resolved against *base_dir* (the config file's directory).
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError("'pairs' must be a list of {local, remote} mappings")
    pairs = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"pairs[{i}]: expected a mapping")
        local = item.get("local", item.get("local_root"))
        remote = item.get("remote", item.get("remote_root"))
        if not local or not remote:
            raise ConfigError(f"pairs[{i}]: both 'local' and 'remote' are required")
        local_path = Path(str(local)).expanduser()
        if base_dir is not None and not local_path.is_absolute():
            local_path = base_dir / local_path
        pairs.append(SyncPair(local_path, str(remote)))
    return pairs


# ══════════════════════════════════════════════════════════════════════════════
#  APPLY PROFILE  ── mutates module-level variables
# ══════════════════════════════════════════════════════════════════════════════

def apply_profile(profile: dict, base_dir: Optional[Path] = None):
    """
    Apply a profile dict to the module-level config variables.
    Supports keys: provider, server, port, user, ssh_key, ssh_password,
                   dropbox_app_key, dropbox_app_secret, dropbox_refresh_token,
                   dropbox_access_token, pairs (or a single local_root +
                   remote_root), timestamp_strategy, workers, remote_timeout,
                   retry_max, retry_base_delay, ignore_file.
    """
    global PROVIDER, SSH_HOST, SSH_PORT, SSH_USER, SSH_KEY_PATH, SSH_PASSWORD
    global DROPBOX_APP_KEY, DROPBOX_APP_SECRET, DROPBOX_REFRESH_TOKEN, DROPBOX_ACCESS_TOKEN
    global SYNC_PAIRS, TIMESTAMP_STRATEGY, WORKERS, REMOTE_TIMEOUT
    global RETRY_MAX, RETRY_BASE_DELAY, IGNORE_FILE

    if "provider" in profile:
        PROVIDER = str(profile["provider"]).strip().lower()
    if "server" in profile:
        SSH_HOST = str(profile["server"])
    if "port" in profile:
        SSH_PORT = int(profile["port"])
    if "user" in profile:
        SSH_USER = str(profile["user"])
    elif "username" in profile:
        SSH_USER = str(profile["username"])
    if "ssh_key" in profile:
        SSH_KEY_PATH = str(profile["ssh_key"]) if profile["ssh_key"] else None
    if "ssh_password" in profile:
        SSH_PASSWORD = str(profile["ssh_password"]) if profile["ssh_password"] else None
    if "dropbox_app_key" in profile:
        DROPBOX_APP_KEY = profile["dropbox_app_key"] or None
    if "dropbox_app_secret" in profile:
        DROPBOX_APP_SECRET = profile["dropbox_app_secret"] or None
    if "dropbox_refresh_token" in profile:
        DROPBOX_REFRESH_TOKEN = profile["dropbox_refresh_token"] or None
    if "dropbox_access_token" in profile:
        DROPBOX_ACCESS_TOKEN = profile["dropbox_access_token"] or None
    if "pairs" in profile:
        SYNC_PAIRS = parse_pairs(profile["pairs"], base_dir)
    elif "local_root" in profile and "remote_root" in profile:
        SYNC_PAIRS = parse_pairs(
            [{"local": profile["local_root"], "remote": profile["remote_root"]}], base_dir
        )
    if "timestamp_strategy" in profile:
        TIMESTAMP_STRATEGY = str(profile["timestamp_strategy"]).strip().lower()
    if "workers" in profile:
        WORKERS = int(profile["workers"])
    if "remote_timeout" in profile:
        REMOTE_TIMEOUT = int(profile["remote_timeout"])
    if "retry_max" in profile:
        RETRY_MAX = int(profile["retry_max"])
    if "retry_base_delay" in profile:
        RETRY_BASE_DELAY = float(profile["retry_base_delay"])
    if "ignore_file" in profile:
        IGNORE_FILE = str(profile["ignore_file"])


def validate():
    """Raise ConfigError if the current settings cannot drive a sync."""
    if PROVIDER not in SUPPORTED_PROVIDERS:
        raise ConfigError(
            f"cloud provider '{PROVIDER}' is not supported "
            f"(choose one of: {', '.join(SUPPORTED_PROVIDERS)})"
        )
    if TIMESTAMP_STRATEGY not in SUPPORTED_STRATEGIES:
        raise ConfigError(
            f"timestamp strategy '{TIMESTAMP_STRATEGY}' is not supported "
            f"(choose one of: {', '.join(SUPPORTED_STRATEGIES)})"
        )
    if not SYNC_PAIRS:
        raise ConfigError("no sync pairs configured")
    if WORKERS < 1:
        raise ConfigError("workers must be at least 1")
    if PROVIDER == "dropbox":
        has_refresh = DROPBOX_REFRESH_TOKEN and DROPBOX_APP_KEY
        if not (has_refresh or DROPBOX_ACCESS_TOKEN):
            raise ConfigError(
                "dropbox needs dropbox_refresh_token + dropbox_app_key, "
                "or dropbox_access_token"
            )
    if PROVIDER == "sftp" and not SSH_HOST:
        raise ConfigError("sftp needs a server")
