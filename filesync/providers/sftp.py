"""
SFTP storage provider with auto-reconnect and keep-alive
"""
import stat
import threading
from pathlib import PurePosixPath
from typing import Optional

import paramiko

from .base import StorageProvider
from .. import config as _cfg
from ..core.timestamps import from_epoch
from ..errors import ConfigError
from ..models import PARTIAL_SUFFIX, FileRecord
from ..utils.logging import log
from ..utils.retry import retried


class SftpProvider(StorageProvider):
    """
    Wraps paramiko SSHClient + SFTPClient.
    Automatically reconnects on channel errors.
    Sends SSH keep-alives to reduce mid-transfer drops.
    One SFTP channel is shared, so calls are serialised.
    """
    name = "sftp"

    def __init__(self):
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._lock = threading.RLock()

    # ── connection ─────────────────────────────────────────────────────────

    def connect(self):
        with self._lock:
            if self._ssh:
                try:
                    self._ssh.get_transport().send_ignore()  # test if alive
                    return
                except Exception:
                    self._close_quietly()

            log(f"[SFTP] connecting to {_cfg.SSH_USER}@{_cfg.SSH_HOST}:{_cfg.SSH_PORT} …")
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            kw: dict = dict(hostname=_cfg.SSH_HOST, port=_cfg.SSH_PORT, username=_cfg.SSH_USER,
                            timeout=_cfg.REMOTE_TIMEOUT, banner_timeout=30, auth_timeout=30)
            if _cfg.SSH_KEY_PATH:
                kw["key_filename"] = _cfg.SSH_KEY_PATH
            if _cfg.SSH_PASSWORD:
                kw["password"] = _cfg.SSH_PASSWORD

            try:
                client.connect(**kw)
            except paramiko.AuthenticationException as exc:
                client.close()
                raise ConfigError(f"SSH authentication failed for {_cfg.SSH_USER}@{_cfg.SSH_HOST}: {exc}") from exc
            except (paramiko.SSHException, FileNotFoundError) as exc:
                client.close()
                if isinstance(exc, FileNotFoundError) or "private key" in str(exc).lower():
                    raise ConfigError(f"SSH key {_cfg.SSH_KEY_PATH!r} could not be used: {exc}") from exc
                raise

            # Keep-alive: send a NOP every 30s
            client.get_transport().set_keepalive(30)

            self._ssh = client
            self._sftp = client.open_sftp()
            self._sftp.get_channel().settimeout(_cfg.REMOTE_TIMEOUT)
            log("[SFTP] connected ✓")

    def _close_quietly(self):
        for handle in (self._sftp, self._ssh):
            try:
                if handle:
                    handle.close()
            except Exception:
                pass
        self._ssh = None
        self._sftp = None

    def close(self):
        with self._lock:
            if self._ssh:
                self._close_quietly()
                log("[SFTP] disconnected.")

    def ensure_connected(self):
        """Call before any remote operation."""
        try:
            if self._ssh and self._ssh.get_transport().is_active():
                return
        except Exception:
            pass
        self.connect()

    # ── listings ────────────────────────────────────────────────────────────

    @retried
    def _listdir(self, path: str) -> list:
        with self._lock:
            self.ensure_connected()
            return self._sftp.listdir_attr(path)

    def list_files(self, path: str) -> list:
        return self.list_level(path)[0]

    def list_folders(self, path: str) -> list:
        return self.list_level(path)[1]

    def list_level(self, path: str) -> tuple:
        files, folders = [], []
        for a in self._listdir(path):
            if a.st_mode is None:
                continue
            if stat.S_ISREG(a.st_mode):
                files.append(FileRecord(a.filename, from_epoch(a.st_mtime or 0), a.st_size or 0))
            elif stat.S_ISDIR(a.st_mode):
                folders.append(a.filename)
        return files, folders

    # ── transfers ───────────────────────────────────────────────────────────

    def _replace(self, tmp: str, remote: str):
        """Move *tmp* over *remote*; posix-rename where the server supports it."""
        try:
            self._sftp.posix_rename(tmp, remote)
        except IOError:
            try:
                self._sftp.remove(remote)
            except FileNotFoundError:
                pass
            self._sftp.rename(tmp, remote)

    def _discard(self, tmp: str):
        """Remove a half-written temporary file, if the channel still allows it."""
        try:
            self._sftp.remove(tmp)
        except (OSError, EOFError, paramiko.SSHException):
            pass

    @retried
    def upload(self, local_path: str, remote_path: str):
        tmp = f"{remote_path}{PARTIAL_SUFFIX}"
        with self._lock:
            self.ensure_connected()
            try:
                self._sftp.put(local_path, tmp)
                self._replace(tmp, remote_path)
            except Exception:
                self._discard(tmp)
                raise

    @retried
    def download(self, remote_path: str, local_path: str):
        with self._lock:
            self.ensure_connected()
            self._sftp.get(remote_path, local_path)

    def _exists(self, path: str) -> bool:
        try:
            self._sftp.stat(path)
            return True
        except FileNotFoundError:
            return False

    @retried
    def create_folder(self, path: str):
        with self._lock:
            self.ensure_connected()
            current = PurePosixPath("/") if path.startswith("/") else PurePosixPath(".")
            for part in PurePosixPath(path).parts:
                if part == "/":
                    continue
                current = current / part
                if self._exists(str(current)):
                    continue
                try:
                    self._sftp.mkdir(str(current))
                except IOError:
                    # lost a race with another client; fine if it is there now
                    if not self._exists(str(current)):
                        raise

    @retried
    def delete(self, path: str):
        with self._lock:
            self.ensure_connected()
            try:
                self._sftp.remove(path)
            except FileNotFoundError:
                pass

    @retried
    def read_text(self, path: str) -> Optional[str]:
        with self._lock:
            self.ensure_connected()
            try:
                with self._sftp.open(path, "r") as f:
                    return f.read().decode("utf-8", errors="replace")
            except FileNotFoundError:
                return None

    @retried
    def write_text(self, content: str, path: str):
        tmp = f"{path}{PARTIAL_SUFFIX}"
        with self._lock:
            self.ensure_connected()
            try:
                with self._sftp.open(tmp, "w") as f:
                    f.write(content.encode("utf-8"))
                self._replace(tmp, path)
            except Exception:
                self._discard(tmp)
                raise
