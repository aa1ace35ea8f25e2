"""
Dropbox storage provider
"""
import os
from typing import Optional

import dropbox
from dropbox.exceptions import ApiError, AuthError
from dropbox.files import CommitInfo, FileMetadata, FolderMetadata, UploadSessionCursor, WriteMode

from .base import StorageProvider
from .. import config as _cfg
from ..core.timestamps import truncate
from ..errors import ConfigError
from ..models import FileRecord
from ..utils.logging import log
from ..utils.retry import retried


def _db_path(path: str) -> str:
    """Dropbox API v2 spells the root as "" and everything else as "/a/b"."""
    norm = "/" + path.replace("\\", "/").strip("/")
    return "" if norm == "/" else norm


class DropboxProvider(StorageProvider):
    name = "dropbox"
    CHUNK_SIZE = 8 * 1024 * 1024  # 8MB chunks for upload

    def __init__(self):
        self._dbx: Optional[dropbox.Dropbox] = None

    def connect(self):
        if self._dbx is not None:
            return
        if _cfg.DROPBOX_REFRESH_TOKEN and _cfg.DROPBOX_APP_KEY:
            dbx = dropbox.Dropbox(
                oauth2_refresh_token=_cfg.DROPBOX_REFRESH_TOKEN,
                app_key=_cfg.DROPBOX_APP_KEY,
                app_secret=_cfg.DROPBOX_APP_SECRET,
                timeout=_cfg.REMOTE_TIMEOUT,
            )
        elif _cfg.DROPBOX_ACCESS_TOKEN:
            dbx = dropbox.Dropbox(oauth2_access_token=_cfg.DROPBOX_ACCESS_TOKEN,
                                  timeout=_cfg.REMOTE_TIMEOUT)
        else:
            raise ConfigError("no Dropbox credentials configured")
        try:
            account = dbx.users_get_current_account()
        except AuthError as exc:
            raise ConfigError(f"Dropbox rejected the credentials: {exc}") from exc
        self._dbx = dbx
        log(f"[Dropbox] connected as {account.email} ✓")

    def close(self):
        if self._dbx is not None:
            self._dbx.close()
            self._dbx = None

    def _client(self) -> dropbox.Dropbox:
        self.connect()
        return self._dbx

    # ── listings ────────────────────────────────────────────────────────────

    @retried
    def _entries(self, path: str) -> list:
        dbx = self._client()
        try:
            result = dbx.files_list_folder(_db_path(path))
            entries = list(result.entries)
            while result.has_more:
                result = dbx.files_list_folder_continue(result.cursor)
                entries.extend(result.entries)
        except AuthError as exc:
            raise ConfigError(f"Dropbox rejected the credentials: {exc}") from exc
        except ApiError as exc:
            err = exc.error
            if err.is_path() and err.get_path().is_not_found():
                raise FileNotFoundError(path) from exc
            raise
        return entries

    def list_files(self, path: str) -> list:
        return self.list_level(path)[0]

    def list_folders(self, path: str) -> list:
        return self.list_level(path)[1]

    def list_level(self, path: str) -> tuple:
        """One paginated listing split into files and folder names."""
        files, folders = [], []
        for e in self._entries(path):
            if isinstance(e, FileMetadata):
                files.append(FileRecord(e.name, truncate(e.server_modified), e.size))
            elif isinstance(e, FolderMetadata):
                folders.append(e.name)
        return files, folders

    # ── transfers ───────────────────────────────────────────────────────────

    @retried
    def upload(self, local_path: str, remote_path: str):
        """Small files in one request, large ones through an upload session."""
        dbx = self._client()
        target = _db_path(remote_path)
        file_size = os.path.getsize(local_path)
        with open(local_path, "rb") as f:
            if file_size <= self.CHUNK_SIZE:
                dbx.files_upload(f.read(), target, mode=WriteMode.overwrite)
                return
            session = dbx.files_upload_session_start(f.read(self.CHUNK_SIZE))
            cursor = UploadSessionCursor(session_id=session.session_id, offset=f.tell())
            while f.tell() < file_size - self.CHUNK_SIZE:
                dbx.files_upload_session_append_v2(f.read(self.CHUNK_SIZE), cursor)
                cursor.offset = f.tell()
            commit = CommitInfo(path=target, mode=WriteMode.overwrite)
            dbx.files_upload_session_finish(f.read(self.CHUNK_SIZE), cursor, commit)

    @retried
    def download(self, remote_path: str, local_path: str):
        self._client().files_download_to_file(local_path, _db_path(remote_path))

    @retried
    def create_folder(self, path: str):
        target = _db_path(path)
        if not target:
            return
        try:
            self._client().files_create_folder_v2(target)
        except ApiError as exc:
            err = exc.error
            if err.is_path() and err.get_path().is_conflict():
                return
            raise

    @retried
    def delete(self, path: str):
        try:
            self._client().files_delete_v2(_db_path(path))
        except ApiError as exc:
            err = exc.error
            if err.is_path_lookup() and err.get_path_lookup().is_not_found():
                return
            raise

    @retried
    def read_text(self, path: str) -> Optional[str]:
        try:
            _, response = self._client().files_download(_db_path(path))
        except ApiError as exc:
            err = exc.error
            if err.is_path() and err.get_path().is_not_found():
                return None
            raise
        try:
            return response.content.decode("utf-8", errors="replace")
        finally:
            response.close()

    @retried
    def write_text(self, content: str, path: str):
        self._client().files_upload(content.encode("utf-8"), _db_path(path), mode=WriteMode.overwrite)
