"""
Storage provider capability set

The sync core only talks to this interface. Implementations raise on
failure; the driver turns those exceptions into Outcome values. Credential
problems must be raised as ConfigError so the run stops instead of carrying on.
"""
from abc import ABC, abstractmethod
from typing import Optional


class StorageProvider(ABC):
    name = "abstract"

    def connect(self):
        """Open the session. Raises ConfigError on bad credentials."""

    def close(self):
        """Release the session."""

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    @abstractmethod
    def list_files(self, path: str) -> list:
        """FileRecords (rel_path = entry name) of the regular files directly under *path*."""

    @abstractmethod
    def list_folders(self, path: str) -> list:
        """Names of the folders directly under *path*."""

    def list_level(self, path: str) -> tuple:
        """(files, folder names) directly under *path*. Override to list once."""
        return self.list_files(path), self.list_folders(path)

    @abstractmethod
    def upload(self, local_path: str, remote_path: str):
        """Store a local file; the remote file is either the old or the complete new one."""

    @abstractmethod
    def download(self, remote_path: str, local_path: str):
        """Copy a remote file to *local_path*."""

    @abstractmethod
    def create_folder(self, path: str):
        """Create *path* and its parents; an existing folder is not an error."""

    @abstractmethod
    def delete(self, path: str):
        """Delete a file; a file that is already gone is not an error."""

    @abstractmethod
    def read_text(self, path: str) -> Optional[str]:
        """Contents of a small text file, or None if it does not exist."""

    @abstractmethod
    def write_text(self, content: str, path: str):
        """Replace a small text file in one step."""
