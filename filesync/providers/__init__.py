"""Storage providers (SFTP, Dropbox)"""
from .base import StorageProvider
from .. import config as _cfg
from ..errors import ConfigError


def get_provider(name: str = None) -> StorageProvider:
    """Build the configured provider. Unknown names are a fatal config error."""
    name = (name or _cfg.PROVIDER).strip().lower()
    if name == "sftp":
        from .sftp import SftpProvider
        return SftpProvider()
    if name == "dropbox":
        from .dropbox_provider import DropboxProvider
        return DropboxProvider()
    raise ConfigError(f"cloud provider '{name}' is not supported")


__all__ = ["StorageProvider", "get_provider"]
