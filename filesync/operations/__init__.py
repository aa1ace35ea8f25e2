"""Operations (scan, transfer)"""
from .scanner import local_level, remote_level, scan_local, scan_remote
from .transfer import apply_action, apply_actions, download_file, upload_file

__all__ = [
    "local_level", "remote_level", "scan_local", "scan_remote",
    "apply_action", "apply_actions", "download_file", "upload_file",
]
