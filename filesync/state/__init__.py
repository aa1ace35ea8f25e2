"""Run state (progress accounting)"""
from .progress import SyncProgress

__all__ = ["SyncProgress"]
