"""filesync - timestamp-driven two-way sync between a local tree and remote storage"""

__version__ = "0.3.0"
