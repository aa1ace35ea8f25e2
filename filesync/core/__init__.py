"""Core functionality (timestamp codecs, reconciliation)"""
from .timestamps import (
    EmbeddedTimestampCodec, SidecarTimestampCodec, decode_name, encode_name, get_codec, truncate,
)
from .reconciler import plan_totals, reconcile

__all__ = [
    "EmbeddedTimestampCodec", "SidecarTimestampCodec", "decode_name", "encode_name",
    "get_codec", "truncate",
    "plan_totals", "reconcile",
]
