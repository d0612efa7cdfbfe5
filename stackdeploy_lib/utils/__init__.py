"""Utility helpers for stackdeploy-lib."""

from stackdeploy_lib.utils.cache import CacheState, KeyedCache, SingleEntryCache
from stackdeploy_lib.utils.commands import run_command

__all__ = [
    "CacheState",
    "KeyedCache",
    "SingleEntryCache",
    "run_command",
]
