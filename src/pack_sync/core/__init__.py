"""Transport and async plumbing shared by the sync engine and CLI."""

from .async_utils import run_sync
from .client import PackSourceClient

__all__ = ["PackSourceClient", "run_sync"]
