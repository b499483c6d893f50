"""Installed builds: extraction, the library index and launching."""

from .extract import extract
from .state import LibraryState, VerifyReport

__all__ = ["LibraryState", "VerifyReport", "extract"]
