"""Exceptions raised by dotmerge."""

from __future__ import annotations


class DotmergeError(RuntimeError):
    """Raised when dotmerge encounters an unrecoverable state."""


class LinkConflictError(DotmergeError):
    """Raised when linking a package would overwrite a file dotmerge does not own."""
