"""Local document store backed by a directory.

This module provides:
- normalize_path: Canonical vault-relative path form
- LocalVault: File-system primitives rooted at the vault directory

All paths handed to LocalVault are vault-relative and use forward
slashes, the same form stored in the path -> record id index.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path.

    Collapses duplicate and backward slashes and strips leading and
    trailing slashes.

    Args:
        path: Path to normalize.

    Returns:
        Normalized path ("" for the vault root).
    """
    parts = [p for p in path.replace("\\", "/").split("/") if p and p != "."]
    return "/".join(parts)


class LocalVault:
    """Directory-backed document store."""

    def __init__(self, root: Path) -> None:
        """Initialize the vault.

        Args:
            root: Vault directory on disk.
        """
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        """Get the vault directory."""
        return self._root

    def resolve(self, path: str) -> Path:
        """Get the absolute path for a vault-relative path.

        Raises:
            ValueError: If the path escapes the vault.
        """
        rel = normalize_path(path)
        if ".." in rel.split("/"):
            raise ValueError(f"Path escapes vault: {path}")
        return self._root / rel if rel else self._root

    def relative(self, path: Path | str) -> str | None:
        """Get the vault-relative form of an absolute path.

        Returns:
            Relative path, or None if the path is outside the vault.
        """
        try:
            rel = Path(path).resolve().relative_to(self._root)
        except ValueError:
            return None
        return normalize_path(rel.as_posix())

    def exists(self, path: str) -> bool:
        """Check if a file or directory exists."""
        return self.resolve(path).exists()

    def mkdir(self, path: str) -> None:
        """Create a directory and its parents."""
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    def read(self, path: str) -> str:
        """Read a text file."""
        return self.resolve(path).read_text(encoding="utf-8")

    def write(self, path: str, content: str) -> None:
        """Write a text file, replacing any existing content."""
        self.resolve(path).write_text(content, encoding="utf-8")

    def delete(self, path: str) -> None:
        """Delete a file."""
        self.resolve(path).unlink()
        logger.debug("Deleted %s", path)
