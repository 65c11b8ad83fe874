"""Clases base para fuentes de lecturas basadas en archivos."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class SourcePaths:
    """Folder holding the exported files of one source."""

    root: Path


class FileSource(ABC):
    """Source whose exports are files matching a glob inside a folder."""

    pattern: str = "*"

    def __init__(self, paths: SourcePaths) -> None:
        self._paths = paths

    def validate(self) -> None:
        """Raise FileNotFoundError if the source folder does not exist."""
        if not self._paths.root.exists():
            raise FileNotFoundError(str(self._paths.root))

    def newest_file(self) -> Path:
        """Return the most recently modified export.

        Raises:
            FileNotFoundError: If no file matches the source pattern.
        """
        files = sorted(
            self._paths.root.glob(self.pattern),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if not files:
            raise FileNotFoundError(f"No {self.pattern} in {self._paths.root}")
        return files[0]

    @abstractmethod
    def load(self, path: Path) -> Any:
        """Parse one export file."""
