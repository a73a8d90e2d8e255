"""Protocol definitions for zest.

These protocols describe the seams between the build orchestrator and the
components it drives, so renderers can be swapped or mocked in tests.
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable


@runtime_checkable
class Renderer(Protocol):
    """Protocol for building one kind of source file.

    Implementations handle one file kind (markdown, template, stylesheet,
    raw). Each writes to the given sink, or to its file under the publish
    root when no sink is supplied.
    """

    @abstractmethod
    def can_render(self, path: Path) -> bool:
        """Check if this renderer can handle the given file.

        Args:
            path: Path to the source file.

        Returns:
            True if this renderer can process the file.
        """
        ...

    @abstractmethod
    def render(self, path: Path, out: BinaryIO | None = None) -> None:
        """Render a source file.

        Args:
            path: Source path relative to the project root.
            out: Optional binary sink receiving the result.
        """
        ...

    @property
    @abstractmethod
    def kind(self) -> str:
        """Return the file kind identifier (e.g. 'markdown', 'raw')."""
        ...
