"""Site building for zest.

The Builder walks the project tree, recreates directories under the publish
root and renders every file modified since the previous cycle. A failing
file is logged and skipped; the rest of the walk continues. In watch mode
the cycle repeats until the stop event is set.

Key names:
- Builder: Walks the tree and dispatches files to renderers.
- CycleResult: Outcome of one build cycle.
- build_site: Convenience wrapper for a single full build.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from .config import Config
from .errors import BuildError, ZestError
from .plugins import PluginRunner
from .renderers import RendererRegistry

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."


@dataclass
class CycleResult:
    """Result of a single build cycle.

    Attributes:
        built: Source paths (relative to the root) that were dispatched.
        errors: (path, exception) pairs for files that failed.
        modified_any: Whether at least one file was rebuilt.
    """

    built: list[str] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)
    modified_any: bool = False

    @property
    def succeeded(self) -> int:
        """Number of dispatched files that built without an error."""
        return len(self.built) - len(self.errors)


def _format_error(exc: Exception) -> str:
    if isinstance(exc, BuildError):
        return exc.message
    return f"{type(exc).__name__}: {exc}"


class Builder:
    """Build orchestrator.

    Attributes:
        config: Build configuration.
        registry: Renderer registry used for dispatch.
        last_modified: Watermark; files with a newer mtime are rebuilt.
    """

    def __init__(self, config: Config, registry: RendererRegistry | None = None):
        self.config = config
        self.registry = registry or RendererRegistry.default(
            config, PluginRunner(config)
        )
        self.last_modified = 0.0

    def build_file(self, path: Path | str, out: BinaryIO | None = None) -> None:
        """Render a single file.

        Args:
            path: Source path, relative to the project root or absolute.
            out: Optional binary sink; defaults to the publish tree.

        Raises:
            ZestError: If the file fails to build. Unexpected errors are
                wrapped in BuildError.
        """
        renderer = self.registry.get_renderer(Path(path))
        if renderer is None:
            logger.debug("No renderer for %s", path)
            return
        try:
            renderer.render(Path(path), out)
        except ZestError:
            raise
        except Exception as exc:
            raise BuildError(
                self.config.root / path, _format_error(exc), exc
            ) from exc

    def _is_skipped(self, path: Path) -> bool:
        return path.name.startswith(HIDDEN_PREFIX) or self.config.is_reserved(path)

    def _walk_error(self, exc: OSError) -> None:
        logger.error("walk: %s", exc)

    def walk(self) -> list[tuple[Path, bool]]:
        """List (path, is_dir) entries depth-first, skipping hidden subtrees."""
        entries: list[tuple[Path, bool]] = []
        root = self.config.root
        for dirpath, dirnames, filenames in os.walk(root, onerror=self._walk_error):
            base = Path(dirpath)
            dirnames[:] = sorted(d for d in dirnames if not self._is_skipped(base / d))
            if base != root:
                entries.append((base.relative_to(root), True))
            for name in sorted(filenames):
                if not self._is_skipped(base / name):
                    entries.append(((base / name).relative_to(root), False))
        return entries

    def run_cycle(self) -> CycleResult:
        """Run one build cycle.

        Returns:
            CycleResult describing what was built and what failed.
        """
        result = CycleResult()
        self.config.publish_dir.mkdir(parents=True, exist_ok=True)
        for rel, is_dir in self.walk():
            if is_dir:
                (self.config.publish_dir / rel).mkdir(parents=True, exist_ok=True)
                continue
            try:
                mtime = (self.config.root / rel).stat().st_mtime
            except OSError as exc:
                self._walk_error(exc)
                continue
            if mtime <= self.last_modified:
                continue
            result.modified_any = True
            logger.info("build: %s", rel.as_posix())
            try:
                self.build_file(rel)
            except ZestError as exc:
                logger.error("%s: %s", rel.as_posix(), _format_error(exc))
                result.errors.append((rel.as_posix(), exc))
            result.built.append(rel.as_posix())
        self.last_modified = time.time()
        return result

    def run(self, watch: bool = False, stop: threading.Event | None = None) -> None:
        """Run a single cycle, or keep cycling until ``stop`` is set.

        Args:
            watch: Repeat the cycle every ``config.interval`` seconds.
            stop: Event ending the watch loop once set.
        """
        stop = stop or threading.Event()
        while not stop.is_set():
            self.run_cycle()
            if not watch:
                return
            stop.wait(self.config.interval)


def build_site(config: Config) -> CycleResult:
    """Build every file under the project root once.

    Args:
        config: Build configuration.

    Returns:
        CycleResult of the build.
    """
    return Builder(config).run_cycle()
