"""Static asset publishing for Chronicle.

Everything under ``assets/`` ends up in ``<output>/assets/`` with the same
relative path. Each file is handed to the highest-priority processor that
accepts it: raster images are re-saved through Pillow's optimiser, JavaScript
is minified with rjsmin, and anything else is copied byte for byte.

Key classes:
- AssetProcessor: Base class; subclasses declare suffixes and a priority.
- ImageOptimizer, ScriptMinifier, PlainCopy: The built-in processors.
- ProcessorChain: Picks a processor for a file.
- AssetPipeline: Walks the assets directory.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable
from operator import attrgetter
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from rjsmin import jsmin

logger = logging.getLogger(__name__)

ASSETS_DIR = "assets"


class AssetProcessor(ABC):
    """Publishes one kind of asset.

    Attributes:
        priority: Processors with a higher priority are asked first.
        suffixes: Lower-case file suffixes this processor handles.
    """

    priority = 0
    suffixes: tuple[str, ...] = ()

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def publish(self, source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        self._write(source, dest)

    @abstractmethod
    def _write(self, source: Path, dest: Path) -> None:
        ...


class ImageOptimizer(AssetProcessor):
    """Re-saves images with ``optimize=True``.

    Animated images and files Pillow cannot decode are copied unchanged.
    """

    priority = 100
    suffixes = (".png", ".jpg", ".jpeg", ".webp", ".gif")

    def _write(self, source: Path, dest: Path) -> None:
        try:
            optimised = self._optimise(source, dest)
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Could not optimise %s (%s); copying as-is", source, exc)
            optimised = False
        if not optimised:
            shutil.copyfile(source, dest)

    @staticmethod
    def _optimise(source: Path, dest: Path) -> bool:
        with Image.open(source) as image:
            # Pillow would keep only the first frame.
            if getattr(image, "is_animated", False):
                return False
            image.save(dest, optimize=True)
        return True


class ScriptMinifier(AssetProcessor):
    """Minifies JavaScript; files already named ``*.min.js`` pass through."""

    priority = 50
    suffixes = (".js",)

    def _write(self, source: Path, dest: Path) -> None:
        if source.name.lower().endswith(".min.js"):
            shutil.copyfile(source, dest)
            return
        script = source.read_text(encoding="utf-8")
        dest.write_text(jsmin(script), encoding="utf-8")


class PlainCopy(AssetProcessor):
    """Copies any file no other processor claims."""

    priority = -1

    def accepts(self, path: Path) -> bool:
        return True

    def _write(self, source: Path, dest: Path) -> None:
        shutil.copyfile(source, dest)


class ProcessorChain:
    """Ordered set of processors, highest priority first."""

    def __init__(self, processors: Iterable[AssetProcessor] = ()):
        self._processors: list[AssetProcessor] = []
        for processor in processors:
            self.add(processor)

    def add(self, processor: AssetProcessor) -> None:
        self._processors.append(processor)
        self._processors.sort(key=attrgetter("priority"), reverse=True)

    def select(self, path: Path) -> AssetProcessor | None:
        return next((p for p in self._processors if p.accepts(path)), None)

    def publish(self, source: Path, dest: Path) -> bool:
        """Publish ``source`` to ``dest``; False when nothing accepts it."""
        processor = self.select(source)
        if processor is None:
            logger.debug("No processor for %s", source)
            return False
        processor.publish(source, dest)
        return True


def default_chain() -> ProcessorChain:
    return ProcessorChain([ImageOptimizer(), ScriptMinifier(), PlainCopy()])


class AssetPipeline:
    """Publishes a project's ``assets/`` tree into the build output."""

    def __init__(
        self,
        project_root: Path,
        output_dir: Path,
        chain: ProcessorChain | None = None,
    ):
        self.source_dir = project_root / ASSETS_DIR
        self.target_dir = output_dir / ASSETS_DIR
        self.chain = chain or default_chain()

    def run(self) -> list[Path]:
        """Publish every visible file; return the destinations written."""
        if not self.source_dir.is_dir():
            return []
        published: list[Path] = []
        for source in sorted(self.source_dir.rglob("*")):
            if source.is_dir() or source.name.startswith("."):
                continue
            dest = self.target_dir / source.relative_to(self.source_dir)
            if self.chain.publish(source, dest):
                published.append(dest)
        logger.debug("Published %d assets to %s", len(published), self.target_dir)
        return published
