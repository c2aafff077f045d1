"""Output writing for Trellis.

Implements the Writer protocol on top of a local directory.

Key classes:
- FileWriter: Writes output files below a root directory.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from rjsmin import jsmin

from .errors import TrellisError

logger = logging.getLogger(__name__)


class FileWriter:
    """Writes output files below a root directory.

    Attributes:
        root: Directory all output paths are relative to.
        minify_js: Minify ``.js`` files with rjsmin before writing.
    """

    def __init__(self, root: Path, minify_js: bool = False):
        self.root = Path(root)
        self.minify_js = minify_js

    def target(self, path: PurePosixPath) -> Path:
        """Absolute destination of an output path.

        Raises:
            TrellisError: If the path points outside the root.
        """
        if path.is_absolute() or ".." in path.parts:
            raise TrellisError(f"refusing to write outside the output directory: {path}")
        return self.root.joinpath(*path.parts)

    def write(self, path: PurePosixPath, data: bytes) -> None:
        """Write one file, creating parent directories as needed.

        Args:
            path: Output path relative to the root.
            data: File content.
        """
        dest = self.target(PurePosixPath(path))
        dest.parent.mkdir(parents=True, exist_ok=True)
        if self.minify_js and dest.suffix.lower() == ".js":
            data = jsmin(data.decode("utf-8")).encode("utf-8")
        with open(dest, "wb") as f:
            f.write(data)
        logger.debug("Wrote %s (%d bytes)", path, len(data))
