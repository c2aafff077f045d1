"""Site building functionality for Trellis.

This module ties the stages of a build together: site graph resolution,
module init, rendering of every page and writing of the output tree.

Key classes:
- BuildResult: Outcome of one build.
- PageFailure: A page or resource that could not be produced.
- BuildController: Runs rebuilds, abandoning a stale build in flight.

Key functions:
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import load_config
from .errors import BuildCancelled, BuildError, FetchError, SiteTreeError, TrellisError, error_detail
from .fetch import DefaultFetcher
from .locator import Locator
from .modules import create_modules
from .pipeline import Pipeline
from .protocols import Fetcher, Transcoder
from .sitetree import SiteGraphResolver, SiteNode, SiteTree
from .writer import FileWriter

logger = logging.getLogger(__name__)

# Held while an output directory is replaced by a finished staging directory.
_SWAP_LOCK = threading.Lock()


@dataclass
class PageFailure:
    """A node that was left out of the output.

    Attributes:
        locator: The page or resource that failed.
        message: Human-readable error message.
    """

    locator: Locator
    message: str


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        site_tree: The frozen site tree of the build.
        pages: Pages written to the output directory.
        failures: Pages and resources that could not be produced.
        output_dir: Directory where the site was built.
    """

    site_tree: SiteTree
    pages: list[SiteNode]
    failures: list[PageFailure] = field(default_factory=list)
    output_dir: Path | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise BuildCancelled("build abandoned for a newer one")


def _render_page(
    pipeline: Pipeline, tree: SiteTree, node: SiteNode, cancel: threading.Event | None
) -> str | PageFailure:
    _check_cancelled(cancel)
    try:
        document = pipeline.render(node, tree)
    except TrellisError as exc:
        logger.error("%s", exc)
        return PageFailure(node.locator, error_detail(exc))
    return document.serialize()


def build_site(
    entry: Path | str,
    output_dir: Path | None = None,
    modules: Iterable[str] | None = None,
    fetcher: Fetcher | None = None,
    transcoder: Transcoder | None = None,
    jobs: int | None = None,
    minify_js: bool | None = None,
    cancel: threading.Event | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        entry: Entry document; its directory is the site root.
        output_dir: Optional path to write the build output instead of the
            configured output_dir.
        modules: Module ids in registration order, overriding trellis.yaml.
        fetcher: Source reader; a DefaultFetcher is used when omitted.
        transcoder: Media optimizer passed to the modules.
        jobs: Number of pages rendered in parallel.
        minify_js: Minify JavaScript output.
        cancel: Event that abandons the build when set.

    Returns:
        BuildResult with the site tree, the written pages and any failures.

    Raises:
        BuildError: If the site as a whole cannot be built.
        BuildCancelled: If ``cancel`` was set before the build finished.
    """
    entry = Path(entry).resolve()
    config: dict[str, Any] = load_config(entry.parent)
    output_dir = Path(output_dir or entry.parent / config["output_dir"]).resolve()
    jobs = max(1, int(jobs if jobs is not None else config["jobs"]))
    minify_js = bool(config["minify_js"] if minify_js is None else minify_js)
    module_names = list(modules if modules is not None else config["modules"])

    owned_fetcher = fetcher is None
    source = fetcher if fetcher is not None else DefaultFetcher()
    try:
        try:
            pipeline = Pipeline(create_modules(module_names))
        except TrellisError as exc:
            raise BuildError(None, str(exc), exc) from exc

        logger.info("Resolving site from %s", entry)
        try:
            tree = SiteGraphResolver(source).resolve(Locator.local(entry))
        except SiteTreeError as exc:
            raise BuildError(exc.locator, exc.message, exc) from exc
        _check_cancelled(cancel)

        pipeline.init(tree, source, transcoder)
        pipeline.after_init(tree)
        _check_cancelled(cancel)

        pages = tree.pages()
        logger.info("Rendering %d pages with %d job(s)", len(pages), jobs)
        if jobs > 1:
            with ThreadPoolExecutor(max_workers=jobs) as executor:
                rendered = list(
                    executor.map(lambda node: _render_page(pipeline, tree, node, cancel), pages)
                )
        else:
            rendered = [_render_page(pipeline, tree, node, cancel) for node in pages]
        _check_cancelled(cancel)

        return _write_output(tree, pages, rendered, source, output_dir, minify_js, cancel)
    finally:
        if owned_fetcher:
            source.close()


def _write_output(
    tree: SiteTree,
    pages: list[SiteNode],
    rendered: list[str | PageFailure],
    fetcher: Fetcher,
    output_dir: Path,
    minify_js: bool,
    cancel: threading.Event | None,
) -> BuildResult:
    """Write the rendered site into a staging directory, then swap it in."""
    output_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{output_dir.name}-", dir=output_dir.parent))
    writer = FileWriter(staging, minify_js=minify_js)
    written: list[SiteNode] = []
    failures: list[PageFailure] = []
    try:
        for node, result in zip(pages, rendered):
            if isinstance(result, PageFailure):
                failures.append(result)
                continue
            writer.write(node.output_path, result.encode("utf-8"))
            written.append(node)

        for node in tree.resources():
            _check_cancelled(cancel)
            try:
                data = node.content if node.content is not None else fetcher.fetch(node.locator)
            except FetchError as exc:
                logger.error("%s", exc)
                failures.append(PageFailure(node.locator, str(exc)))
                continue
            writer.write(node.output_path, data)

        with _SWAP_LOCK:
            _check_cancelled(cancel)
            if output_dir.exists():
                shutil.rmtree(output_dir)
            os.replace(staging, output_dir)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    logger.info(
        "Built %d pages and %d resources into %s",
        len(written),
        len(tree.resources()),
        output_dir,
    )
    return BuildResult(site_tree=tree, pages=written, failures=failures, output_dir=output_dir)


class BuildController:
    """Serializes rebuilds of one site.

    Starting a rebuild cancels the build still in flight; the stale build
    stops at its next checkpoint and leaves the output directory untouched.

    Attributes:
        entry: Entry document of the site.
        options: Keyword arguments passed to build_site.
    """

    def __init__(self, entry: Path | str, **options: Any):
        self.entry = Path(entry)
        self.options = options
        self._lock = threading.Lock()
        self._cancel: threading.Event | None = None

    def cancel(self) -> None:
        """Abandon the build in flight, if any."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()

    def rebuild(self) -> BuildResult | None:
        """Build the site from scratch.

        Returns:
            The build result, or None if a newer rebuild superseded this one.
        """
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
            cancel = threading.Event()
            self._cancel = cancel
        try:
            return build_site(self.entry, cancel=cancel, **self.options)
        except BuildCancelled:
            logger.info("Build of %s superseded by a newer one", self.entry)
            return None
        finally:
            with self._lock:
                if self._cancel is cancel:
                    self._cancel = None
