"""External module: imports prebuilt HTML bundles from zip archives.

A page whose front matter contains ``[external] href = "..."`` is replaced by
the ``index.html`` of that archive; every other file of the archive is
written next to the page. Archives whose entries all share one top-level
directory are unpacked from inside that directory.
"""

from __future__ import annotations

import logging
import posixpath
import zipfile
from dataclasses import dataclass
from io import BytesIO

from ..dom import Document
from ..errors import ConfigError, FetchError, SiteTreeError
from ..locator import Locator
from ..pipeline import Capability, InitContext, Module, RenderContext
from ..sitetree import SiteNode, SiteTree

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


@dataclass
class ExternalOptions:
    href: str | None = None


def _archive_members(archive: zipfile.ZipFile, locator: Locator) -> dict[str, bytes]:
    """Read the files of an archive keyed by normalized relative path."""
    members: dict[str, bytes] = {}
    for info in archive.infolist():
        if info.is_dir():
            continue
        name = posixpath.normpath(info.filename.replace("\\", "/"))
        if name.startswith(("/", "../")) or name == "..":
            raise SiteTreeError(f"archive contains unsafe path {info.filename!r}", locator)
        members[name] = archive.read(info)

    prefixes = {name.split("/", 1)[0] for name in members}
    if len(prefixes) == 1 and all("/" in name for name in members):
        prefix = prefixes.pop() + "/"
        members = {name[len(prefix):]: data for name, data in members.items()}
    return members


class ExternalModule(Module):
    """Replaces pages with the contents of an external archive."""

    capabilities = frozenset({Capability.INIT, Capability.RENDER_PAGE})

    def __init__(self) -> None:
        self._pages: dict[Locator, str] = {}

    @property
    def id(self) -> str:
        return "external"

    def init(self, ctx: InitContext) -> None:
        for node in ctx.tree.pages():
            if node.error is not None:
                continue
            try:
                options = node.config.resolve(self.id, ExternalOptions)
            except ConfigError as exc:
                if node.locator == ctx.tree.entry:
                    raise
                logger.error("%s: %s", node.locator, exc)
                node.error = exc
                continue
            if options.href:
                self._import(ctx, node, options.href)

    def _import(self, ctx: InitContext, node: SiteNode, href: str) -> None:
        tree: SiteTree = ctx.tree
        locator = tree.locate(href, node.locator)
        if locator is None:
            raise SiteTreeError(f"{href!r} is not an archive location", node.locator)
        try:
            data = ctx.fetcher.fetch(locator)
            with zipfile.ZipFile(BytesIO(data)) as archive:
                members = _archive_members(archive, locator)
        except (FetchError, zipfile.BadZipFile) as exc:
            raise SiteTreeError(f"cannot import {href!r}: {exc}", node.locator) from exc

        directory = node.output_path.parent
        index = members.pop(INDEX_FILE, None)
        if index is None:
            raise SiteTreeError(f"archive {href!r} has no {INDEX_FILE}", node.locator)
        self._pages[node.locator] = index.decode("utf-8")
        for name, content in sorted(members.items()):
            tree.add_generated(directory / name, content, source=node.locator)
        logger.info("Imported %d files from %s", len(members) + 1, locator)

    def render_page(self, document: Document, ctx: RenderContext) -> bool:
        html = self._pages.get(ctx.node.locator)
        if html is None:
            return False
        document.raw = html
        return True
