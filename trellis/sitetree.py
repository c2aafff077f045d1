"""Site graph for Trellis.

The SiteTree holds every page and resource reachable from the entry document,
keyed by canonical locator, together with the discovery edges between them.
The SiteGraphResolver builds it breadth first from the entry page.

Key classes:
- NodeKind: PAGE or RESOURCE.
- SiteNode: One page or resource with its immutable output path.
- SiteTree: Node arena, discovery edges and per-page reference map.
- SiteGraphResolver: Breadth-first discovery from an entry document.

Key functions:
- discover_references: Outbound references of a token sequence.
- discover_asset_references: Relative references inside CSS and JavaScript.
"""

from __future__ import annotations

import hashlib
import logging
import os
import posixpath
import re
from collections import deque
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from .config import PageConfig
from .errors import ConfigError, FetchError, SiteTreeError, TrellisError
from .locator import (
    Locator,
    fragment_of,
    has_foreign_scheme,
    is_page_reference,
    is_remote_reference,
    strip_fragment,
)
from .parser import parse_document
from .protocols import Fetcher
from .tokens import CustomElement, Image, Link, LinkKind, Token, iter_tokens

logger = logging.getLogger(__name__)

OUTPUT_EXTENSION = ".html"
REMOTE_DIR = "_remote"

# Attributes of custom elements that always name a resource.
RESOURCE_ATTRIBUTES = ("src", "poster", "skybox-image", "environment-image")

_CSS_REFERENCE_RES = (
    re.compile(r"""url\(\s*(['"]?)([^'")\s]+)\1\s*\)""", re.IGNORECASE),
    re.compile(r"""@import\s+(['"])([^'"]+)\1""", re.IGNORECASE),
)
_JS_REFERENCE_RES = (
    re.compile(r"""\b(?:import|export)\s[^'";]*?\bfrom\s*(['"])([^'"\n]+)\1"""),
    re.compile(r"""\bimport\s*(['"])([^'"\n]+)\1"""),
    re.compile(r"""\bimport\s*\(\s*(['"])([^'"\n]+)\1\s*\)"""),
)
ASSET_EXTENSIONS = {".css": _CSS_REFERENCE_RES, ".js": _JS_REFERENCE_RES, ".mjs": _JS_REFERENCE_RES}


class NodeKind(str, Enum):
    PAGE = "page"
    RESOURCE = "resource"


class SiteNode:
    """A page or resource of the site.

    Attributes:
        locator: Canonical source locator.
        kind: PAGE or RESOURCE.
        source: Locator of the page or asset that discovered this node, None
            for the entry page and for generated nodes without a page.
        config: Front-matter configuration (pages only).
        tokens: Parsed body (pages only).
        content: Static content replacing the fetched source, if any.
        error: Error that prevents this page from rendering, if any.
    """

    def __init__(
        self,
        locator: Locator,
        kind: NodeKind,
        output_path: PurePosixPath,
        source: Locator | None = None,
        config: PageConfig | None = None,
        tokens: list[Token] | None = None,
        content: bytes | None = None,
    ):
        self.locator = locator
        self.kind = kind
        self._output_path = PurePosixPath(output_path)
        self.source = source
        self.config = config if config is not None else PageConfig()
        self.tokens = tokens if tokens is not None else []
        self.content = content
        self.error: TrellisError | None = None

    @property
    def output_path(self) -> PurePosixPath:
        """Output path relative to the output root, fixed at creation."""
        return self._output_path

    @property
    def is_page(self) -> bool:
        return self.kind is NodeKind.PAGE

    @property
    def name(self) -> str:
        """Display name: the file stem for pages, the file name for resources."""
        if self.is_page:
            return PurePosixPath(self.locator.filename).stem
        return self.locator.filename or self.output_path.name

    def __repr__(self) -> str:
        return f"SiteNode({self.kind.value}, {self.locator}, {self.output_path})"


@dataclass(frozen=True)
class Reference:
    """An outbound reference found in a page.

    Attributes:
        raw: The reference exactly as written.
        kind: Whether it names a page or a resource.
    """

    raw: str
    kind: NodeKind


def discover_references(tokens: Sequence[Token], source_extension: str = ".md") -> list[Reference]:
    """Collect the discoverable references of a token sequence.

    Links to pages and resources, image sources and the resource attributes
    of custom elements are collected, nested elements included. Remote links
    are only followed when they point at pages; remote sources (images,
    models) are always collected.

    Args:
        tokens: Parsed page body.
        source_extension: Extension of source documents.

    Returns:
        References in document order.
    """
    found: list[Reference] = []

    def add(raw: str, kind: NodeKind, allow_remote: bool) -> None:
        raw = raw.strip()
        if not raw or raw.startswith("#") or has_foreign_scheme(raw):
            return
        if is_remote_reference(raw) and not allow_remote:
            return
        found.append(Reference(raw, kind))

    for token in iter_tokens(tokens):
        if isinstance(token, Link):
            is_page = token.kind is LinkKind.PAGE
            add(token.target, NodeKind.PAGE if is_page else NodeKind.RESOURCE, is_page)
        elif isinstance(token, Image):
            add(token.src, NodeKind.RESOURCE, True)
        elif isinstance(token, CustomElement):
            for attribute in RESOURCE_ATTRIBUTES:
                if attribute in token.attributes:
                    add(token.attributes[attribute], NodeKind.RESOURCE, True)
            href = token.attributes.get("href")
            if href is not None:
                is_page = is_page_reference(href, source_extension)
                add(href, NodeKind.PAGE if is_page else NodeKind.RESOURCE, is_page)
    return found


def discover_asset_references(text: str, extension: str) -> list[str]:
    """Collect the relative references of a stylesheet or script.

    Stylesheets contribute ``url(...)`` values and ``@import`` targets;
    scripts contribute static, re-export and dynamic ``import`` specifiers
    that start with ``./``, ``../`` or ``/``. Bare module names, absolute
    URLs and ``data:`` URIs are left alone.

    Args:
        text: Source of the asset.
        extension: Lower-cased extension of the asset, e.g. ``".css"``.

    Returns:
        Unique references in order of first appearance.
    """
    patterns = ASSET_EXTENSIONS.get(extension, ())
    matches: list[tuple[int, str]] = []
    for pattern in patterns:
        matches.extend((match.start(), match.group(2).strip()) for match in pattern.finditer(text))
    found: list[str] = []
    for _, raw in sorted(matches):
        if not raw or raw.startswith("#") or has_foreign_scheme(raw) or is_remote_reference(raw):
            continue
        if extension != ".css" and not raw.startswith(("./", "../", "/")):
            continue
        if raw not in found:
            found.append(raw)
    return found


class SiteTree:
    """All nodes of a site, keyed by canonical locator.

    Nodes are kept in discovery order. Edges run from the page or asset that
    found a reference to the node it names and are deduplicated per pair. Once
    ``freeze`` is called no node, edge or reference can be added.

    Attributes:
        root: Directory of the entry document; no local node may live outside it.
        entry: Locator of the entry page.
        source_extension: Extension of source documents.
    """

    def __init__(self, entry: Locator, source_extension: str = ".md"):
        if not entry.is_local:
            raise SiteTreeError(f"entry document must be a local file, got {entry}", entry)
        self.entry = entry
        self.root = Path(os.path.dirname(entry.value))
        self.source_extension = source_extension
        self._nodes: dict[Locator, SiteNode] = {}
        self._outputs: dict[PurePosixPath, Locator] = {}
        self._edges: dict[tuple[Locator, Locator], None] = {}
        self._references: dict[Locator, dict[str, Locator]] = {}
        self._missing: dict[Locator, dict[str, Locator]] = {}
        self._unreachable: dict[Locator, str] = {}
        self._frozen = False

    # Queries ---------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, locator: object) -> bool:
        return locator in self._nodes

    def __iter__(self) -> Iterator[SiteNode]:
        return iter(list(self._nodes.values()))

    def __getitem__(self, locator: Locator) -> SiteNode:
        return self._nodes[locator]

    def get(self, locator: Locator | None) -> SiteNode | None:
        if locator is None:
            return None
        return self._nodes.get(locator)

    @property
    def entry_node(self) -> SiteNode:
        return self._nodes[self.entry]

    @property
    def edges(self) -> list[tuple[Locator, Locator]]:
        return list(self._edges)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def pages(self) -> list[SiteNode]:
        return [node for node in self._nodes.values() if node.is_page]

    def resources(self) -> list[SiteNode]:
        return [node for node in self._nodes.values() if not node.is_page]

    def targets(self, locator: Locator) -> list[SiteNode]:
        """Nodes referenced by a page, in discovery order."""
        return [self._nodes[target] for source, target in self._edges if source == locator]

    def parent(self, locator: Locator) -> SiteNode | None:
        """The page that discovered a node."""
        return self.get(self._nodes[locator].source)

    def children(self, locator: Locator) -> list[SiteNode]:
        """Pages discovered by a page, in discovery order."""
        return [
            node
            for node in self._nodes.values()
            if node.is_page and node.source == locator and node.locator != locator
        ]

    def ancestors(self, locator: Locator) -> list[SiteNode]:
        """Discovery chain of a node from the entry page down to its parent."""
        chain: list[SiteNode] = []
        seen = {locator}
        current = self.parent(locator)
        while current is not None and current.locator not in seen:
            chain.append(current)
            seen.add(current.locator)
            current = self.parent(current.locator)
        chain.reverse()
        return chain

    def reference(self, page: Locator, raw: str) -> Locator | None:
        """Look up the canonical locator a page's raw reference resolved to."""
        return self._references.get(page, {}).get(raw.strip())

    def unreachable(self, locator: Locator) -> str | None:
        """Why a locator could not be added to the site, if it was tried."""
        return self._unreachable.get(locator)

    def missing(self, page: Locator, raw: str) -> str | None:
        """Why a raw reference of a page has no target, or None if it has one."""
        target = self._missing.get(page, {}).get(raw.strip())
        return self._unreachable.get(target) if target is not None else None

    def missing_references(self, page: Locator) -> dict[str, str]:
        """Broken references of a page, keyed by the raw reference."""
        return {raw: self._unreachable[target] for raw, target in self._missing.get(page, {}).items()}

    def rel_url(self, source: Locator, target: Locator, fragment: str = "") -> str:
        """Relative URL from one node's output path to another's.

        Args:
            source: Node the URL is written into.
            target: Node the URL points at.
            fragment: Optional ``#fragment`` to append.

        Returns:
            A relative URL such as ``../images/logo.png``.
        """
        start = self._nodes[source].output_path.parent.as_posix()
        path = posixpath.relpath(self._nodes[target].output_path.as_posix(), start)
        return f"{path}{fragment}"

    def href(self, page: Locator, raw: str) -> str | None:
        """Relative URL for a raw reference written in a page.

        Returns:
            The URL, or None when the reference was never discovered.
        """
        target = self.reference(page, raw)
        if target is None or target not in self._nodes:
            return None
        return self.rel_url(page, target, fragment_of(raw.strip()))

    # Canonicalization ------------------------------------------------------

    def locate(self, raw: str, base: Locator) -> Locator | None:
        """Canonicalize a raw reference found in ``base``.

        Args:
            raw: Reference as written in the document.
            base: Locator of the referencing page.

        Returns:
            The canonical locator, or None for references that name nothing
            fetchable (fragments, mailto: links and similar).

        Raises:
            SiteTreeError: If a local reference escapes the site root.
        """
        raw = raw.strip()
        if not raw or raw.startswith("#") or has_foreign_scheme(raw):
            return None
        reference = strip_fragment(raw)
        if not reference:
            return None
        if is_remote_reference(reference) or base.is_remote:
            return base.join(reference)
        if reference.startswith("/"):
            locator = Locator.local(self.root / unquote(reference.lstrip("/")))
        elif base.is_generated:
            locator = Locator.local(self.root / unquote(reference))
        else:
            locator = base.join(reference)
        if not locator.path.is_relative_to(self.root):
            raise SiteTreeError(
                f"reference {raw!r} escapes the site root {self.root}",
                base,
            )
        return locator

    def output_path_for(self, locator: Locator, kind: NodeKind) -> PurePosixPath:
        """Compute the output path of a node.

        Local pages mirror their source path with the source extension
        replaced by ``.html``; local resources mirror their path unchanged.
        Remote nodes are placed under ``_remote/<host>/``.
        """
        if locator.is_generated:
            return PurePosixPath(locator.value)
        if locator.is_local:
            relative = PurePosixPath(locator.path.relative_to(self.root).as_posix())
        else:
            parsed = urlparse(locator.value)
            path = unquote(parsed.path).lstrip("/")
            if not path or path.endswith("/"):
                path += "index" + (self.source_extension if kind is NodeKind.PAGE else "")
            relative = PurePosixPath(REMOTE_DIR, parsed.netloc.replace(":", "_"), path)
            if parsed.query:
                digest = hashlib.sha1(parsed.query.encode("utf-8")).hexdigest()[:8]
                relative = relative.with_name(f"{relative.stem}-{digest}{relative.suffix}")
        if kind is NodeKind.PAGE and relative.suffix.lower() == self.source_extension:
            relative = relative.with_suffix(OUTPUT_EXTENSION)
        return relative

    # Mutation --------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise SiteTreeError("the site tree is frozen; nodes can only be added during init")

    def _add(self, node: SiteNode) -> SiteNode:
        self._check_mutable()
        if node.locator in self._nodes:
            raise SiteTreeError("already part of the site", node.locator)
        claimed = self._outputs.get(node.output_path)
        if claimed is not None:
            raise SiteTreeError(
                f"output path collision: {claimed} and {node.locator} "
                f"both write {node.output_path}",
                node.locator,
            )
        self._nodes[node.locator] = node
        self._outputs[node.output_path] = node.locator
        logger.debug("Discovered %r", node)
        return node

    def add_page(
        self,
        locator: Locator,
        source: Locator | None = None,
        config: PageConfig | None = None,
        tokens: list[Token] | None = None,
        output_path: PurePosixPath | None = None,
    ) -> SiteNode:
        """Add a page node.

        Raises:
            SiteTreeError: If the locator or its output path is already taken.
        """
        path = output_path or self.output_path_for(locator, NodeKind.PAGE)
        return self._add(SiteNode(locator, NodeKind.PAGE, path, source, config, tokens))

    def add_resource(
        self,
        locator: Locator,
        source: Locator | None = None,
        output_path: PurePosixPath | None = None,
        content: bytes | None = None,
    ) -> SiteNode:
        """Add a resource node.

        Raises:
            SiteTreeError: If the locator or its output path is already taken.
        """
        path = output_path or self.output_path_for(locator, NodeKind.RESOURCE)
        return self._add(SiteNode(locator, NodeKind.RESOURCE, path, source, content=content))

    def add_generated(
        self,
        output_path: PurePosixPath | str,
        content: bytes,
        source: Locator | None = None,
    ) -> SiteNode:
        """Add a resource produced during the build (feeds, stylesheets).

        Args:
            output_path: Output path relative to the output root.
            content: File content.
            source: Page the resource belongs to, if any.

        Returns:
            The new node.
        """
        path = PurePosixPath(output_path)
        node = self.add_resource(Locator.generated(path.as_posix()), source, path, content)
        if source is not None:
            self.add_edge(source, node.locator)
        return node

    def add_edge(self, source: Locator, target: Locator) -> None:
        self._check_mutable()
        self._edges.setdefault((source, target), None)

    def record_reference(self, page: Locator, raw: str, target: Locator) -> None:
        self._check_mutable()
        self._references.setdefault(page, {})[raw.strip()] = target

    def mark_unreachable(self, locator: Locator, reason: str) -> None:
        """Remember that a locator could not be read, so it is not tried again."""
        self._check_mutable()
        self._unreachable.setdefault(locator, reason)

    def record_missing(self, page: Locator, raw: str, target: Locator) -> None:
        """Remember a raw reference whose target is unreachable."""
        self._check_mutable()
        self._missing.setdefault(page, {})[raw.strip()] = target

    def freeze(self) -> None:
        """Make the tree read-only."""
        self._frozen = True


class SiteGraphResolver:
    """Discovers a site breadth first from its entry document.

    A reference whose target cannot be read is recorded as missing on the
    referencing page, which then fails at render time. Only an unreadable
    entry page, an escaping reference or an output collision stops discovery.

    Attributes:
        fetcher: Collaborator used to read pages and check resources.
        source_extension: Extension of source documents.
    """

    def __init__(self, fetcher: Fetcher, source_extension: str = ".md"):
        self.fetcher = fetcher
        self.source_extension = source_extension
        self._queue: deque[Locator] = deque()

    def resolve(self, entry: Locator | Path | str) -> SiteTree:
        """Build the complete site tree.

        Args:
            entry: Entry document.

        Returns:
            The populated, still mutable SiteTree.

        Raises:
            SiteTreeError: On escaping references, output collisions, an
                unreadable entry page, or a malformed configuration block on
                the entry page.
        """
        if not isinstance(entry, Locator):
            entry = Locator.local(entry)
        tree = SiteTree(entry, self.source_extension)
        self._queue = deque()
        self._load_page(tree, entry, source=None)
        self._drain(tree)
        logger.info(
            "Discovered %d pages and %d resources",
            len(tree.pages()),
            len(tree.resources()),
        )
        return tree

    def link_resource(self, tree: SiteTree, page: Locator, raw: str) -> SiteNode | None:
        """Add a resource referenced outside the page body, such as a stylesheet.

        Args:
            tree: Tree being discovered.
            page: Page the reference belongs to.
            raw: Reference as written.

        Returns:
            The resource node, or None when the reference names nothing
            fetchable or its target is missing.

        Raises:
            SiteTreeError: If the reference escapes the site root.
        """
        node = self._follow(tree, page, raw, NodeKind.RESOURCE)
        self._drain(tree)
        return node

    def _drain(self, tree: SiteTree) -> None:
        while self._queue:
            page = tree[self._queue.popleft()]
            if page.error is not None:
                continue
            for reference in discover_references(page.tokens, self.source_extension):
                self._follow(tree, page.locator, reference.raw, reference.kind)

    def _follow(self, tree: SiteTree, page: Locator, raw: str, kind: NodeKind) -> SiteNode | None:
        target = tree.locate(raw, page)
        if target is None:
            return None
        if target.is_local and target not in tree and target.path.is_dir():
            referrer = tree.get(page)
            if referrer is not None and referrer.is_page:
                target = Locator.local(target.path / f"index{self.source_extension}")
                kind = NodeKind.PAGE
            else:
                tree.mark_unreachable(target, f"{target} is a directory")
        node = tree.get(target)
        if node is None and tree.unreachable(target) is None:
            if kind is NodeKind.PAGE:
                node = self._load_page(tree, target, source=page)
            else:
                node = self._add_resource(tree, target, source=page)
        if node is None:
            tree.record_missing(page, raw, target)
            logger.warning("%s: broken reference %r: %s", page, raw.strip(), tree.unreachable(target))
            return None
        tree.add_edge(page, target)
        tree.record_reference(page, raw, target)
        return node

    def _load_page(self, tree: SiteTree, locator: Locator, source: Locator | None) -> SiteNode | None:
        try:
            text = self.fetcher.fetch(locator).decode("utf-8")
        except (FetchError, UnicodeDecodeError) as exc:
            reason = str(exc) if isinstance(exc, FetchError) else f"cannot decode {locator}: {exc}"
            if source is None:
                raise SiteTreeError(f"cannot read entry page: {reason}", locator) from exc
            tree.mark_unreachable(locator, reason)
            return None
        try:
            document = parse_document(text, self.source_extension)
        except ConfigError as exc:
            if source is None:
                raise SiteTreeError(str(exc), locator) from exc
            logger.error("%s: %s", locator, exc)
            node = tree.add_page(locator, source=source)
            node.error = exc
            return node
        node = tree.add_page(locator, source, PageConfig(document.config), document.tokens)
        self._queue.append(locator)
        return node

    def _add_resource(self, tree: SiteTree, locator: Locator, source: Locator) -> SiteNode | None:
        if locator.is_local and not self.fetcher.exists(locator):
            tree.mark_unreachable(locator, f"{locator} does not exist")
            return None
        node = tree.add_resource(locator, source=source)
        self._scan_asset(tree, node)
        return node

    def _scan_asset(self, tree: SiteTree, node: SiteNode) -> None:
        extension = node.locator.extension.lower()
        if extension not in ASSET_EXTENSIONS or node.locator.is_generated:
            return
        try:
            text = self.fetcher.fetch(node.locator).decode("utf-8", errors="replace")
        except FetchError as exc:
            logger.warning("Cannot scan %s for references: %s", node.locator, exc)
            return
        for raw in discover_asset_references(text, extension):
            self._follow(tree, node.locator, raw, NodeKind.RESOURCE)
