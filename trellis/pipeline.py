"""Module pipeline for Trellis.

Modules contribute to a build through a fixed sequence of hooks:

1. ``init``: once per build, may add nodes to the site tree.
2. ``after_init``: once per build, reads the complete tree; the tree is
   frozen afterwards.
3. ``render_page``: once per page; the first module returning True claims
   the page and the token stage is skipped.
4. ``render_token``: for unclaimed pages, each token goes to the first module
   that accepts it, in registration order, with the fallback module last.
5. ``after_render``: once per page, for every module, unless the page was
   replaced by verbatim HTML.

Each module declares the hooks it implements in ``capabilities``; only those
hooks are called. Exactly one registered module must be the fallback, able
to render every token kind.

Key classes:
- Capability: Hook names.
- Module: Base class for modules.
- InitContext: What ``init`` may use and change.
- RenderContext: Per-page rendering state.
- Pipeline: Drives the hooks over the registered modules.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .builder import DocumentBuilder
from .dom import Document, Element
from .errors import BuildError, RenderError, TrellisError, error_detail, format_error_message
from .protocols import Fetcher, Transcoder
from .sitetree import SiteNode, SiteTree
from .tokens import Token

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    INIT = "init"
    AFTER_INIT = "after_init"
    RENDER_PAGE = "render_page"
    RENDER_TOKEN = "render_token"
    AFTER_RENDER = "after_render"


@dataclass
class InitContext:
    """Everything a module may use during ``init``.

    Attributes:
        tree: The site tree, still open for new nodes.
        fetcher: Source reader, e.g. for importing archives.
        transcoder: Media optimizer, if one is configured.
    """

    tree: SiteTree
    fetcher: Fetcher
    transcoder: Transcoder | None = None


@dataclass
class RenderContext:
    """Rendering state of one page.

    Attributes:
        tree: The frozen site tree.
        node: The page being rendered.
        pipeline: Pipeline used to render nested tokens.
        state: Scratch space, keyed by module id, discarded with the page.
    """

    tree: SiteTree
    node: SiteNode
    pipeline: Pipeline
    state: dict[str, Any] = field(default_factory=dict)

    def render_tokens(self, tokens: Sequence[Token], parent: Element) -> None:
        """Render tokens into ``parent`` through the token stage."""
        for token in tokens:
            self.pipeline.render_token(token, parent, self)

    def href(self, raw: str) -> str | None:
        """Relative URL of a raw reference written in this page."""
        return self.tree.href(self.node.locator, raw)

    def module_state(self, module_id: str) -> dict[str, Any]:
        return self.state.setdefault(module_id, {})


class Module(ABC):
    """Base class for pipeline modules.

    Subclasses set ``capabilities`` to the hooks they implement. Hooks not
    listed are never called.

    Attributes:
        capabilities: Hooks this module takes part in.
        is_fallback: True for the single module that renders every token.
    """

    capabilities: frozenset[Capability] = frozenset()
    is_fallback: bool = False

    @property
    @abstractmethod
    def id(self) -> str:
        """Return the module identifier, also its configuration namespace."""
        ...

    def init(self, ctx: InitContext) -> None:
        """Inspect and extend the site tree before rendering."""

    def after_init(self, tree: SiteTree) -> None:
        """Read the complete site tree before it is frozen."""

    def render_page(self, document: Document, ctx: RenderContext) -> bool:
        """Optionally render a whole page.

        Returns:
            True if this module claimed the page.
        """
        return False

    def can_render_token(self, token: Token) -> bool:
        """Check whether this module renders the given token."""
        return False

    def render_token(self, token: Token, parent: Element, ctx: RenderContext) -> None:
        """Render a token into ``parent``."""
        raise NotImplementedError(f"{self.id} does not render {type(token).__name__}")

    def after_render(self, document: Document, ctx: RenderContext) -> None:
        """Post-process a rendered page."""


class Pipeline:
    """Ordered set of modules and the hook sequence over them.

    Attributes:
        modules: Modules in registration order.
        fallback: The module that renders any token no other module takes.
    """

    def __init__(self, modules: Sequence[Module], builder: DocumentBuilder | None = None):
        fallbacks = [module for module in modules if module.is_fallback]
        if len(fallbacks) != 1:
            raise TrellisError(
                f"exactly one fallback module must be registered, found {len(fallbacks)}"
            )
        seen: set[str] = set()
        for module in modules:
            if module.id in seen:
                raise TrellisError(f"module {module.id!r} is registered twice")
            seen.add(module.id)
        self.modules = list(modules)
        self.fallback = fallbacks[0]
        self.builder = builder or DocumentBuilder()
        self._token_modules = [
            module
            for module in self.modules
            if Capability.RENDER_TOKEN in module.capabilities and not module.is_fallback
        ]
        self._token_modules.append(self.fallback)

    def with_capability(self, capability: Capability) -> list[Module]:
        return [module for module in self.modules if capability in module.capabilities]

    def get(self, module_id: str) -> Module | None:
        return next((module for module in self.modules if module.id == module_id), None)

    def init(self, tree: SiteTree, fetcher: Fetcher, transcoder: Transcoder | None = None) -> None:
        """Run ``init`` on every module.

        Raises:
            BuildError: If any module fails; init errors affect the whole site.
        """
        ctx = InitContext(tree, fetcher, transcoder)
        for module in self.with_capability(Capability.INIT):
            logger.debug("init: %s", module.id)
            try:
                module.init(ctx)
            except Exception as exc:
                locator = getattr(exc, "locator", None) or tree.entry
                raise BuildError(
                    locator,
                    f"module {module.id!r} failed during init: {error_detail(exc)}",
                    exc,
                ) from exc

    def after_init(self, tree: SiteTree) -> None:
        """Run ``after_init`` on every module, then freeze the tree.

        Raises:
            BuildError: If any module fails.
        """
        for module in self.with_capability(Capability.AFTER_INIT):
            logger.debug("after_init: %s", module.id)
            try:
                module.after_init(tree)
            except Exception as exc:
                locator = getattr(exc, "locator", None) or tree.entry
                raise BuildError(
                    locator,
                    f"module {module.id!r} failed during after_init: {error_detail(exc)}",
                    exc,
                ) from exc
        tree.freeze()

    def render_token(self, token: Token, parent: Element, ctx: RenderContext) -> None:
        """Offer a token to the modules in order; the first taker renders it.

        Raises:
            RenderError: If no module accepts the token.
        """
        for module in self._token_modules:
            if module.can_render_token(token):
                module.render_token(token, parent, ctx)
                return
        raise RenderError(
            f"no module renders {type(token).__name__} tokens",
            ctx.node.locator,
        )

    def render(self, node: SiteNode, tree: SiteTree) -> Document:
        """Render one page.

        Args:
            node: The page to render.
            tree: The frozen site tree.

        Returns:
            The finished output document.

        Raises:
            RenderError: If the page cannot be rendered; other pages are
                unaffected.
        """
        if node.error is not None:
            raise RenderError(error_detail(node.error), node.locator) from node.error
        document = self.builder.build(node.tokens)
        ctx = RenderContext(tree, node, self)
        try:
            claimed = False
            for module in self.with_capability(Capability.RENDER_PAGE):
                if module.render_page(document, ctx):
                    logger.debug("%s claimed %s", module.id, node.locator)
                    claimed = True
                    break
            if not claimed:
                ctx.render_tokens(node.tokens, document.body)
            if not document.is_raw:
                for module in self.with_capability(Capability.AFTER_RENDER):
                    module.after_render(document, ctx)
        except RenderError as exc:
            if exc.locator is None:
                exc.locator = node.locator
            raise
        except Exception as exc:
            raise RenderError(format_error_message(exc), node.locator) from exc
        return document
