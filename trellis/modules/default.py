"""Default module: the fallback renderer of every token.

Besides turning tokens into HTML, the default module owns the page frame:
head metadata, stylesheets, navigation, the content wrapper and the footer.
It also expands the synthetic elements ``carousel``, ``links`` and
``sitetree`` once the page body is rendered.

Options live in the ``[default]`` namespace and are inherited from the page
that discovered a page, unless that page sets ``root = true``.

Key classes:
- NavKind, NavOptions, DefaultOptions: Option schemas.
- DefaultModule: The fallback module.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from importlib import resources

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from ..dom import Document, Element, Node, Raw, Text, element
from ..errors import ConfigError, RenderError, SiteTreeError
from ..locator import Locator, has_foreign_scheme, is_remote_reference
from ..pipeline import Capability, InitContext, Module, RenderContext
from ..sitetree import RESOURCE_ATTRIBUTES, SiteGraphResolver, SiteNode, SiteTree
from ..tokens import (
    Alignment,
    BlockQuote,
    BulletList,
    Code,
    CodeBlock,
    Comment,
    CustomElement,
    Emphasis,
    HardBreak,
    Heading,
    Image,
    Link,
    OrderedList,
    Paragraph,
    RawHtml,
    SectionLink,
    SoftBreak,
    Strong,
    Table,
    Text as TextToken,
    ThematicBreak,
    Token,
    to_text,
)

logger = logging.getLogger(__name__)

DEFAULT_CSS = "default.css"
DEFAULT_JS = "default.js"
HIGHLIGHT_CSS = "highlight.css"
VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogv")
SIDEMENU_DEPTH = 4

# Attributes of passthrough elements that hold references to rewrite.
_URL_ATTRIBUTES = (*RESOURCE_ATTRIBUTES, "href")


class NavKind(str, Enum):
    BREADCRUMBS = "breadcrumbs"
    SIDEMENU = "sidemenu"
    NONE = "none"


@dataclass
class NavOptions:
    """Navigation shown above the content.

    Attributes:
        kind: breadcrumbs, sidemenu or none.
        include_root: Show the navigation root itself in the side menu.
        name_map: Display names keyed by page name.
    """

    kind: NavKind = NavKind.BREADCRUMBS
    include_root: bool = False
    name_map: dict[str, str] = field(default_factory=dict)


@dataclass
class DefaultOptions:
    """Options of the ``[default]`` namespace.

    Attributes:
        title: Site title, appended to the page heading in ``<title>``.
        meta: Extra meta tags; ``description`` and ``image`` also become
            Open Graph and Twitter tags.
        language: Value of ``<html lang>``.
        stylesheets: Stylesheets added to this page and inherited by the
            pages it links to.
        favicon: Favicon reference, inherited like stylesheets.
        nav: Navigation settings.
        root: Do not inherit anything from the discovering page.
        watermark: Render the footer watermark.
    """

    title: str = ""
    meta: dict[str, str] = field(default_factory=dict)
    language: str = "en"
    stylesheets: list[str] = field(default_factory=list)
    favicon: str | None = None
    nav: NavOptions = field(default_factory=NavOptions)
    root: bool = False
    watermark: bool = True


def generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


def _static_file(name: str) -> bytes:
    return resources.files("trellis").joinpath("static", name).read_bytes()


def _leading_element(parent: Element) -> Element | None:
    """First child element, skipping whitespace-only text."""
    for child in parent.children:
        if isinstance(child, Text) and not child.text.strip():
            continue
        return child if isinstance(child, Element) else None
    return None


class DefaultModule(Module):
    """Renders every token kind and frames each page."""

    capabilities = frozenset(
        {
            Capability.INIT,
            Capability.AFTER_INIT,
            Capability.RENDER_TOKEN,
            Capability.AFTER_RENDER,
        }
    )
    is_fallback = True

    def __init__(self) -> None:
        self._options: dict[Locator, DefaultOptions] = {}
        self._stylesheets: dict[Locator, list[Locator]] = {}
        self._favicons: dict[Locator, Locator] = {}
        self._nav_roots: dict[Locator, Locator] = {}
        self._generated: dict[str, Locator] = {}

    @property
    def id(self) -> str:
        return "default"

    # Build hooks -----------------------------------------------------------

    def own_options(self, node: SiteNode) -> DefaultOptions:
        """Options a page sets itself, without inheritance."""
        return node.config.resolve(self.id, DefaultOptions)

    def init(self, ctx: InitContext) -> None:
        tree = ctx.tree
        entry = tree.entry
        formatter = HtmlFormatter(cssclass="highlight")
        generated = {
            DEFAULT_CSS: _static_file(DEFAULT_CSS),
            HIGHLIGHT_CSS: formatter.get_style_defs(".highlight").encode("utf-8"),
            DEFAULT_JS: _static_file(DEFAULT_JS),
        }
        for name, content in generated.items():
            self._generated[name] = tree.add_generated(name, content, source=entry).locator

        for node in tree.pages():
            if node.error is not None:
                continue
            try:
                options = self.own_options(node)
            except ConfigError as exc:
                if node.locator == entry:
                    raise
                logger.error("%s: %s", node.locator, exc)
                node.error = exc
                continue
            references = list(options.stylesheets)
            if options.favicon:
                references.append(options.favicon)
            for raw in references:
                self._link(ctx, node, raw)

    def _link(self, ctx: InitContext, node: SiteNode, raw: str) -> None:
        resolver = SiteGraphResolver(ctx.fetcher, ctx.tree.source_extension)
        if resolver.link_resource(ctx.tree, node.locator, raw) is not None:
            return
        reason = ctx.tree.missing(node.locator, raw)
        if reason is None:
            return
        error = SiteTreeError(f"resource {raw!r} does not exist", node.locator)
        if node.locator == ctx.tree.entry:
            raise error
        logger.error("%s", error)
        node.error = error

    def after_init(self, tree: SiteTree) -> None:
        for node in tree.pages():
            locator = node.locator
            parent = tree.parent(locator)
            if node.error is not None:
                own = DefaultOptions()
            else:
                own = self.own_options(node)
            inherit = not own.root and parent is not None and parent.locator in self._options

            if inherit:
                base = replace(
                    self._options[parent.locator],
                    root=False,
                    stylesheets=[],
                    favicon=None,
                )
                options = base if node.error is not None else node.config.resolve(
                    self.id, DefaultOptions, base=base
                )
                stylesheets = list(self._stylesheets[parent.locator])
                favicon = self._favicons.get(parent.locator)
                nav_root = self._nav_roots[parent.locator]
            else:
                options = own
                stylesheets = []
                favicon = None
                nav_root = locator

            for raw in own.stylesheets:
                target = tree.reference(locator, raw)
                if target is not None and target not in stylesheets:
                    stylesheets.append(target)
            for token in node.tokens:
                if self._is_stylesheet_link(token):
                    target = tree.reference(locator, token.attributes["href"])
                    if target is not None and target not in stylesheets:
                        stylesheets.append(target)
            if own.favicon:
                favicon = tree.reference(locator, own.favicon) or favicon

            self._options[locator] = options
            self._stylesheets[locator] = stylesheets
            if favicon is not None:
                self._favicons[locator] = favicon
            self._nav_roots[locator] = nav_root

    def options_for(self, locator: Locator) -> DefaultOptions:
        """Effective (inherited) options of a page."""
        return self._options.get(locator) or DefaultOptions()

    # Token rendering -------------------------------------------------------

    def can_render_token(self, token: Token) -> bool:
        return isinstance(token, Token)

    @staticmethod
    def _is_stylesheet_link(token: Token) -> bool:
        return (
            isinstance(token, CustomElement)
            and token.tag == "link"
            and "stylesheet" in token.attributes.get("rel", "").split()
            and "href" in token.attributes
        )

    def resolve_url(self, ctx: RenderContext, raw: str) -> str:
        """Translate a reference written in the page into an output URL.

        Raises:
            RenderError: If a local reference was never discovered.
        """
        raw = raw.strip()
        if not raw or raw.startswith("#") or has_foreign_scheme(raw):
            return raw
        reason = ctx.tree.missing(ctx.node.locator, raw)
        if reason is not None:
            raise RenderError(f"broken reference {raw!r}: {reason}", ctx.node.locator)
        url = ctx.href(raw)
        if url is not None:
            return url
        if is_remote_reference(raw):
            return raw
        raise RenderError(
            f"{raw!r} does not resolve to a page or resource of the site",
            ctx.node.locator,
        )

    def render_token(self, token: Token, parent: Element, ctx: RenderContext) -> None:
        if isinstance(token, TextToken):
            parent.append(Text(token.text))
        elif isinstance(token, SoftBreak):
            parent.append(Text("\n"))
        elif isinstance(token, HardBreak):
            parent.append(Element("br"))
        elif isinstance(token, Heading):
            self._heading(token, parent, ctx)
        elif isinstance(token, Paragraph):
            ctx.render_tokens(token.content, parent.append(Element("p")))
        elif isinstance(token, Emphasis):
            ctx.render_tokens(token.content, parent.append(Element("em")))
        elif isinstance(token, Strong):
            ctx.render_tokens(token.content, parent.append(Element("strong")))
        elif isinstance(token, Code):
            parent.append(element("code", children=[token.text]))
        elif isinstance(token, Link):
            attrs: dict[str, str | None] = {"href": self.resolve_url(ctx, token.target)}
            if token.title:
                attrs["title"] = token.title
            ctx.render_tokens(token.content, parent.append(Element("a", attrs)))
        elif isinstance(token, SectionLink):
            ctx.render_tokens(token.content, parent.append(Element("a", {"href": f"#{token.anchor}"})))
        elif isinstance(token, Image):
            self._image(token, parent, ctx)
        elif isinstance(token, CodeBlock):
            parent.append(self._code_block(token))
        elif isinstance(token, Table):
            parent.append(self._table(token, ctx))
        elif isinstance(token, BlockQuote):
            ctx.render_tokens(token.content, parent.append(Element("blockquote")))
        elif isinstance(token, BulletList):
            ul = parent.append(Element("ul"))
            for item in token.items:
                ctx.render_tokens(item, ul.append(Element("li")))
        elif isinstance(token, OrderedList):
            ol = parent.append(Element("ol", {"start": str(token.start)} if token.start != 1 else {}))
            for item in token.items:
                ctx.render_tokens(item, ol.append(Element("li")))
        elif isinstance(token, ThematicBreak):
            parent.append(Element("hr"))
        elif isinstance(token, Comment):
            pass
        elif isinstance(token, RawHtml):
            parent.append(Raw(token.html))
        elif isinstance(token, CustomElement):
            self._custom_element(token, parent, ctx)
        else:
            raise RenderError(f"unknown token kind {type(token).__name__}", ctx.node.locator)

    def _heading(self, token: Heading, parent: Element, ctx: RenderContext) -> None:
        counts = ctx.module_state(self.id).setdefault("heading_ids", {})
        base_id = generate_heading_id(to_text(token.content))
        if base_id in counts:
            counts[base_id] += 1
            heading_id = f"{base_id}-{counts[base_id]}"
        else:
            counts[base_id] = 0
            heading_id = base_id
        heading = parent.append(Element(f"h{token.level}", {"id": heading_id}))
        ctx.render_tokens(token.content, heading)

    def _image(self, token: Image, parent: Element, ctx: RenderContext) -> None:
        src = self.resolve_url(ctx, token.src)
        path = token.src.split("#", 1)[0].split("?", 1)[0].lower()
        if path.endswith(VIDEO_EXTENSIONS):
            attrs: dict[str, str | None] = {"src": src, "controls": None, "playsinline": None}
            if token.title:
                attrs["title"] = token.title
            parent.append(element("video", attrs, [token.alt] if token.alt else []))
            return
        attrs = {"src": src, "alt": token.alt, "loading": "lazy"}
        if token.title:
            attrs["title"] = token.title
        parent.append(Element("img", attrs))

    def _code_block(self, token: CodeBlock) -> Node:
        if token.lang:
            try:
                lexer = get_lexer_by_name(token.lang, stripall=True)
            except ClassNotFound:
                logger.debug("No lexer for %r, rendering code block as plain text", token.lang)
            else:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return Raw(highlight(token.raw, lexer, formatter))
        code = element(
            "code",
            {"class": f"language-{token.lang}"} if token.lang else {},
            [token.raw],
        )
        return element("pre", children=[code])

    def _table(self, token: Table, ctx: RenderContext) -> Element:
        table = Element("table")

        def cell(tag: str, tokens: list[Token], align: Alignment) -> Element:
            attrs = {} if align is Alignment.NONE else {"style": f"text-align: {align.value}"}
            result = Element(tag, attrs)
            ctx.render_tokens(tokens, result)
            return result

        head_row = table.append(Element("thead")).append(Element("tr"))
        for index, tokens in enumerate(token.header):
            head_row.append(cell("th", tokens, token.align[index]))
        if token.rows:
            body = table.append(Element("tbody"))
            for row in token.rows:
                tr = body.append(Element("tr"))
                for index, tokens in enumerate(row):
                    tr.append(cell("td", tokens, token.align[index]))
        return table

    def _custom_element(self, token: CustomElement, parent: Element, ctx: RenderContext) -> None:
        if self._is_stylesheet_link(token):
            # Rendered in <head> by after_render.
            return
        if token.tag == "centered":
            ctx.render_tokens(token.content, parent.append(Element("div", {"class": "default__centered"})))
            return
        attrs: dict[str, str | None] = {}
        for name, value in token.attributes.items():
            if name in _URL_ATTRIBUTES:
                attrs[name] = self.resolve_url(ctx, value)
            else:
                attrs[name] = value if value != "" else None
        ctx.render_tokens(token.content, parent.append(Element(token.tag, attrs)))

    # Page frame ------------------------------------------------------------

    def after_render(self, document: Document, ctx: RenderContext) -> None:
        options = self.options_for(ctx.node.locator)
        for placeholder in document.body.find_all(lambda e: e.tag in ("carousel", "links", "sitetree")):
            if placeholder.tag == "carousel":
                self._carousel(placeholder)
            elif placeholder.tag == "links":
                self._links(placeholder)
            else:
                self._sitetree(placeholder, ctx, options)

        content = Element("main", {"id": "content"})
        content.extend(document.body.clear())
        document.body.append(content)
        nav = self._nav(ctx, options)
        if nav is not None:
            document.body.insert(0, nav)
        if options.watermark:
            document.body.append(
                element(
                    "footer",
                    {"class": "default__watermark"},
                    ["Built with Trellis"],
                )
            )
        script = self._generated.get(DEFAULT_JS)
        if script is not None:
            document.body.append(Element("script", {"src": ctx.tree.rel_url(ctx.node.locator, script), "defer": None}))

        self._head(document, ctx, options)
        document.root.attrs["lang"] = options.language

    def _head(self, document: Document, ctx: RenderContext, options: DefaultOptions) -> None:
        tree = ctx.tree
        locator = ctx.node.locator
        head = document.head

        title_element = head.find("title")
        heading = title_element.text_content() if title_element is not None else ""
        if heading and options.title:
            title = f"{heading} - {options.title}"
        else:
            title = heading or options.title
        if title_element is None:
            title_element = head.append(Element("title"))
        title_element.clear()
        title_element.append(Text(title))

        head.append(Element("meta", {"name": "viewport", "content": "width=device-width, initial-scale=1"}))
        if options.title:
            head.append(Element("meta", {"property": "og:title", "content": options.title}))
            head.append(Element("meta", {"name": "twitter:title", "content": options.title}))
        for key, value in options.meta.items():
            if key in ("description", "image"):
                if key == "description":
                    head.append(Element("meta", {"name": key, "content": value}))
                head.append(Element("meta", {"property": f"og:{key}", "content": value}))
                head.append(Element("meta", {"name": f"twitter:{key}", "content": value}))
            elif key.startswith("og:"):
                head.append(Element("meta", {"property": key, "content": value}))
            else:
                head.append(Element("meta", {"name": key, "content": value}))

        favicon = self._favicons.get(locator)
        if favicon is not None:
            head.append(Element("link", {"rel": "icon", "href": tree.rel_url(locator, favicon)}))

        stylesheets = [self._generated[name] for name in (DEFAULT_CSS, HIGHLIGHT_CSS) if name in self._generated]
        stylesheets.extend(self._stylesheets.get(locator, []))
        for stylesheet in stylesheets:
            head.append(Element("link", {"rel": "stylesheet", "href": tree.rel_url(locator, stylesheet)}))

    def _display_name(self, node: SiteNode, options: DefaultOptions) -> str:
        return options.nav.name_map.get(node.name, node.name)

    def _nav(self, ctx: RenderContext, options: DefaultOptions) -> Element | None:
        tree = ctx.tree
        locator = ctx.node.locator
        root = self._nav_roots.get(locator, tree.entry)
        if options.nav.kind is NavKind.NONE:
            return None
        if options.nav.kind is NavKind.BREADCRUMBS:
            if locator == root:
                return None
            nav = Element("nav", {"class": "default__breadcrumbs"})
            nav.append(Text("/"))
            chain = tree.ancestors(locator)
            roots = [index for index, node in enumerate(chain) if node.locator == root]
            if roots:
                chain = chain[roots[0] :]
            for index, node in enumerate(chain):
                nav.append(
                    element(
                        "a",
                        {"href": tree.rel_url(locator, node.locator)},
                        [self._display_name(node, options)],
                    )
                )
                if index != len(chain) - 1:
                    nav.append(Text("/"))
            nav.append(Text(f"/{self._display_name(ctx.node, options)}"))
            return nav

        nav = Element("nav", {"class": "default__side-menu"})
        if options.nav.include_root:
            ul = nav.append(Element("ul"))
            ul.append(self._menu_item(tree, tree[root], locator, options, 0))
        else:
            nav.append(self._menu_list(tree, root, locator, options, 0))
        return nav

    def _menu_item(
        self,
        tree: SiteTree,
        node: SiteNode,
        current: Locator,
        options: DefaultOptions,
        depth: int,
    ) -> Element:
        li = Element("li")
        link = li.append(
            element(
                "a",
                {"href": tree.rel_url(current, node.locator), "class": "default__side-menu__link"},
                [self._display_name(node, options)],
            )
        )
        if node.locator == current:
            link.add_class("default__side-menu__link--active")
        if depth < SIDEMENU_DEPTH and tree.children(node.locator):
            li.append(self._menu_list(tree, node.locator, current, options, depth + 1))
        return li

    def _menu_list(
        self,
        tree: SiteTree,
        parent: Locator,
        current: Locator,
        options: DefaultOptions,
        depth: int,
    ) -> Element:
        ul = Element("ul")
        for child in tree.children(parent):
            ul.append(self._menu_item(tree, child, current, options, depth))
        return ul

    # Synthetic elements ----------------------------------------------------

    def _carousel(self, placeholder: Element) -> None:
        items = [
            node
            for node in placeholder.find_all(lambda e: e.tag in ("img", "video", "model-viewer"))
            if not (node.parent is not None and node.parent.tag == "model-viewer")
        ]
        if not items:
            logger.warning("Empty carousel removed")
            placeholder.detach()
            return
        show_titles = "title" in placeholder.attrs
        carousel = Element("div", {"class": "default__carousel"})

        main = carousel.append(Element("div", {"class": "default__carousel_main"}))
        main.append(self._carousel_slide(items[0], 0, show_titles))

        if len(items) > 1:
            thumbnails = carousel.append(Element("div", {"class": "default__carousel_thumbnails"}))
            for index, item in enumerate(items[1:], start=1):
                thumb = thumbnails.append(
                    Element(
                        "button",
                        {
                            "class": "default__carousel_thumb",
                            "type": "button",
                            "data-index": str(index),
                            "aria-label": f"Show slide {index + 1}",
                        },
                    )
                )
                thumb.append(self._carousel_slide(item, index, show_titles))
        placeholder.replace_with(carousel)

    @staticmethod
    def _carousel_slide(item: Element, index: int, show_titles: bool) -> Element:
        slide = Element("div", {"class": "default__carousel_slide", "data-index": str(index)})
        slide.append(item)
        if show_titles:
            title = next(
                (
                    value.strip()
                    for value in (item.get("title"), item.get("alt"), item.get("aria-label"))
                    if value and value.strip()
                ),
                None,
            )
            if title:
                slide.append(element("div", {"class": "default__carousel_slide_title"}, [title]))
        return slide

    def _links(self, placeholder: Element) -> None:
        anchors = placeholder.find_all("a")
        if "boxes" in placeholder.attrs:
            container = Element("nav", {"class": "default__links"})
            for anchor in anchors:
                box = Element("div", {"class": "default__links_box"})
                box.extend(anchor.clear())
                anchor.append(box)
                container.append(anchor)
        elif "grid" in placeholder.attrs:
            container = Element("div", {"class": "default__links_grid"})
            for anchor in anchors:
                card = Element("div", {"class": "default__links_grid_card"})
                leading = _leading_element(anchor)
                if leading is not None and leading.tag in ("img", "video"):
                    cover = card.append(Element("div", {"class": "default__links_grid_card_cover"}))
                    leading.attrs["width"] = "100%"
                    leading.attrs["height"] = "auto"
                    cover.append(leading)
                title = anchor.text_content().strip()
                anchor.clear()
                card.append(element("h3", {"class": "default__links_grid_card_title"}, [title]))
                anchor.append(card)
                container.append(anchor)
        else:
            logger.warning("links element without 'boxes' or 'grid', rendering its content as is")
            placeholder.replace_with(*placeholder.clear())
            return
        placeholder.replace_with(container)

    def _sitetree(self, placeholder: Element, ctx: RenderContext, options: DefaultOptions) -> None:
        ignore = {
            name.strip()
            for name in (placeholder.get("ignore") or "").split(",")
            if name.strip()
        }
        tree = ctx.tree
        current = ctx.node.locator

        def listing(parent: Locator) -> Element | None:
            ul = Element("ul")
            for child in tree.children(parent):
                if child.name in ignore or child.locator.filename in ignore:
                    continue
                li = ul.append(Element("li"))
                li.append(
                    element(
                        "a",
                        {"href": tree.rel_url(current, child.locator)},
                        [self._display_name(child, options)],
                    )
                )
                nested = listing(child.locator)
                if nested is not None:
                    li.append(nested)
            return ul if ul.children else None

        nav = Element("nav", {"class": "default__sitetree"})
        root = tree.entry_node
        ul = nav.append(Element("ul"))
        li = ul.append(Element("li"))
        li.append(
            element(
                "a",
                {"href": tree.rel_url(current, root.locator)},
                [self._display_name(root, options)],
            )
        )
        nested = listing(root.locator)
        if nested is not None:
            li.append(nested)
        placeholder.replace_with(nav)

