"""Blog module: posts, date banners and RSS feeds.

A page with a ``[blog.root]`` table is a blog root. Pages with a
``[blog.post]`` table are posts of their nearest root ancestor; a post
without any root becomes its own root. Roots with RSS enabled get a feed
generated next to them.

Key classes:
- RssOptions, BlogRootOptions, BlogPostOptions: Option schemas.
- BlogModule: Collects roots and posts, writes feeds, renders posts.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath

from jinja2 import Environment

from ..builder import first_heading
from ..config import PageConfig
from ..dom import Document, Element, element
from ..errors import ConfigError
from ..locator import Locator
from ..pipeline import Capability, InitContext, Module, RenderContext
from ..sitetree import SiteNode, SiteTree
from ..tokens import to_text

logger = logging.getLogger(__name__)

FEED_FILENAME = "feed.xml"
RFC_822 = "%a, %d %b %Y %H:%M:%S +0000"

RSS_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{{ title }}</title>
    <link>{{ link }}</link>
    <description>{{ description }}</description>
{%- for item in items %}
    <item>
      <title>{{ item.title }}</title>
      <link>{{ item.link }}</link>
      <guid>{{ item.link }}</guid>
{%- if item.description %}
      <description>{{ item.description }}</description>
{%- endif %}
{%- if item.pub_date %}
      <pubDate>{{ item.pub_date }}</pubDate>
{%- endif %}
{%- for tag in item.tags %}
      <category>{{ tag }}</category>
{%- endfor %}
    </item>
{%- endfor %}
  </channel>
</rss>
"""


@dataclass
class RssOptions:
    """Feed settings of a blog root.

    Attributes:
        enabled: Generate a feed for this root.
        footer: Link the feed at the bottom of the root and its posts.
        title: Channel title; defaults to the root page heading.
        description: Channel description.
        host: Absolute URL of the site, used to make feed links absolute.
    """

    enabled: bool = True
    footer: bool = True
    title: str = ""
    description: str = ""
    host: str = ""


@dataclass
class BlogRootOptions:
    rss: RssOptions = field(default_factory=RssOptions)
    use_fs_dates: bool = False


@dataclass
class BlogPostOptions:
    render: bool = True
    created_on: datetime | None = None
    modified_on: datetime | None = None
    tags: list[str] = field(default_factory=list)
    summary: str | None = None


@dataclass
class PostPage:
    locator: Locator
    options: BlogPostOptions
    title: str
    created_on: datetime | None = None
    modified_on: datetime | None = None

    @property
    def date(self) -> datetime | None:
        return self.modified_on or self.created_on

    def banner(self) -> str | None:
        """Human readable date line, preferring the modification date."""
        if self.modified_on is not None:
            return self.modified_on.strftime("Updated on %B %d, %Y")
        if self.created_on is not None:
            return self.created_on.strftime("Created on %B %d, %Y")
        return None


@dataclass
class BlogRoot:
    locator: Locator
    options: BlogRootOptions
    posts: list[PostPage] = field(default_factory=list)
    feed: Locator | None = None


def _page_title(node: SiteNode) -> str:
    heading = first_heading(node.tokens)
    return to_text(heading.content).strip() if heading is not None else node.name


def _fs_date(node: SiteNode) -> datetime | None:
    if not node.locator.is_local:
        return None
    try:
        mtime = node.locator.path.stat().st_mtime
    except OSError as exc:
        logger.warning("Cannot read modification date of %s: %s", node.locator, exc)
        return None
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


class BlogModule(Module):
    """Blog roots, posts and their feeds."""

    capabilities = frozenset(
        {Capability.INIT, Capability.RENDER_PAGE, Capability.AFTER_RENDER}
    )

    def __init__(self) -> None:
        self.roots: dict[Locator, BlogRoot] = {}
        self._post_roots: dict[Locator, Locator] = {}
        self._environment = Environment(autoescape=True, keep_trailing_newline=True)

    @property
    def id(self) -> str:
        return "blog"

    def post(self, locator: Locator) -> PostPage | None:
        root = self._post_roots.get(locator)
        if root is None:
            return None
        return next((post for post in self.roots[root].posts if post.locator == locator), None)

    def init(self, ctx: InitContext) -> None:
        tree = ctx.tree
        for node in tree.pages():
            if node.error is not None:
                continue
            try:
                self._collect(tree, node)
            except ConfigError as exc:
                if node.locator == tree.entry:
                    raise
                logger.error("%s: %s", node.locator, exc)
                node.error = exc

        for root in self.roots.values():
            if root.options.rss.enabled and root.posts:
                self._add_feed(tree, root)
        logger.debug(
            "Blog: %d roots, %d posts", len(self.roots), len(self._post_roots)
        )

    def _collect(self, tree: SiteTree, node: SiteNode) -> None:
        config: PageConfig = node.config
        if not config.has(self.id):
            return
        locator = node.locator
        if config.has("blog.root"):
            root = BlogRoot(locator, config.resolve("blog.root", BlogRootOptions))
            self.roots[locator] = root
        else:
            root = next(
                (
                    self.roots[ancestor.locator]
                    for ancestor in reversed(tree.ancestors(locator))
                    if ancestor.locator in self.roots
                ),
                None,
            )
        if not config.has("blog.post"):
            return
        options = config.resolve("blog.post", BlogPostOptions)
        if root is None:
            root = BlogRoot(locator, BlogRootOptions())
            self.roots[locator] = root
        created_on, modified_on = options.created_on, options.modified_on
        if root.options.use_fs_dates:
            fs_date = _fs_date(node)
            created_on = created_on or fs_date
            modified_on = modified_on or fs_date
        root.posts.append(PostPage(locator, options, _page_title(node), created_on, modified_on))
        self._post_roots[locator] = root.locator

    def _add_feed(self, tree: SiteTree, root: BlogRoot) -> None:
        root_node = tree[root.locator]
        directory = root_node.output_path.parent
        stem = root_node.output_path.stem
        feed_path = directory / (FEED_FILENAME if stem == "index" else f"{stem}-{FEED_FILENAME}")
        rss = root.options.rss
        host = rss.host.rstrip("/")

        def link(path: PurePosixPath) -> str:
            if host:
                return f"{host}/{path.as_posix()}"
            return posixpath.relpath(path.as_posix(), directory.as_posix())

        posts = sorted(
            root.posts,
            key=lambda post: post.date or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        items = [
            {
                "title": post.title,
                "link": link(tree[post.locator].output_path),
                "description": post.options.summary,
                "pub_date": post.date.strftime(RFC_822) if post.date else None,
                "tags": post.options.tags,
            }
            for post in posts
            if post.options.render
        ]
        feed = self._environment.from_string(RSS_TEMPLATE).render(
            title=rss.title or _page_title(root_node),
            link=link(root_node.output_path),
            description=rss.description,
            items=items,
        )
        root.feed = tree.add_generated(feed_path, feed.encode("utf-8"), source=root.locator).locator

    def render_page(self, document: Document, ctx: RenderContext) -> bool:
        post = self.post(ctx.node.locator)
        if post is None or not post.options.render:
            return False
        article = document.body.append(Element("article", {"class": "blog__post"}))
        ctx.render_tokens(ctx.node.tokens, article)

        banner = post.banner()
        if banner:
            date = element("div", {"class": "blog__date"}, [banner])
            heading = next(
                (child for child in article.children if isinstance(child, Element) and child.tag == "h1"),
                None,
            )
            if heading is not None:
                article.insert(article.children.index(heading) + 1, date)
            else:
                article.insert(0, date)

        if post.options.tags:
            tags = article.append(Element("ul", {"class": "blog__tags"}))
            for tag in post.options.tags:
                tags.append(element("li", {"class": "blog__tag"}, [tag]))
        return True

    def after_render(self, document: Document, ctx: RenderContext) -> None:
        locator = ctx.node.locator
        root = self.roots.get(locator) or self.roots.get(self._post_roots.get(locator))
        if root is None or root.feed is None:
            return
        href = ctx.tree.rel_url(locator, root.feed)
        if locator == root.locator:
            attrs = {"rel": "alternate", "type": "application/rss+xml", "href": href}
            title = root.options.rss.title
            if title:
                attrs["title"] = title
            document.head.append(Element("link", attrs))
        if root.options.rss.footer:
            document.body.append(
                element(
                    "p",
                    {"class": "blog__rss"},
                    [element("a", {"href": href}, ["RSS feed"])],
                )
            )
