from pathlib import PurePosixPath

import pytest

from trellis.errors import ConfigError, FetchError, SiteTreeError
from trellis.fetch import DefaultFetcher
from trellis.locator import Locator
from trellis.parser import parse_document
from trellis.sitetree import NodeKind, SiteGraphResolver, discover_asset_references, discover_references

from conftest import write_files


class MemoryFetcher:
    """Serves local files from disk and remote URLs from a dict."""

    def __init__(self, remote: dict[str, bytes]):
        self.remote = remote
        self.local = DefaultFetcher()
        self.fetched: list[str] = []

    def fetch(self, locator):
        self.fetched.append(locator.value)
        if locator.is_remote:
            try:
                return self.remote[locator.value]
            except KeyError:
                raise FetchError(f"not found: {locator}", locator) from None
        return self.local.fetch(locator)

    def exists(self, locator):
        if locator.is_remote:
            return locator.value in self.remote
        return self.local.exists(locator)


def resolve(root, files, fetcher=None):
    write_files(root, files)
    return SiteGraphResolver(fetcher or DefaultFetcher()).resolve(root / "index.md")


def test_simple_site(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "# Home\n\n[About](about.md)\n\n![Logo](images/logo.png)\n",
            "about.md": "# About\n",
            "images/logo.png": b"\x89PNG",
        },
    )
    assert len(tree) == 3
    assert len(tree.pages()) == 2
    assert len(tree.resources()) == 1
    logo = tree[Locator.local(site_dir / "images" / "logo.png")]
    assert logo.kind is NodeKind.RESOURCE
    assert logo.output_path == PurePosixPath("images/logo.png")
    about = tree[Locator.local(site_dir / "about.md")]
    assert about.output_path == PurePosixPath("about.html")
    assert about.source == tree.entry
    assert tree.entry_node.output_path == PurePosixPath("index.html")


def test_nodes_are_unique_per_locator(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[A](a.md) [B](./b.md) ![x](img/x.png)\n",
            "a.md": "[B](b.md) ![x](img/../img/x.png) [Home](index.md)\n",
            "b.md": "![x](img/x.png) [A](a.md#top)\n",
            "img/x.png": b"x",
        },
    )
    assert len(tree.pages()) == 3
    assert len(tree.resources()) == 1
    image = Locator.local(site_dir / "img" / "x.png")
    assert sum(1 for _, target in tree.edges if target == image) == 3


def test_cycles_terminate(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[B](b.md)\n",
            "b.md": "[Back](index.md)\n",
        },
    )
    assert len(tree) == 2
    assert len(tree.edges) == 2


def test_edges_are_deduplicated(site_dir):
    tree = resolve(site_dir, {"index.md": "[B](b.md) [again](b.md)\n", "b.md": "# B\n"})
    assert len(tree.edges) == 1
    assert tree.targets(tree.entry)[0].name == "b"


def test_escaping_reference_is_rejected(tmp_path):
    root = tmp_path / "root"
    write_files(
        tmp_path,
        {
            "root/index.md": "[Page](sub/page.md)\n",
            "root/sub/page.md": "[Out](../../outside.md)\n",
            "outside.md": "# Outside\n",
        },
    )
    with pytest.raises(SiteTreeError, match="escapes the site root"):
        SiteGraphResolver(DefaultFetcher()).resolve(root / "index.md")


def test_all_local_nodes_live_under_the_root(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[Docs](docs/guide.md)\n",
            "docs/guide.md": "[Home](../index.md) ![d](../assets/d.svg)\n",
            "assets/d.svg": "<svg/>",
        },
    )
    for node in tree:
        assert node.locator.path.is_relative_to(site_dir)
        assert ".." not in node.output_path.parts


def test_root_relative_references_resolve_against_the_site_root(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[Docs](docs/guide.md)\n",
            "docs/guide.md": "![Logo](/logo.png)\n",
            "logo.png": b"x",
        },
    )
    guide = Locator.local(site_dir / "docs" / "guide.md")
    assert tree.href(guide, "/logo.png") == "../logo.png"


def test_missing_local_resource_is_recorded_on_the_page(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[About](about.md)\n",
            "about.md": "![x](missing.png)\n\n![Logo](logo.png)\n",
            "logo.png": b"x",
        },
    )
    about = Locator.local(site_dir / "about.md")
    assert Locator.local(site_dir / "logo.png") in tree
    assert Locator.local(site_dir / "missing.png") not in tree
    assert "does not exist" in tree.missing(about, "missing.png")
    assert tree.missing(about, "logo.png") is None
    assert list(tree.missing_references(about)) == ["missing.png"]
    assert tree.missing_references(tree.entry) == {}


def test_missing_page_is_recorded_on_every_referencing_page(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[x](missing.md) [B](b.md)\n",
            "b.md": "[again](./missing.md)\n",
        },
    )
    b = Locator.local(site_dir / "b.md")
    assert len(tree.pages()) == 2
    assert "cannot read" in tree.missing(tree.entry, "missing.md")
    assert "cannot read" in tree.missing(b, "./missing.md")
    assert tree.unreachable(Locator.local(site_dir / "missing.md")) is not None


def test_unreadable_entry_is_fatal(site_dir):
    with pytest.raises(SiteTreeError, match="cannot read entry page"):
        SiteGraphResolver(DefaultFetcher()).resolve(site_dir / "absent.md")


def test_directory_references_resolve_to_their_index_page(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[Docs](docs/) [Blog](blog)\n",
            "docs/index.md": "[Home](/) [Up](../)\n",
            "blog/post.md": "# Post\n",
        },
    )
    docs = Locator.local(site_dir / "docs" / "index.md")
    assert tree[docs].is_page
    assert tree.href(tree.entry, "docs/") == "docs/index.html"
    assert tree.href(docs, "/") == "../index.html"
    assert tree.href(docs, "../") == "../index.html"
    assert "cannot read" in tree.missing(tree.entry, "blog")
    assert len(tree.pages()) == 2


def test_stylesheet_references_are_discovered(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": '<link rel="stylesheet" href="css/style.css">\n',
            "css/style.css": (
                '@import "base.css";\n'
                "body { background: url('../img/bg.png'); }\n"
                "@font-face { src: url(./fonts/a.woff2) format('woff2'), url(data:font/woff2;base64,AA); }\n"
                ".gone { background: url(missing.png); }\n"
            ),
            "css/base.css": "h1 { background: url(\"/img/h.png\"); }\n",
            "css/fonts/a.woff2": b"woff",
            "img/bg.png": b"bg",
            "img/h.png": b"h",
        },
    )
    style = Locator.local(site_dir / "css" / "style.css")
    outputs = {node.output_path.as_posix() for node in tree.resources()}
    assert outputs == {"css/style.css", "css/base.css", "css/fonts/a.woff2", "img/bg.png", "img/h.png"}
    assert (style, Locator.local(site_dir / "css" / "fonts" / "a.woff2")) in tree.edges
    assert "does not exist" in tree.missing(style, "missing.png")
    assert tree.missing_references(tree.entry) == {}


def test_script_imports_are_discovered(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": '<script type="module" src="js/app.js"></script>\n',
            "js/app.js": (
                'import { a } from "./lib/a.js";\n'
                "import './side.js';\n"
                'import lodash from "lodash";\n'
                "const b = await import('../vendor/b.mjs');\n"
            ),
            "js/lib/a.js": "export const a = 1;\n",
            "js/side.js": "",
            "vendor/b.mjs": 'export * from "./c.mjs";\n',
            "vendor/c.mjs": "",
        },
    )
    outputs = {node.output_path.as_posix() for node in tree.resources()}
    assert outputs == {"js/app.js", "js/lib/a.js", "js/side.js", "vendor/b.mjs", "vendor/c.mjs"}


def test_discover_asset_references():
    css = "a { b: url( 'x.png' ); c: url(https://cdn.example.com/f.png); d: url(#id) }\n@import 'y.css';"
    assert discover_asset_references(css, ".css") == ["x.png", "y.css"]
    js = 'import x from "react";\nexport { y } from "../y.js";\nimport("./z.js");\n'
    assert discover_asset_references(js, ".js") == ["../y.js", "./z.js"]
    assert discover_asset_references(css, ".png") == []


def test_malformed_config_on_linked_page_marks_the_page(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[B](b.md)\n",
            "b.md": "<!--\n[default\ntitle = \n-->\n[C](c.md)\n",
            "c.md": "# C\n",
        },
    )
    node = tree[Locator.local(site_dir / "b.md")]
    assert isinstance(node.error, ConfigError)
    assert Locator.local(site_dir / "c.md") not in tree


def test_malformed_config_on_entry_is_fatal(site_dir):
    with pytest.raises(SiteTreeError):
        resolve(site_dir, {"index.md": "<!--\ntitle = = 1\n-->\n# Home\n"})


def test_remote_pages_and_resources(site_dir):
    fetcher = MemoryFetcher(
        {
            "https://example.com/docs/page.md": b"[Next](other.md)\n",
            "https://example.com/docs/other.md": b"# Other\n",
        }
    )
    tree = resolve(
        site_dir,
        {"index.md": "[Remote](https://example.com/docs/page.md)\n\n![Pic](https://cdn.example.com/a.png?w=1)\n"},
        fetcher,
    )
    page = tree[Locator.remote("https://example.com/docs/page.md")]
    assert page.output_path == PurePosixPath("_remote/example.com/docs/page.html")
    assert Locator.remote("https://example.com/docs/other.md") in tree
    picture = tree[Locator.remote("https://cdn.example.com/a.png?w=1")]
    assert picture.output_path.parent == PurePosixPath("_remote/cdn.example.com")
    assert picture.output_path.name.startswith("a-")
    assert "https://cdn.example.com/a.png?w=1" not in fetcher.fetched
    assert tree.href(tree.entry, "https://example.com/docs/page.md") == "_remote/example.com/docs/page.html"


def test_remote_resource_links_are_not_followed(site_dir):
    tree = resolve(site_dir, {"index.md": "[Site](https://example.com/)\n"})
    assert len(tree) == 1


def test_relative_urls(site_dir):
    tree = resolve(
        site_dir,
        {
            "index.md": "[Guide](docs/guide.md)\n",
            "docs/guide.md": "![Logo](../img/logo.png) [Home](../index.md#intro)\n",
            "img/logo.png": b"x",
        },
    )
    guide = Locator.local(site_dir / "docs" / "guide.md")
    assert tree.href(guide, "../img/logo.png") == "../img/logo.png"
    assert tree.href(guide, "../index.md#intro") == "../index.html#intro"
    assert tree.href(guide, "never-seen.md") is None
    assert [node.name for node in tree.ancestors(guide)] == ["index"]


def test_generated_nodes_and_collisions(site_dir):
    tree = resolve(site_dir, {"index.md": "[About](about.md)\n", "about.md": "# About\n"})
    feed = tree.add_generated("feed.xml", b"<rss/>", source=tree.entry)
    assert feed.content == b"<rss/>"
    assert (tree.entry, feed.locator) in tree.edges
    with pytest.raises(SiteTreeError, match="collision"):
        tree.add_generated("about.html", b"")


def test_frozen_tree_rejects_new_nodes(site_dir):
    tree = resolve(site_dir, {"index.md": "# Home\n"})
    tree.freeze()
    with pytest.raises(SiteTreeError, match="frozen"):
        tree.add_generated("late.txt", b"")


def test_discover_references_in_nested_elements():
    doc = parse_document(
        '<carousel>\n<model-viewer src="m.glb" poster="p.png"></model-viewer>\n</carousel>\n'
        '\n<link rel="stylesheet" href="extra.css">\n'
        "\n[mail](mailto:a@b.c) [top](#top) [doc](d.md)\n"
    )
    references = [(ref.raw, ref.kind) for ref in discover_references(doc.tokens)]
    assert references == [
        ("m.glb", NodeKind.RESOURCE),
        ("p.png", NodeKind.RESOURCE),
        ("extra.css", NodeKind.RESOURCE),
        ("d.md", NodeKind.PAGE),
    ]
