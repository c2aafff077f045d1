import pytest

from trellis.config import PageConfig
from trellis.dom import element
from trellis.errors import BuildError, RenderError, TrellisError
from trellis.fetch import DefaultFetcher
from trellis.locator import Locator
from trellis.modules import BlogModule, DefaultModule, create_modules
from trellis.parser import parse_document
from trellis.pipeline import Capability, Module, Pipeline
from trellis.sitetree import SiteTree
from trellis.tokens import (
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
    Text,
    ThematicBreak,
    Token,
)

ALL_TOKENS = [
    Text("t"),
    SoftBreak(),
    HardBreak(),
    ThematicBreak(),
    Comment("c"),
    RawHtml("<b>r</b>"),
    Code("x"),
    CodeBlock("x = 1", "python"),
    Emphasis([Text("e")]),
    Strong([Text("s")]),
    Paragraph([Text("p")]),
    BlockQuote([Text("q")]),
    Heading(2, [Text("h")]),
    BulletList([[Text("a")]]),
    OrderedList(2, [[Text("b")]]),
    Link("https://example.com/", content=[Text("l")]),
    SectionLink("top", [Text("s")]),
    Image("https://example.com/a.png", "alt"),
    Table([[Text("h")]], [Alignment.RIGHT], [[[Text("c")]]]),
    CustomElement("aside", {"data-x": "1"}, [Text("z")]),
]


class KbdModule(Module):
    """Renders inline code as <kbd>."""

    capabilities = frozenset({Capability.RENDER_TOKEN})

    @property
    def id(self):
        return "kbd"

    def can_render_token(self, token):
        return isinstance(token, Code)

    def render_token(self, token, parent, ctx):
        parent.append(element("kbd", children=[token.text]))


class ClaimingModule(Module):
    capabilities = frozenset({Capability.RENDER_PAGE})

    @property
    def id(self):
        return "claim"

    def render_page(self, document, ctx):
        document.body.append(element("p", {"class": "claimed"}, ["claimed"]))
        return True


class RawModule(Module):
    capabilities = frozenset({Capability.RENDER_PAGE})

    @property
    def id(self):
        return "raw"

    def render_page(self, document, ctx):
        document.raw = "<html>as is</html>"
        return True


class BrokenInitModule(Module):
    capabilities = frozenset({Capability.INIT})

    @property
    def id(self):
        return "broken"

    def init(self, ctx):
        raise ValueError("boom")


class FailingRenderModule(Module):
    capabilities = frozenset({Capability.AFTER_RENDER})

    @property
    def id(self):
        return "failing"

    def after_render(self, document, ctx):
        raise KeyError("missing")


def test_exactly_one_fallback_is_required():
    with pytest.raises(TrellisError, match="exactly one fallback"):
        Pipeline([])
    with pytest.raises(TrellisError, match="exactly one fallback"):
        Pipeline([BlogModule()])


def test_duplicate_module_ids_are_rejected():
    with pytest.raises(TrellisError):
        Pipeline([DefaultModule(), DefaultModule()])


def test_create_modules_rejects_unknown_ids():
    with pytest.raises(TrellisError, match="unknown module"):
        create_modules(["default", "nope"])
    assert [module.id for module in create_modules()] == ["blog", "media", "external", "model", "default"]


@pytest.mark.parametrize("token", ALL_TOKENS, ids=lambda token: type(token).__name__)
def test_fallback_renders_every_token_kind(token):
    assert DefaultModule().can_render_token(token)


def test_every_concrete_token_class_is_covered():
    covered = {type(token) for token in ALL_TOKENS}
    concrete = {cls for cls in Token.__subclasses__() if cls.__module__ == "trellis.tokens"}
    assert concrete <= covered


def test_full_token_set_renders(make_site):
    site = make_site({"index.md": "# Home\n"})
    node = site.tree.entry_node
    node.tokens = list(ALL_TOKENS)
    html = site.pipeline.render(node, site.tree).serialize()
    assert "<aside data-x=\"1\">z</aside>" in html
    assert '<ol start="2">' in html
    assert "<b>r</b>" in html


def test_earlier_module_wins_token(make_site):
    site = make_site({"index.md": "Press `q` to quit\n"}, modules=[KbdModule(), DefaultModule()])
    html = site.html("index.html")
    assert "<kbd>q</kbd>" in html
    assert "<code>" not in html


def test_claimed_page_skips_token_stage(make_site):
    site = make_site({"index.md": "# Home\n\nBody text\n"}, modules=[ClaimingModule(), DefaultModule()])
    document = site.document("index.html")
    main = document.body.find("main")
    assert main.find(lambda e: e.has_class("claimed")) is not None
    assert "Body text" not in document.serialize()


def test_raw_document_skips_after_render(make_site):
    site = make_site({"index.md": "# Home\n"}, modules=[RawModule(), DefaultModule()])
    assert site.html("index.html") == "<html>as is</html>"


def test_init_failure_is_fatal(make_site):
    with pytest.raises(BuildError, match="broken"):
        make_site({"index.md": "# Home\n"}, modules=[BrokenInitModule(), DefaultModule()])


def test_render_failure_is_page_level(make_site):
    site = make_site({"index.md": "# Home\n"}, modules=[FailingRenderModule(), DefaultModule()])
    with pytest.raises(RenderError) as excinfo:
        site.document("index.html")
    assert excinfo.value.locator == site.tree.entry


def test_tree_is_frozen_after_init(make_site):
    site = make_site({"index.md": "# Home\n"})
    assert site.tree.frozen


def test_link_to_undiscovered_page_fails_the_page(site_dir):
    (site_dir / "index.md").write_text("[Ghost](ghost.md)\n", encoding="utf-8")
    entry = Locator.local(site_dir / "index.md")
    tree = SiteTree(entry)
    document = parse_document("[Ghost](ghost.md)\n")
    tree.add_page(entry, config=PageConfig(document.config), tokens=document.tokens)
    pipeline = Pipeline([DefaultModule()])
    pipeline.init(tree, DefaultFetcher())
    pipeline.after_init(tree)
    with pytest.raises(RenderError, match="ghost.md"):
        pipeline.render(tree.entry_node, tree)


def test_unrenderable_token_fails_the_page(make_site):
    class Mystery(Token):
        pass

    class NarrowDefault(DefaultModule):
        def can_render_token(self, token):
            return not isinstance(token, Mystery)

    site = make_site({"index.md": "# Home\n"}, modules=[NarrowDefault()])
    site.tree.entry_node.tokens = [Mystery()]
    with pytest.raises(RenderError, match="no module renders Mystery"):
        site.document("index.html")


def test_render_context_module_state_is_per_page(make_site):
    site = make_site({"index.md": "# A\n\n# A\n\n[B](b.md)\n", "b.md": "# A\n"})
    index = site.document("index.html")
    ids = [heading.attrs["id"] for heading in index.body.find_all("h1")]
    assert ids == ["a", "a-1"]
    other = site.document("b.html")
    assert other.body.find("h1").attrs["id"] == "a"
