import pytest

from trellis.errors import ConfigError
from trellis.parser import Parser, parse_attributes, parse_document, split_front_matter
from trellis.tokens import (
    Alignment,
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
    LinkKind,
    OrderedList,
    Paragraph,
    RawHtml,
    SectionLink,
    SoftBreak,
    Strong,
    Table,
    Text,
    ThematicBreak,
    iter_tokens,
    to_text,
)


def test_front_matter_is_parsed_as_toml():
    doc = parse_document('<!--\n[default]\ntitle = "Site"\n-->\n# Hello\n')
    assert doc.config == {"default": {"title": "Site"}}
    assert doc.tokens == [Heading(1, [Text("Hello")])]


def test_leading_comment_without_toml_stays_in_body():
    doc = parse_document("<!-- just a note -->\n\nHi\n")
    assert doc.config == {}
    assert doc.tokens == [Comment("just a note"), Paragraph([Text("Hi")])]


def test_malformed_front_matter_raises_config_error():
    with pytest.raises(ConfigError):
        parse_document("<!--\n[default\ntitle = \n-->\n# Oops\n")


def test_split_front_matter_without_comment():
    config, body = split_front_matter("# Title\n")
    assert config == {}
    assert body == "# Title\n"


def test_crlf_and_bom_are_normalized():
    doc = parse_document("\ufeff# Title\r\n\r\nBody\r\n")
    assert doc.tokens == [Heading(1, [Text("Title")]), Paragraph([Text("Body")])]


def test_links_are_classified_by_extension():
    tokens = Parser().parse_inline("[A](b.md) [B](img.png) [C](#sec)")
    assert tokens == [
        Link(target="b.md", kind=LinkKind.PAGE, content=[Text("A")]),
        Text(" "),
        Link(target="img.png", kind=LinkKind.RESOURCE, content=[Text("B")]),
        Text(" "),
        SectionLink(anchor="sec", content=[Text("C")]),
    ]


def test_page_link_with_fragment_is_still_a_page():
    tokens = Parser().parse_inline("[A](docs/b.md#usage)")
    assert tokens[0].kind is LinkKind.PAGE


def test_custom_source_extension():
    tokens = Parser(".txt").parse_inline("[A](b.txt) [B](c.md)")
    assert tokens[0].kind is LinkKind.PAGE
    assert tokens[2].kind is LinkKind.RESOURCE


def test_image_with_title():
    tokens = Parser().parse_inline('![A *logo*](logo.png "The logo")')
    assert tokens == [Image(src="logo.png", alt="A logo", title="The logo")]


def test_emphasis_and_strong():
    tokens = Parser().parse_inline("**bold** and *it* and ***both***")
    assert tokens == [
        Strong([Text("bold")]),
        Text(" and "),
        Emphasis([Text("it")]),
        Text(" and "),
        Strong([Emphasis([Text("both")])]),
    ]


def test_unterminated_emphasis_is_literal():
    assert Parser().parse_inline("*oops") == [Text("*oops")]


def test_intraword_underscore_is_literal():
    assert Parser().parse_inline("snake_case_name") == [Text("snake_case_name")]


def test_code_span_and_escapes():
    tokens = Parser().parse_inline(r"`a*b` \*not\*")
    assert tokens == [Code("a*b"), Text(" *not*")]


def test_hard_and_soft_breaks():
    doc = parse_document("a  \nb\nc\n")
    assert doc.tokens == [
        Paragraph([Text("a"), HardBreak(), Text("b"), SoftBreak(), Text("c")])
    ]


def test_headings_setext_and_atx():
    doc = parse_document("Title\n=====\n\n## Sub ##\n\nSmall\n---\n")
    assert doc.tokens == [
        Heading(1, [Text("Title")]),
        Heading(2, [Text("Sub")]),
        Heading(2, [Text("Small")]),
    ]


def test_thematic_break_and_blockquote():
    doc = parse_document("> quoted *text*\n\n***\n")
    assert isinstance(doc.tokens[1], ThematicBreak)
    quote = doc.tokens[0]
    assert quote.content == [Paragraph([Text("quoted "), Emphasis([Text("text")])])]


def test_fenced_and_indented_code():
    doc = parse_document("```python\nprint(1)\n```\n\n    indented\n    code\n")
    assert doc.tokens == [CodeBlock("print(1)", "python"), CodeBlock("indented\ncode")]


def test_bullet_and_ordered_lists():
    doc = parse_document("- a\n- b\n\n3. x\n4. y\n")
    assert doc.tokens == [
        BulletList([[Text("a")], [Text("b")]]),
        OrderedList(3, [[Text("x")], [Text("y")]]),
    ]


def test_table_with_alignment():
    doc = parse_document("| a | b |\n|---|:-:|\n| 1 | 2 |\n")
    table = doc.tokens[0]
    assert isinstance(table, Table)
    assert table.header == [[Text("a")], [Text("b")]]
    assert table.align == [Alignment.NONE, Alignment.CENTER]
    assert table.rows == [[[Text("1")], [Text("2")]]]


def test_table_with_wrong_row_width_degrades_to_paragraph(caplog):
    doc = parse_document("| a | b |\n|---|---|\n| 1 | 2 | 3 |\n")
    assert len(doc.tokens) == 1
    assert isinstance(doc.tokens[0], Paragraph)
    assert "| 1 | 2 | 3 |" in to_text(doc.tokens[0].content)
    assert "rendering it as a paragraph" in caplog.text


def test_custom_block_element_content_is_markdown():
    doc = parse_document("<carousel>\n![a](a.png)\n![b](b.png)\n</carousel>\n")
    carousel = doc.tokens[0]
    assert isinstance(carousel, CustomElement)
    assert carousel.tag == "carousel"
    images = [token.src for token in iter_tokens(carousel.content) if isinstance(token, Image)]
    assert images == ["a.png", "b.png"]


def test_model_viewer_attributes():
    doc = parse_document('<model-viewer src="m.glb" poster="p.png" auto-rotate></model-viewer>\n')
    assert doc.tokens == [
        CustomElement(
            "model-viewer", {"src": "m.glb", "poster": "p.png", "auto-rotate": ""}
        )
    ]


def test_element_not_closed_at_line_end_stays_inline():
    doc = parse_document("<span>a</span> trailing\n")
    paragraph = doc.tokens[0]
    assert isinstance(paragraph, Paragraph)
    assert paragraph.content[0] == CustomElement("span", {}, [Text("a")])


def test_raw_text_elements_keep_their_body():
    doc = parse_document("<script>\nif (a < b) { *x* }\n</script>\n")
    assert doc.tokens == [CustomElement("script", {}, [RawHtml("if (a < b) { *x* }")])]


def test_autolink_and_email():
    tokens = Parser().parse_inline("<https://example.com> <me@example.com>")
    assert tokens[0] == Link(target="https://example.com", content=[Text("https://example.com")])
    assert tokens[2] == Link(target="mailto:me@example.com", content=[Text("me@example.com")])


def test_parse_attributes_unescapes_values():
    assert parse_attributes(' a="x &amp; y" b=\'2\' c') == {"a": "x & y", "b": "2", "c": ""}


def test_parsing_is_deterministic():
    text = "# T\n\n| a |\n|---|\n| b |\n\n- [x](y.md)\n"
    assert parse_document(text) == parse_document(text)
