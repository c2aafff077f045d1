import pytest

from trellis.builder import DocumentBuilder
from trellis.dom import Document, Element, Raw, Text, element
from trellis.parser import parse_document


def test_text_is_escaped_and_raw_is_not():
    div = element("div", {"title": 'a "b"'}, ["<b>", Raw("<i>x</i>")])
    assert div.to_html() == '<div title="a &#34;b&#34;">&lt;b&gt;<i>x</i></div>'


def test_void_and_bare_attributes():
    assert Element("img", {"src": "a.png", "hidden": None}).to_html() == '<img src="a.png" hidden>'


def test_replace_with_keeps_position():
    parent = element("ul", children=[element("li", children=["a"]), element("li", children=["b"])])
    first = parent.children[0]
    first.replace_with(element("li", children=["x"]), element("li", children=["y"]))
    assert [child.text_content() for child in parent.children] == ["x", "y", "b"]
    assert first.parent is None


def test_replace_without_parent_fails():
    with pytest.raises(ValueError):
        Text("orphan").replace_with(Text("x"))


def test_append_moves_nodes_between_parents():
    a, b = Element("div"), Element("div")
    child = a.append(Text("x"))
    b.append(child)
    assert a.children == []
    assert child.parent is b


def test_find_and_classes():
    root = element("div", children=[element("span", {"class": "one"}), element("p")])
    span = root.find(lambda e: e.has_class("one"))
    span.add_class("two")
    span.add_class("two")
    assert span.attrs["class"] == "one two"
    assert root.find("p") is root.children[1]
    assert root.find("table") is None


def test_document_serialization():
    document = Document()
    document.body.append(element("p", children=["hi"]))
    assert document.serialize() == "<!DOCTYPE html>\n<html><head></head><body><p>hi</p></body></html>\n"
    document.raw = "<html>verbatim</html>"
    assert document.is_raw
    assert document.serialize() == "<html>verbatim</html>"


def test_builder_creates_skeleton_with_title():
    tokens = parse_document("Intro\n\n# The *Title*\n\n# Second\n").tokens
    document = DocumentBuilder().build(tokens)
    assert document.head.find("meta").attrs == {"charset": "utf-8"}
    assert document.head.find("title").text_content() == "The Title"
    assert document.body.children == []


def test_builder_without_heading_has_empty_title():
    document = DocumentBuilder().build(parse_document("just text\n").tokens)
    assert document.head.find("title").text_content() == ""
