"""Output document tree for Trellis.

A small mutable element tree that modules populate while rendering a page
and that is serialized to HTML once rendering is finished. Text is escaped
with MarkupSafe on serialization; Raw nodes are emitted verbatim.

Key classes:
- Element: Tag with attributes and ordered children.
- Text: Escaped text leaf.
- Raw: Verbatim HTML leaf.
- Document: The html/head/body skeleton of one page.

Key functions:
- element: Shorthand constructor for an Element with children.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

from markupsafe import escape

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    }
)


class Node:
    """Base class of all tree nodes."""

    def __init__(self) -> None:
        self.parent: Element | None = None

    def detach(self) -> Node:
        """Remove this node from its parent, if any."""
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None
        return self

    def replace_with(self, *nodes: Node) -> None:
        """Replace this node in its parent with other nodes."""
        parent = self.parent
        if parent is None:
            raise ValueError("cannot replace a node without a parent")
        index = parent.children.index(self)
        self.detach()
        for offset, node in enumerate(nodes):
            parent.insert(index + offset, node)

    def to_html(self) -> str:
        raise NotImplementedError


class Text(Node):
    def __init__(self, text: str):
        super().__init__()
        self.text = text

    def to_html(self) -> str:
        return str(escape(self.text))

    def __repr__(self) -> str:
        return f"Text({self.text!r})"


class Raw(Node):
    def __init__(self, html: str):
        super().__init__()
        self.html = html

    def to_html(self) -> str:
        return self.html

    def __repr__(self) -> str:
        return f"Raw({self.html[:30]!r})"


class Element(Node):
    """An HTML element.

    Attributes:
        tag: Lower-case tag name.
        attrs: Attributes in insertion order; None renders a bare attribute.
        children: Child nodes.
    """

    def __init__(self, tag: str, attrs: dict[str, str | None] | None = None):
        super().__init__()
        self.tag = tag
        self.attrs: dict[str, str | None] = dict(attrs or {})
        self.children: list[Node] = []

    def __repr__(self) -> str:
        return f"Element({self.tag!r}, {self.attrs!r}, {len(self.children)} children)"

    def append(self, child: Node) -> Node:
        child.detach()
        child.parent = self
        self.children.append(child)
        return child

    def extend(self, children: Iterable[Node]) -> None:
        for child in list(children):
            self.append(child)

    def insert(self, index: int, child: Node) -> Node:
        child.detach()
        child.parent = self
        self.children.insert(index, child)
        return child

    def clear(self) -> list[Node]:
        """Remove and return all children."""
        removed = list(self.children)
        for child in removed:
            child.parent = None
        self.children = []
        return removed

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name, default)

    def add_class(self, name: str) -> None:
        classes = (self.attrs.get("class") or "").split()
        if name not in classes:
            classes.append(name)
        self.attrs["class"] = " ".join(classes)

    def has_class(self, name: str) -> bool:
        return name in (self.attrs.get("class") or "").split()

    def iter(self) -> Iterator[Node]:
        """Iterate over all descendants, depth first, in document order."""
        for child in list(self.children):
            yield child
            if isinstance(child, Element):
                yield from child.iter()

    def find_all(self, match: str | Callable[[Element], bool]) -> list[Element]:
        """Find descendant elements by tag name or predicate."""
        if isinstance(match, str):
            tag = match
            match = lambda element: element.tag == tag  # noqa: E731
        return [node for node in self.iter() if isinstance(node, Element) and match(node)]

    def find(self, match: str | Callable[[Element], bool]) -> Element | None:
        found = self.find_all(match)
        return found[0] if found else None

    def text_content(self) -> str:
        parts: list[str] = []
        for node in self.iter():
            if isinstance(node, Text):
                parts.append(node.text)
        return "".join(parts)

    def to_html(self) -> str:
        attrs = "".join(
            f" {name}" if value is None else f' {name}="{escape(value)}"'
            for name, value in self.attrs.items()
        )
        if self.tag in VOID_ELEMENTS:
            return f"<{self.tag}{attrs}>"
        inner = "".join(child.to_html() for child in self.children)
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"


def element(
    tag: str,
    attrs: dict[str, str | None] | None = None,
    children: Iterable[Node | str] = (),
) -> Element:
    """Create an element with children; strings become Text nodes."""
    result = Element(tag, attrs)
    for child in children:
        result.append(Text(child) if isinstance(child, str) else child)
    return result


class Document:
    """The output tree of one page.

    Attributes:
        root: The ``<html>`` element.
        head: The ``<head>`` element.
        body: The ``<body>`` element.
        raw: Complete HTML replacing the tree, for pages passed through
            verbatim (e.g. imported archives).
    """

    def __init__(self) -> None:
        self.root = Element("html")
        self.head = self.root.append(Element("head"))
        self.body = self.root.append(Element("body"))
        self.raw: str | None = None

    @property
    def is_raw(self) -> bool:
        return self.raw is not None

    def serialize(self) -> str:
        """Serialize the document to an HTML string."""
        if self.raw is not None:
            return self.raw
        return f"<!DOCTYPE html>\n{self.root.to_html()}\n"
