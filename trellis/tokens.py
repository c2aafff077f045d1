"""Token types produced by the Markdown parser.

A parsed document is an ordered list of tokens. Tokens nest only through
their ``children`` sequences; they never refer back to a parent.

Block tokens: Heading, Paragraph, CodeBlock, Table, BlockQuote, BulletList,
OrderedList, ThematicBreak, CustomElement, RawHtml, Comment.

Inline tokens: Text, Emphasis, Strong, Code, Link, SectionLink, Image,
SoftBreak, HardBreak (CustomElement and RawHtml also appear inline).

Functions:
    iter_tokens: Depth-first iteration over a token tree.
    to_text: Flatten inline tokens to their plain text.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum


class LinkKind(str, Enum):
    """Whether a link points at another page of the site or at a resource."""

    PAGE = "page"
    RESOURCE = "resource"


class Alignment(str, Enum):
    """Column alignment of a table."""

    NONE = "none"
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


@dataclass
class Token:
    """Base class for every token."""

    @property
    def children(self) -> list[Token]:
        return []


@dataclass
class Text(Token):
    text: str


@dataclass
class SoftBreak(Token):
    pass


@dataclass
class HardBreak(Token):
    pass


@dataclass
class ThematicBreak(Token):
    pass


@dataclass
class Comment(Token):
    text: str


@dataclass
class RawHtml(Token):
    """HTML fragment passed through verbatim."""

    html: str


@dataclass
class Code(Token):
    text: str


@dataclass
class CodeBlock(Token):
    raw: str
    lang: str | None = None


@dataclass
class Emphasis(Token):
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class Strong(Token):
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class Paragraph(Token):
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class Heading(Token):
    level: int
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class BlockQuote(Token):
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class BulletList(Token):
    """Unordered list; each item is a list of block tokens."""

    items: list[list[Token]] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return [token for item in self.items for token in item]


@dataclass
class OrderedList(Token):
    start: int = 1
    items: list[list[Token]] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return [token for item in self.items for token in item]


@dataclass
class Link(Token):
    """A link to another page or to a resource.

    Attributes:
        target: The raw reference as written in the document.
        kind: PAGE when the target ends in the source extension.
        title: Optional link title.
        content: Inline tokens forming the link text.
    """

    target: str
    kind: LinkKind = LinkKind.RESOURCE
    title: str | None = None
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class SectionLink(Token):
    """A link to an anchor on the same page (``[text](#anchor)``)."""

    anchor: str
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


@dataclass
class Image(Token):
    src: str
    alt: str = ""
    title: str | None = None


@dataclass
class Table(Token):
    """A table; cells are lists of inline tokens."""

    header: list[list[Token]] = field(default_factory=list)
    align: list[Alignment] = field(default_factory=list)
    rows: list[list[list[Token]]] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        cells = list(self.header)
        for row in self.rows:
            cells.extend(row)
        return [token for cell in cells for token in cell]


@dataclass
class CustomElement(Token):
    """An HTML element whose content is parsed as Markdown.

    Attributes:
        tag: Lower-cased tag name.
        attributes: Attributes in source order; valueless attributes map to "".
        content: Child tokens.
    """

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    content: list[Token] = field(default_factory=list)

    @property
    def children(self) -> list[Token]:
        return self.content


def iter_tokens(tokens: Sequence[Token]) -> Iterator[Token]:
    """Yield every token in a tree, depth first, parents before children."""
    for token in tokens:
        yield token
        yield from iter_tokens(token.children)


def to_text(tokens: Sequence[Token]) -> str:
    """Flatten tokens into plain text.

    Args:
        tokens: Inline or block tokens.

    Returns:
        The concatenated text content, with breaks turned into spaces.
    """
    parts: list[str] = []
    for token in tokens:
        if isinstance(token, (Text, Code)):
            parts.append(token.text)
        elif isinstance(token, (SoftBreak, HardBreak)):
            parts.append(" ")
        elif isinstance(token, Image):
            parts.append(token.alt)
        else:
            parts.append(to_text(token.children))
    return "".join(parts)
