"""Markdown dialect parser for Trellis.

The dialect is close to CommonMark but diverges where that keeps the parser
simple or enables custom elements:

- A TOML block inside a leading ``<!-- -->`` comment configures the page.
- A line starting with ``<tag`` opens an element whose body is parsed as
  Markdown again, no blank lines required around it.
- Tables with a body row of the wrong width degrade to a paragraph.
- Links ending in the source extension are page links, everything else is a
  resource link. Links starting with ``#`` are section links.

Key classes:
- ParsedDocument: Front-matter table plus token list.
- Parser: Block and inline parser bound to a source extension.

Key functions:
- parse_document: Parse a complete document.
- split_front_matter: Separate the configuration block from the body.
- parse_attributes: Parse an HTML attribute string.
"""

from __future__ import annotations

import html
import logging
import re
import tomllib
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigError
from .tokens import (
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
    Token,
    to_text,
)

logger = logging.getLogger(__name__)

VOID_TAGS = frozenset(
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

# Elements whose body is kept verbatim instead of being parsed as Markdown.
RAW_TEXT_TAGS = frozenset({"script", "style", "pre", "textarea"})

_PUNCTUATION = "!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~"

_TAG_NAME = r"[A-Za-z][A-Za-z0-9-]*"
_ATTRIBUTE = r"""\s+[^\s"'>/=]+(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'=<>`]+))?"""
_START_TAG_RE = re.compile(rf"<({_TAG_NAME})((?:{_ATTRIBUTE})*)\s*(/?)>")
_ATTR_RE = re.compile(
    r"""([^\s"'>/=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+)))?"""
)
_AUTOLINK_RE = re.compile(r"<([A-Za-z][A-Za-z0-9+.-]{1,31}:[^\s<>]*)>")
_EMAIL_RE = re.compile(r"<([^\s@<>]+@[^\s@<>]+\.[^\s@<>]+)>")
_DESTINATION_RE = re.compile(
    r"""\(\s*(<[^<>\n]*>|[^\s()<>]*(?:\([^\s()]*\)[^\s()<>]*)*)"""
    r"""(?:\s+("[^"]*"|'[^']*'|\([^()]*\)))?\s*\)"""
)
_SPECIAL_RE = re.compile(r"[\\\n`!\[<*_]")

_ATX_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?(?:[ \t]+#+)?[ \t]*$")
_SETEXT_RE = re.compile(r"^ {0,3}(=+|-+)[ \t]*$")
_THEMATIC_RE = re.compile(r"^ {0,3}(?:(?:\*[ \t]*){3,}|(?:-[ \t]*){3,}|(?:_[ \t]*){3,})$")
_FENCE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*(.*?)[ \t]*$")
_BULLET_RE = re.compile(r"^( {0,3})([-+*])([ \t]+|$)")
_ORDERED_RE = re.compile(r"^( {0,3})(\d{1,9})([.)])([ \t]+|$)")
_DELIMITER_ROW_RE = re.compile(r"^[\s|:-]+$")
_DELIMITER_CELL_RE = re.compile(r"^:?-+:?$")
_TOML_HINT_RE = re.compile(r"^\s*(\[[^\]\n]+\]|[A-Za-z0-9_.\"'-]+\s*=)", re.MULTILINE)


@dataclass
class ParsedDocument:
    """Result of parsing a document.

    Attributes:
        config: Raw front-matter table, empty when the page has none.
        tokens: Top-level tokens of the document body.
    """

    config: dict[str, Any] = field(default_factory=dict)
    tokens: list[Token] = field(default_factory=list)


def parse_document(text: str, source_extension: str = ".md") -> ParsedDocument:
    """Parse a complete document.

    Args:
        text: Raw document text.
        source_extension: Extension that marks links to other pages.

    Returns:
        ParsedDocument with the front-matter table and the body tokens.

    Raises:
        ConfigError: If the leading configuration block is not valid TOML.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if text.startswith("\ufeff"):
        text = text[1:]
    config, body = split_front_matter(text)
    tokens = Parser(source_extension).parse_blocks(body)
    return ParsedDocument(config=config, tokens=tokens)


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading TOML comment block from the document body.

    A leading comment that does not look like TOML is left in the body and
    becomes an ordinary comment.

    Args:
        text: Document text with normalized newlines.

    Returns:
        Tuple of (config table, remaining text).

    Raises:
        ConfigError: If the block looks like TOML but does not parse.
    """
    stripped = text.lstrip()
    if not stripped.startswith("<!--"):
        return {}, text
    end = stripped.find("-->", 4)
    if end == -1:
        return {}, text
    block = stripped[4:end]
    if not _TOML_HINT_RE.search(block):
        return {}, text
    try:
        config = tomllib.loads(block)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"malformed configuration block: {exc}") from exc
    return config, stripped[end + 3 :]


def parse_attributes(source: str) -> dict[str, str]:
    """Parse an HTML attribute string into a dict, preserving source order.

    Args:
        source: The text between the tag name and the closing ``>``.

    Returns:
        Mapping of attribute name to unescaped value ("" for bare attributes).
    """
    attributes: dict[str, str] = {}
    for match in _ATTR_RE.finditer(source):
        name = match.group(1).lower()
        value = next((g for g in match.group(2, 3, 4) if g is not None), "")
        attributes.setdefault(name, html.unescape(value))
    return attributes


def _find_close(text: str, tag: str, start: int) -> re.Match | None:
    """Find the close tag matching an element opened before ``start``."""
    pattern = re.compile(rf"<(/?){re.escape(tag)}(?![\w-])[^>]*>", re.IGNORECASE)
    depth = 1
    for match in pattern.finditer(text, start):
        if match.group(1):
            depth -= 1
            if depth == 0:
                return match
        elif tag not in RAW_TEXT_TAGS and not match.group(0).endswith("/>"):
            depth += 1
    return None


def _run_length(text: str, pos: int, char: str) -> int:
    end = pos
    while end < len(text) and text[end] == char:
        end += 1
    return end - pos


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _expand_indent(line: str) -> str:
    stripped = line.lstrip(" \t")
    return line[: len(line) - len(stripped)].expandtabs(4) + stripped


def _strip_indent(line: str, width: int) -> str:
    return line[min(width, _indent_of(line)) :]


def _split_row(line: str) -> list[str]:
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]
    return [cell.strip().replace("\\|", "|") for cell in re.split(r"(?<!\\)\|", row)]


def _alignment(cell: str) -> Alignment:
    if cell.startswith(":") and cell.endswith(":"):
        return Alignment.CENTER
    if cell.endswith(":"):
        return Alignment.RIGHT
    if cell.startswith(":"):
        return Alignment.LEFT
    return Alignment.NONE


def _push_text(out: list[Token], text: str) -> None:
    if not text:
        return
    if out and isinstance(out[-1], Text):
        out[-1].text += text
    else:
        out.append(Text(text))


def _trim_trailing_spaces(out: list[Token]) -> int:
    if not out or not isinstance(out[-1], Text):
        return 0
    last = out[-1]
    stripped = last.text.rstrip(" ")
    count = len(last.text) - len(stripped)
    if stripped:
        last.text = stripped
    else:
        out.pop()
    return count


class Parser:
    """Recursive block and inline parser.

    Attributes:
        source_extension: Extension identifying page links (e.g. ``.md``).
    """

    def __init__(self, source_extension: str = ".md"):
        self.source_extension = source_extension.lower()

    def classify(self, target: str) -> LinkKind:
        """Classify a link target as a page or a resource by its extension."""
        path = target.split("#", 1)[0].split("?", 1)[0]
        if path.lower().endswith(self.source_extension):
            return LinkKind.PAGE
        return LinkKind.RESOURCE

    # Block level -----------------------------------------------------------

    def parse_blocks(self, text: str, context: str | None = None) -> list[Token]:
        """Parse block-level Markdown.

        Element bodies are parsed by calling this method again with the
        element's tag as ``context``; raw text elements keep their body as a
        single RawHtml token.

        Args:
            text: Markdown text.
            context: Tag of the enclosing element, None at the top level.

        Returns:
            List of block tokens.
        """
        if context in RAW_TEXT_TAGS:
            body = text.strip("\n")
            return [RawHtml(body)] if body.strip() else []

        lines = [_expand_indent(line) for line in text.split("\n")]
        tokens: list[Token] = []
        i = 0
        while i < len(lines):
            if not lines[i].strip():
                i += 1
                continue
            for rule in (
                self._comment,
                self._html_block,
                self._fenced_code,
                self._indented_code,
                self._atx_heading,
                self._thematic_break,
                self._blockquote,
                self._list,
                self._table,
            ):
                result = rule(lines, i)
                if result is not None:
                    token, i = result
                    tokens.append(token)
                    break
            else:
                token, i = self._paragraph(lines, i)
                tokens.append(token)
        return tokens

    def _comment(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        line = lines[i].lstrip()
        if not line.startswith("<!--"):
            return None
        remaining = "\n".join([line, *lines[i + 1 :]])
        end = remaining.find("-->", 4)
        if end == -1:
            return None
        last = i + remaining[:end].count("\n")
        newline = remaining.find("\n", end)
        tail = remaining[end + 3 : newline if newline != -1 else len(remaining)]
        comment = Comment(remaining[4:end].strip())
        if tail.strip():
            lines[last] = tail
            return comment, last
        return comment, last + 1

    def _match_html_block(
        self, lines: list[str], i: int
    ) -> tuple[str, dict[str, str], str | None, int] | None:
        """Match an element that starts a line and whose end ends a line.

        Returns:
            Tuple of (tag, attributes, body or None for void elements, next line)
            or None when the line does not open a block element.
        """
        line = lines[i].lstrip()
        if not line.startswith("<") or line.startswith(("</", "<!")):
            return None
        remaining = "\n".join([line, *lines[i + 1 :]])
        start = _START_TAG_RE.match(remaining)
        if start is None:
            return None
        tag = start.group(1).lower()
        body: str | None = None
        end = start.end()
        if not start.group(3) and tag not in VOID_TAGS:
            close = _find_close(remaining, tag, start.end())
            if close is None:
                return None
            body = remaining[start.end() : close.start()]
            end = close.end()
        newline = remaining.find("\n", end)
        if remaining[end : newline if newline != -1 else len(remaining)].strip():
            return None
        attributes = parse_attributes(start.group(2))
        return tag, attributes, body, i + remaining[:end].count("\n") + 1

    def _html_block(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        match = self._match_html_block(lines, i)
        if match is None:
            return None
        tag, attributes, body, next_line = match
        children = self._element_content(body, tag) if body is not None else []
        return CustomElement(tag, attributes, children), next_line

    def _element_content(self, body: str, tag: str) -> list[Token]:
        if tag in RAW_TEXT_TAGS:
            return self.parse_blocks(body, tag)
        if "\n" not in body.strip():
            return self.parse_inline(body.strip())
        return self.parse_blocks(body, tag)

    def _fenced_code(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        match = _FENCE_RE.match(lines[i])
        if match is None:
            return None
        indent, fence, info = len(match.group(1)), match.group(2), match.group(3)
        if fence[0] == "`" and "`" in info:
            return None
        closing = re.compile(rf"^ {{0,3}}{re.escape(fence[0])}{{{len(fence)},}}[ \t]*$")
        body: list[str] = []
        j = i + 1
        while j < len(lines):
            if closing.match(lines[j]):
                j += 1
                break
            body.append(_strip_indent(lines[j], indent))
            j += 1
        lang = info.split()[0] if info.strip() else None
        return CodeBlock("\n".join(body), lang), j

    def _indented_code(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        if not lines[i].startswith("    "):
            return None
        body: list[str] = []
        j = i
        while j < len(lines) and (lines[j].startswith("    ") or not lines[j].strip()):
            body.append(lines[j][4:])
            j += 1
        while body and not body[-1].strip():
            body.pop()
        return CodeBlock("\n".join(body)), j

    def _atx_heading(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        match = _ATX_RE.match(lines[i])
        if match is None:
            return None
        level = len(match.group(1))
        return Heading(level, self.parse_inline((match.group(2) or "").strip())), i + 1

    def _thematic_break(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        if _THEMATIC_RE.match(lines[i]):
            return ThematicBreak(), i + 1
        return None

    def _blockquote(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        if _indent_of(lines[i]) > 3 or not lines[i].lstrip().startswith(">"):
            return None
        body: list[str] = []
        j = i
        while j < len(lines) and lines[j].lstrip().startswith(">"):
            content = lines[j].lstrip()[1:]
            body.append(content[1:] if content.startswith(" ") else content)
            j += 1
        return BlockQuote(self.parse_blocks("\n".join(body))), j

    def _list(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        if _THEMATIC_RE.match(lines[i]):
            return None
        ordered = False
        first = _BULLET_RE.match(lines[i])
        if first is None:
            first = _ORDERED_RE.match(lines[i])
            ordered = True
        if first is None:
            return None
        marker_group = 3 if ordered else 2
        marker = first.group(marker_group)
        pattern = _ORDERED_RE if ordered else _BULLET_RE

        items: list[list[str]] = []
        loose = False
        content_indent = 0
        j = i
        while j < len(lines):
            line = lines[j]
            match = pattern.match(line)
            if (
                match
                and match.group(marker_group) == marker
                and not _THEMATIC_RE.match(line)
            ):
                content_indent = match.end() if match.group(marker_group + 1) else match.end() + 1
                if items and items[-1] and not items[-1][-1].strip():
                    loose = True
                items.append([line[match.end() :]])
                j += 1
                continue
            if not line.strip():
                k = j + 1
                while k < len(lines) and not lines[k].strip():
                    k += 1
                if k < len(lines) and (
                    _indent_of(lines[k]) >= content_indent
                    or (pattern.match(lines[k]) and pattern.match(lines[k]).group(marker_group) == marker)
                ):
                    items[-1].append("")
                    j += 1
                    continue
                break
            if _indent_of(line) >= content_indent:
                if not items[-1][-1].strip() and len(items[-1]) > 1:
                    loose = True
                items[-1].append(line[content_indent:])
                j += 1
                continue
            if (
                items[-1][-1].strip()
                and not self._interrupts_paragraph(lines, j)
                and not _ORDERED_RE.match(line)
            ):
                items[-1].append(line.strip())
                j += 1
                continue
            break

        parsed: list[list[Token]] = []
        for item in items:
            while item and not item[-1].strip():
                item.pop()
            tokens = self.parse_blocks("\n".join(item))
            if not loose:
                unwrapped: list[Token] = []
                for token in tokens:
                    if isinstance(token, Paragraph):
                        unwrapped.extend(token.content)
                    else:
                        unwrapped.append(token)
                tokens = unwrapped
            parsed.append(tokens)
        if ordered:
            return OrderedList(int(first.group(2)), parsed), j
        return BulletList(parsed), j

    def _table(self, lines: list[str], i: int) -> tuple[Token, int] | None:
        if "|" not in lines[i] or i + 1 >= len(lines):
            return None
        delimiter_line = lines[i + 1]
        if "|" not in delimiter_line or "-" not in delimiter_line:
            return None
        if not _DELIMITER_ROW_RE.match(delimiter_line):
            return None
        delimiter = _split_row(delimiter_line)
        if not all(_DELIMITER_CELL_RE.match(cell) for cell in delimiter):
            return None
        header = _split_row(lines[i])
        if len(header) != len(delimiter):
            return None

        rows: list[list[str]] = []
        j = i + 2
        while j < len(lines) and lines[j].strip() and "|" in lines[j]:
            rows.append(_split_row(lines[j]))
            j += 1
        if any(len(row) != len(header) for row in rows):
            logger.warning(
                "Table with %d columns has a row of a different width; "
                "rendering it as a paragraph",
                len(header),
            )
            text = "\n".join(line.strip() for line in lines[i:j])
            return Paragraph(self.parse_inline(text)), j
        return (
            Table(
                header=[self.parse_inline(cell) for cell in header],
                align=[_alignment(cell) for cell in delimiter],
                rows=[[self.parse_inline(cell) for cell in row] for row in rows],
            ),
            j,
        )

    def _interrupts_paragraph(self, lines: list[str], j: int) -> bool:
        line = lines[j]
        stripped = line.lstrip()
        if _ATX_RE.match(line) or _FENCE_RE.match(line) or _THEMATIC_RE.match(line):
            return True
        if _indent_of(line) <= 3 and stripped.startswith((">", "<!--")):
            return True
        bullet = _BULLET_RE.match(line)
        if bullet and line[bullet.end() :].strip():
            return True
        ordered = _ORDERED_RE.match(line)
        if ordered and ordered.group(2) == "1" and line[ordered.end() :].strip():
            return True
        return self._match_html_block(lines, j) is not None

    def _paragraph(self, lines: list[str], i: int) -> tuple[Token, int]:
        collected = [lines[i].lstrip()]
        j = i + 1
        while j < len(lines):
            line = lines[j]
            if not line.strip():
                break
            setext = _SETEXT_RE.match(line)
            if setext:
                level = 1 if setext.group(1)[0] == "=" else 2
                text = "\n".join(collected).strip()
                return Heading(level, self.parse_inline(text)), j + 1
            if self._interrupts_paragraph(lines, j):
                break
            collected.append(line.lstrip())
            j += 1
        return Paragraph(self.parse_inline("\n".join(collected).rstrip())), j

    # Inline level ----------------------------------------------------------

    def parse_inline(self, text: str) -> list[Token]:
        """Parse inline Markdown into tokens.

        Malformed constructs (unterminated emphasis or code, unmatched
        brackets, unclosed tags) are kept as literal text.

        Args:
            text: Inline text, possibly spanning several lines.

        Returns:
            List of inline tokens.
        """
        out: list[Token] = []
        pos = 0
        length = len(text)
        while pos < length:
            special = _SPECIAL_RE.search(text, pos)
            if special is None:
                _push_text(out, text[pos:])
                break
            if special.start() > pos:
                _push_text(out, text[pos : special.start()])
                pos = special.start()
            char = text[pos]

            if char == "\\":
                following = text[pos + 1 : pos + 2]
                if following == "\n":
                    _trim_trailing_spaces(out)
                    out.append(HardBreak())
                    pos = self._skip_spaces(text, pos + 2)
                elif following and following in _PUNCTUATION:
                    _push_text(out, following)
                    pos += 2
                else:
                    _push_text(out, "\\")
                    pos += 1
                continue

            if char == "\n":
                trailing = _trim_trailing_spaces(out)
                out.append(HardBreak() if trailing >= 2 else SoftBreak())
                pos = self._skip_spaces(text, pos + 1)
                continue

            result: tuple[Token, int] | None = None
            if char == "`":
                result = self._code_span(text, pos)
            elif char == "!":
                if text.startswith("![", pos):
                    result = self._link_or_image(text, pos + 1, image=True)
            elif char == "[":
                result = self._link_or_image(text, pos, image=False)
            elif char == "<":
                result = self._angle(text, pos)
            elif char in "*_":
                result = self._emphasis(text, pos)

            if result is None:
                run = _run_length(text, pos, char) if char in "`*_" else 1
                _push_text(out, text[pos : pos + run])
                pos += run
                continue
            token, pos = result
            out.append(token)

        _trim_trailing_spaces(out)
        return out

    @staticmethod
    def _skip_spaces(text: str, pos: int) -> int:
        while pos < len(text) and text[pos] == " ":
            pos += 1
        return pos

    def _code_span(self, text: str, pos: int) -> tuple[Token, int] | None:
        run = _run_length(text, pos, "`")
        fence = "`" * run
        search = pos + run
        while True:
            found = text.find(fence, search)
            if found == -1:
                return None
            found_run = _run_length(text, found, "`")
            if found_run == run:
                content = text[pos + run : found].replace("\n", " ")
                if len(content) > 2 and content[0] == " " and content[-1] == " ":
                    content = content[1:-1]
                return Code(content), found + run
            search = found + found_run

    def _bracket_end(self, text: str, pos: int) -> int | None:
        depth = 0
        i = pos
        while i < len(text):
            char = text[i]
            if char == "\\":
                i += 2
                continue
            if char == "`":
                span = self._code_span(text, i)
                if span is not None:
                    i = span[1]
                    continue
            if char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    return i
            i += 1
        return None

    def _link_or_image(
        self, text: str, pos: int, image: bool
    ) -> tuple[Token, int] | None:
        close = self._bracket_end(text, pos)
        if close is None:
            return None
        destination = _DESTINATION_RE.match(text, close + 1)
        if destination is None:
            return None
        target = destination.group(1)
        if target.startswith("<") and target.endswith(">"):
            target = target[1:-1]
        target = re.sub(r"\\([" + re.escape(_PUNCTUATION) + r"])", r"\1", target)
        title = destination.group(2)[1:-1] if destination.group(2) else None
        label = self.parse_inline(text[pos + 1 : close])
        end = destination.end()
        if image:
            return Image(src=target, alt=to_text(label), title=title), end
        if target.startswith("#"):
            return SectionLink(anchor=target[1:], content=label), end
        return Link(target=target, kind=self.classify(target), title=title, content=label), end

    def _angle(self, text: str, pos: int) -> tuple[Token, int] | None:
        if text.startswith("<!--", pos):
            end = text.find("-->", pos + 4)
            if end == -1:
                return None
            return Comment(text[pos + 4 : end].strip()), end + 3

        autolink = _AUTOLINK_RE.match(text, pos)
        if autolink:
            target = autolink.group(1)
            return Link(target=target, kind=self.classify(target), content=[Text(target)]), autolink.end()
        email = _EMAIL_RE.match(text, pos)
        if email:
            address = email.group(1)
            return Link(target=f"mailto:{address}", content=[Text(address)]), email.end()

        start = _START_TAG_RE.match(text, pos)
        if start is None:
            return None
        tag = start.group(1).lower()
        attributes = parse_attributes(start.group(2))
        if start.group(3) or tag in VOID_TAGS:
            return CustomElement(tag, attributes), start.end()
        close = _find_close(text, tag, start.end())
        if close is None:
            return None
        body = text[start.end() : close.start()]
        if tag in RAW_TEXT_TAGS:
            children = self.parse_blocks(body, tag)
        else:
            children = self.parse_inline(body)
        return CustomElement(tag, attributes, children), close.end()

    def _emphasis(self, text: str, pos: int) -> tuple[Token, int] | None:
        char = text[pos]
        run = _run_length(text, pos, char)
        if run > 3:
            return None
        following = text[pos + run : pos + run + 1]
        if not following or following.isspace():
            return None
        if char == "_" and pos > 0 and text[pos - 1].isalnum():
            return None

        i = pos + run
        while i < len(text):
            current = text[i]
            if current == "\\":
                i += 2
                continue
            if current == "`":
                span = self._code_span(text, i)
                i = span[1] if span is not None else i + _run_length(text, i, "`")
                continue
            if current == char:
                found = _run_length(text, i, char)
                closes = (
                    found == run
                    and not text[i - 1].isspace()
                    and not (char == "_" and text[i + found : i + found + 1].isalnum())
                )
                if closes:
                    inner = self.parse_inline(text[pos + run : i])
                    if run == 1:
                        token: Token = Emphasis(inner)
                    elif run == 2:
                        token = Strong(inner)
                    else:
                        token = Strong([Emphasis(inner)])
                    return token, i + found
                i += found
                continue
            i += 1
        return None
