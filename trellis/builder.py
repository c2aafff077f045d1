"""Document skeleton construction.

Key classes:
- DocumentBuilder: Builds the empty html/head/body tree for a page.
"""

from __future__ import annotations

from collections.abc import Sequence

from .dom import Document, Element, element
from .tokens import Heading, Token, to_text


def first_heading(tokens: Sequence[Token], level: int = 1) -> Heading | None:
    """Return the first top-level heading of the given level."""
    for token in tokens:
        if isinstance(token, Heading) and token.level == level:
            return token
    return None


class DocumentBuilder:
    """Builds the output skeleton of a page.

    The skeleton carries only structure: a charset declaration, a title taken
    from the first level-1 heading, and an empty body. Modules fill in the
    content.
    """

    def build(self, tokens: Sequence[Token]) -> Document:
        """Create the skeleton document for a token sequence.

        Args:
            tokens: The page body.

        Returns:
            A Document with head and body placeholders.
        """
        document = Document()
        document.head.append(Element("meta", {"charset": "utf-8"}))
        heading = first_heading(tokens)
        title = to_text(heading.content).strip() if heading is not None else ""
        document.head.append(element("title", children=[title] if title else []))
        return document
