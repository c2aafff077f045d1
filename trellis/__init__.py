"""Trellis static site compiler.

Trellis compiles a tree of interlinked Markdown documents into a static site.
It starts from a single entry document and discovers every other page and
resource by following links, then renders each page through an ordered
pipeline of modules.

Architecture, leaves first:
- parser: Markdown dialect with a TOML front-matter comment block.
- config: Typed per-module options resolved from the front matter.
- sitetree: Breadth-first discovery of pages and resources.
- builder: Skeleton output document for a page.
- pipeline: Ordered module hooks that populate each document.
- build: Orchestration, writing and cancellation.
"""

__all__ = ["__version__"]
__version__ = "0.3.0"
