from __future__ import annotations

from pathlib import Path

import pytest

from trellis.fetch import DefaultFetcher
from trellis.modules import DefaultModule
from trellis.pipeline import Pipeline
from trellis.sitetree import SiteGraphResolver, SiteTree


def write_files(root: Path, files: dict[str, str | bytes]) -> None:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


class RenderedSite:
    """A resolved and initialized site whose pages can be rendered."""

    def __init__(self, tree: SiteTree, pipeline: Pipeline):
        self.tree = tree
        self.pipeline = pipeline

    def node(self, path: str):
        return next(node for node in self.tree if node.output_path.as_posix() == path)

    def document(self, path: str):
        return self.pipeline.render(self.node(path), self.tree)

    def html(self, path: str) -> str:
        return self.document(path).serialize()


@pytest.fixture
def site_dir(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def make_site(site_dir):
    """Write files, resolve the site and run init/after_init."""

    def factory(files, modules=None, transcoder=None, entry="index.md"):
        write_files(site_dir, files)
        fetcher = DefaultFetcher()
        tree = SiteGraphResolver(fetcher).resolve(site_dir / entry)
        pipeline = Pipeline(modules if modules is not None else [DefaultModule()])
        pipeline.init(tree, fetcher, transcoder)
        pipeline.after_init(tree)
        return RenderedSite(tree, pipeline)

    return factory
