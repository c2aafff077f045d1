"""Model module: loads the model-viewer web component where it is used."""

from __future__ import annotations

from dataclasses import dataclass

from ..dom import Document, Element
from ..pipeline import Capability, Module, RenderContext

MODEL_VIEWER_URL = "https://ajax.googleapis.com/ajax/libs/model-viewer/4.0.0/model-viewer.min.js"


@dataclass
class ModelOptions:
    viewer_url: str = MODEL_VIEWER_URL


class ModelModule(Module):
    """Adds the model-viewer script to pages containing a ``<model-viewer>``."""

    capabilities = frozenset({Capability.AFTER_RENDER})

    @property
    def id(self) -> str:
        return "model"

    def after_render(self, document: Document, ctx: RenderContext) -> None:
        if document.body.find("model-viewer") is None:
            return
        options = ctx.node.config.resolve(self.id, ModelOptions)
        document.head.append(
            Element("script", {"type": "module", "src": options.viewer_url})
        )
