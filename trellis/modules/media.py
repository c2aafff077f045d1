"""Media module: optimizes images and videos before they are written.

Options come from the ``[media]`` namespace of the entry page; any page may
override them for the resources it discovered.
"""

from __future__ import annotations

import logging

from ..errors import TrellisError
from ..pipeline import Capability, InitContext, Module
from ..transcode import MediaOptions, MediaTranscoder

logger = logging.getLogger(__name__)


class MediaModule(Module):
    """Replaces media resources with their optimized encoding."""

    capabilities = frozenset({Capability.INIT})

    @property
    def id(self) -> str:
        return "media"

    def init(self, ctx: InitContext) -> None:
        tree = ctx.tree
        transcoder = ctx.transcoder or MediaTranscoder()
        defaults = tree.entry_node.config.resolve(self.id, MediaOptions)
        page_options: dict = {}
        optimized = 0

        for node in tree.resources():
            if node.content is not None or node.locator.is_generated:
                continue
            if not transcoder.can_transcode(node.output_path.name):
                continue
            options = defaults
            source = tree.get(node.source)
            if source is not None and source.error is None:
                if source.locator not in page_options:
                    try:
                        page_options[source.locator] = source.config.resolve(
                            self.id, MediaOptions, base=defaults
                        )
                    except TrellisError as exc:
                        logger.warning("%s: %s", source.locator, exc)
                        page_options[source.locator] = defaults
                options = page_options[source.locator]
            try:
                data = ctx.fetcher.fetch(node.locator)
                result = transcoder.transcode(data, node.output_path.name, options)
            except TrellisError as exc:
                logger.warning("Keeping %s unoptimized: %s", node.locator, exc)
                continue
            if result is not None:
                node.content = result
                optimized += 1
        logger.debug("Optimized %d media files", optimized)
