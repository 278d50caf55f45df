"""Registry of scrapeable vendor pages."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from goldwatch.config import settings
from goldwatch.core.exceptions import UnknownSourceError
from goldwatch.scrapers.base import ExtractionStrategy
from goldwatch.scrapers.strategies import (
    ApiPayloadStrategy,
    CardGridStrategy,
    TableStrategy,
    TextBlockStrategy,
)


logger = structlog.get_logger(__name__)


@dataclass
class ScrapeSource:
    """One vendor page and how to read it.

    ``strategies`` is a factory so every run gets fresh strategy objects.
    """

    id: str
    name: str
    url: str
    render: bool = False  # True fetches through the headless browser
    default_vendor: Optional[str] = None  # Vendor label for single-vendor pages
    sell_only: bool = False  # Price cards show one price per weight
    strategies: Callable[[], List[ExtractionStrategy]] = field(default=list)

    def build_strategies(self) -> List[ExtractionStrategy]:
        return list(self.strategies())


class SourceRegistry:
    """Maps source identifiers onto ScrapeSource definitions."""

    def __init__(self):
        self._sources: Dict[str, ScrapeSource] = {}

    def register(self, source: ScrapeSource) -> None:
        """Register (or replace) a source.

        Args:
            source: Source definition keyed by its ``id``
        """
        self._sources[source.id] = source
        logger.info("scrape_source_registered", source_id=source.id, render=source.render)

    def get(self, source_id: str) -> ScrapeSource:
        """Look up a source.

        Raises:
            UnknownSourceError: source_id was never registered
        """
        source = self._sources.get(source_id)
        if source is None:
            raise UnknownSourceError(source_id)
        return source

    def has(self, source_id: str) -> bool:
        return source_id in self._sources

    def list(self) -> List[ScrapeSource]:
        return list(self._sources.values())

    def ids(self) -> List[str]:
        return list(self._sources)


def build_default_registry() -> SourceRegistry:
    """Registry with the built-in Logam Mulia and Galeri 24 pages."""
    registry = SourceRegistry()

    registry.register(ScrapeSource(
        id="logammulia",
        name="Logam Mulia (Antam)",
        url=settings.LOGAM_MULIA_URL,
        render=False,
        default_vendor="ANTAM",
        sell_only=True,
        strategies=lambda: [ApiPayloadStrategy(), TableStrategy(), CardGridStrategy()],
    ))

    registry.register(ScrapeSource(
        id="galeri24",
        name="Galeri 24",
        url=settings.GALERI24_URL,
        render=True,
        strategies=lambda: [ApiPayloadStrategy(), CardGridStrategy(), TextBlockStrategy()],
    ))

    return registry
