"""Factory for creating quote sources."""

from __future__ import annotations

import logging

from ..config import Settings
from .interface import QuoteSource

logger = logging.getLogger(__name__)


def create_quote_source(settings: Settings) -> QuoteSource:
    """Create the appropriate quote source for the settings.

    - massive_api_key non-empty -> MassiveQuoteSource (real market data)
    - Otherwise -> SimulatorQuoteSource (GBM simulation)

    Returns an unstarted source. QuoteEngine.start() starts it.
    """
    api_key = settings.massive_api_key.strip()

    if api_key:
        from .massive_client import MassiveQuoteSource

        logger.info("Quote source: Massive API (real data)")
        return MassiveQuoteSource(api_key=api_key)
    else:
        from .simulator import SimulatorQuoteSource

        logger.info("Quote source: GBM Simulator")
        return SimulatorQuoteSource(update_interval=settings.poll_interval)
