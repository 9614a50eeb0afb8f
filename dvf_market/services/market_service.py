import json
import logging
from dataclasses import asdict
from typing import Optional

from ..core.utils import weak_etag
from ..data.base import MarketAnalysis, TargetProperty
from .geocoding import GeocodingResolver
from .loader import TransactionLoader
from .market_analysis import AnalysisConfig, analyze_market

logger = logging.getLogger(__name__)

class MarketService:
    """
    Orchestrates:
      loader (cache + vintage fallback) → candidate filter → scorer → aggregator
    The loader and resolver are process-wide; the service itself is cheap.
    """
    def __init__(self, loader: TransactionLoader, resolver: Optional[GeocodingResolver] = None,
                 config: Optional[AnalysisConfig] = None):
        self.loader = loader
        self.resolver = resolver
        self.config = config or AnalysisConfig()

    async def analyze(self, target: TargetProperty) -> Optional[MarketAnalysis]:
        """
        None when the area has no usable transactions. Raises
        DataUnavailableError only when no vintage could be loaded at all.
        """
        transactions = await self.loader.load_transactions()
        vintage = self.loader.get_active_data_vintage()
        logger.info("analyzing %s with %d transactions (vintage %s)",
                    target.postal_code, len(transactions), vintage)

        if self.config.require_exact_postal_code and not any(
            t.postal_code == target.postal_code for t in transactions
        ):
            logger.info("no transaction in postal code %s, no DVF analysis", target.postal_code)
            return None

        return await analyze_market(transactions, target, self.resolver, vintage, self.config)

    @staticmethod
    def to_payload(analysis: MarketAnalysis) -> tuple[dict, str]:
        """JSON-ready payload and its weak ETag (timestamp excluded so repeats match)."""
        payload = json.loads(json.dumps(asdict(analysis), default=str))
        stable = {k: v for k, v in payload.items() if k != "updated_at"}
        etag = weak_etag(json.dumps(stable, sort_keys=True, separators=(',',':')).encode("utf-8"))
        return payload, etag
