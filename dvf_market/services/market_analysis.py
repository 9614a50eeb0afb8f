"""
Turns comparable transactions into a `MarketAnalysis`.

Two estimation paths:
  * with an address: candidates are scored (geocoded distance when a
    resolver is available, address heuristic otherwise), the top scored
    ones anchor a score-weighted price per m², reconciled against a median;
  * without: the median price per m² of exact room-count matches, or a
    room-gap weighted series when there are none.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from statistics import mean, median
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.config import settings
from ..core.metrics import record_analysis
from ..data.base import (
    Conclusion,
    MarketAnalysis,
    Reliability,
    RoomGroup,
    RoomPriority,
    RoomStatistics,
    ScoredTransaction,
    SimilarTransaction,
    TargetProperty,
    Transaction,
)
from ..scoring.base import ProximityScorer
from ..scoring.geocoded import GeocodedScorer
from ..scoring.heuristic import HeuristicScorer
from .candidates import filter_candidates
from .geocoding import GeocodingResolver

logger = logging.getLogger(__name__)

@dataclass
class AnalysisConfig:
    """Heuristic constants of the estimate. Every field can be overridden per call."""
    tolerance_with_address: float = settings.TOLERANCE_WITH_ADDRESS_M2
    tolerance_without_address: float = settings.TOLERANCE_WITHOUT_ADDRESS_M2
    tolerance_department: float = settings.TOLERANCE_DEPARTMENT_M2
    candidate_cap: int = settings.CANDIDATE_CAP
    top_scored: int = settings.TOP_SCORED
    top_median: int = settings.TOP_MEDIAN
    divergence_threshold: float = settings.DIVERGENCE_THRESHOLD
    strong_exact_matches: int = settings.STRONG_EXACT_MATCHES
    display_limit: int = settings.DISPLAY_LIMIT
    require_exact_postal_code: bool = settings.REQUIRE_EXACT_POSTAL_CODE
    # (minimum sample size, minimum average score) pairs, any one is enough
    strong_rules: Tuple[Tuple[int, float], ...] = ((20, 70), (10, 60))
    medium_rules: Tuple[Tuple[int, float], ...] = ((5, 50), (3, 40))
    room_weights: Dict[int, float] = field(default_factory=lambda: {0: 1.0, 1: 0.8, 2: 0.6})
    other_room_weight: float = 0.4
    value_band: float = 0.15
    good_deal_below_pct: float = -5
    overpriced_above_pct: float = 10

def reliability_for(sample_size: int, avg_score: float, config: AnalysisConfig) -> Reliability:
    if any(sample_size >= n and avg_score > s for n, s in config.strong_rules):
        return Reliability.STRONG
    if any(sample_size >= n and avg_score > s for n, s in config.medium_rules):
        return Reliability.MEDIUM
    return Reliability.WEAK

def conclusion_for(gap_pct: float, config: AnalysisConfig) -> Conclusion:
    if gap_pct < config.good_deal_below_pct:
        return Conclusion.GOOD_DEAL
    if gap_pct > config.overpriced_above_pct:
        return Conclusion.OVERPRICED
    return Conclusion.FAIR

def room_weighted_prices(transactions: Sequence[Transaction], room_count: int,
                         config: AnalysisConfig) -> List[float]:
    """Price per m² scaled down as the room gap grows."""
    return [
        t.price_per_area * config.room_weights.get(abs(t.room_count - room_count), config.other_room_weight)
        for t in transactions
    ]

def room_statistics(transactions: Sequence[Transaction], room_count: int) -> RoomStatistics:
    groups: Dict[int, List[Transaction]] = {}
    for t in transactions:
        groups.setdefault(t.room_count, []).append(t)

    stats = []
    for rooms, members in groups.items():
        prices = [t.price_per_area for t in members]
        stats.append(RoomGroup(
            room_count=rooms,
            transaction_count=len(members),
            median_price_per_area=median(prices),
            min_price_per_area=min(prices),
            max_price_per_area=max(prices),
            gap_to_target=abs(rooms - room_count),
            priority=RoomPriority.from_gap(rooms - room_count),
        ))
    stats.sort(key=lambda g: (g.priority.rank, -g.transaction_count))

    def count_of(priority: RoomPriority) -> int:
        return sum(g.transaction_count for g in stats if g.priority is priority)

    return RoomStatistics(
        target_rooms=room_count,
        total_transactions=len(transactions),
        groups=stats,
        exact_match_count=count_of(RoomPriority.EXACT),
        close_match_count=count_of(RoomPriority.CLOSE),
    )

def _similar(t: Transaction, scored: Optional[ScoredTransaction] = None) -> SimilarTransaction:
    return SimilarTransaction(
        id=t.id,
        address=t.full_address or f"Code postal {t.postal_code}",
        sale_price=t.price,
        living_area=t.living_area,
        room_count=t.room_count,
        sale_date=t.sale_date,
        price_per_area=round(t.price_per_area, 2),
        distance_meters=round(scored.distance_meters, 1) if scored and scored.distance_meters is not None else None,
        combined_score=scored.combined_score if scored else None,
    )

class MarketAggregator:
    def __init__(self, resolver: Optional[GeocodingResolver] = None,
                 config: Optional[AnalysisConfig] = None):
        self.resolver = resolver
        self.config = config or AnalysisConfig()

    def scorer_for(self, target: TargetProperty) -> ProximityScorer:
        if self.resolver is not None:
            return GeocodedScorer(self.resolver)
        return HeuristicScorer()

    async def aggregate(self, candidates: Sequence[Transaction], target: TargetProperty,
                        data_vintage: str = "") -> Optional[MarketAnalysis]:
        if not candidates:
            return None
        cfg = self.config

        if target.full_address:
            price_per_area, reliability, similar = await self._estimate_by_score(candidates, target)
            exact_price = None
        else:
            price_per_area, reliability, exact_price = self._estimate_by_rooms(candidates, target)
            similar = [_similar(t) for t in candidates[:cfg.display_limit]]

        all_prices = [t.price_per_area for t in candidates]
        value = price_per_area * target.living_area
        low = round(value * (1 - cfg.value_band))
        mid = round(value)
        high = round(value * (1 + cfg.value_band))

        gap_pct = 0
        if target.asking_price and mid > 0:
            gap_pct = round((target.asking_price - mid) / mid * 100)

        analysis = MarketAnalysis(
            avg_price_per_area_district=round(price_per_area, 2),
            min_price_per_area=round(min(all_prices), 2),
            max_price_per_area=round(max(all_prices), 2),
            estimated_value_low=low,
            estimated_value_median=mid,
            estimated_value_high=high,
            similar_transaction_count=len(candidates),
            price_gap_vs_asking_pct=gap_pct,
            conclusion=conclusion_for(gap_pct, cfg),
            data_vintage=data_vintage,
            reliability=reliability,
            room_statistics=room_statistics(candidates, target.room_count),
            similar_transactions=similar,
            exact_match_price_per_area=round(exact_price, 2) if exact_price is not None else None,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )
        record_analysis(reliability.value, len(candidates))
        logger.info("market analysis %s: %.0f €/m² over %d candidates (%s, vintage %s)",
                    target.postal_code, price_per_area, len(candidates), reliability.value, data_vintage)
        return analysis

    async def _estimate_by_score(
        self, candidates: Sequence[Transaction], target: TargetProperty
    ) -> Tuple[float, Reliability, List[SimilarTransaction]]:
        cfg = self.config
        scored = await self.scorer_for(target).score(candidates, target)
        ranked = sorted(scored, key=lambda s: s.combined_score, reverse=True)
        basis = ranked[:cfg.top_scored]

        total_score = sum(s.combined_score for s in basis)
        med = median(s.transaction.price_per_area for s in basis[:cfg.top_median])
        if total_score > 0:
            weighted = sum(s.transaction.price_per_area * s.combined_score for s in basis) / total_score
        else:
            weighted = med
        if med > 0 and abs(weighted - med) / med > cfg.divergence_threshold:
            logger.info("weighted mean %.0f diverges from median %.0f, using median", weighted, med)
            price_per_area = med
        else:
            price_per_area = weighted

        reliability = reliability_for(len(basis), mean(s.combined_score for s in basis), cfg)

        by_distance = sorted(
            ranked,
            key=lambda s: (s.distance_meters is None, s.distance_meters or 0.0, -s.combined_score),
        )
        similar = [_similar(s.transaction, s) for s in by_distance[:cfg.display_limit]]
        return price_per_area, reliability, similar

    def _estimate_by_rooms(
        self, candidates: Sequence[Transaction], target: TargetProperty
    ) -> Tuple[float, Reliability, Optional[float]]:
        cfg = self.config
        exact = [t for t in candidates if t.room_count == target.room_count]
        if exact:
            price_per_area = median(t.price_per_area for t in exact)
            if len(exact) >= cfg.strong_exact_matches:
                return price_per_area, Reliability.STRONG, price_per_area
            return price_per_area, Reliability.WEAK, price_per_area
        logger.info("no exact room match for %d rooms, using room-weighted prices", target.room_count)
        return median(room_weighted_prices(candidates, target.room_count, cfg)), Reliability.WEAK, None

async def analyze_market(
    transactions: Sequence[Transaction],
    target: TargetProperty,
    resolver: Optional[GeocodingResolver] = None,
    data_vintage: str = "",
    config: Optional[AnalysisConfig] = None,
) -> Optional[MarketAnalysis]:
    """
    Candidate filter + aggregation. None means no comparable transaction
    exists for the area, which callers handle with their own fallback.
    """
    cfg = config or AnalysisConfig()
    tolerance = cfg.tolerance_with_address if target.full_address else cfg.tolerance_without_address
    candidates = filter_candidates(
        transactions,
        target.postal_code,
        target.living_area,
        target.room_count,
        tolerance,
        department_tolerance=cfg.tolerance_department,
        cap=cfg.candidate_cap,
    )
    if not candidates:
        logger.info("no comparable transactions for %s", target.postal_code)
        return None
    return await MarketAggregator(resolver, cfg).aggregate(candidates, target, data_vintage)
