import asyncio
import logging
from typing import List, Optional, Sequence

from .base import BatchScale, ProximityScorer, build_scored
from .heuristic import HeuristicScorer, proximity_score
from ..data.base import ScoredTransaction, TargetProperty, Transaction
from ..services.geocoding import GeocodingResolver, distance_meters

logger = logging.getLogger(__name__)

def distance_band_score(meters: float) -> float:
    if meters <= 50:
        return 100
    if meters <= 100:
        return 95
    if meters <= 250:
        return 85
    if meters <= 500:
        return 70
    return 50

class GeocodedScorer(ProximityScorer):
    """
    Scores by real distance. The target is resolved once, candidates are
    resolved concurrently; any candidate that cannot be placed falls back to
    the string heuristic, and the whole batch does if the target cannot.
    """
    def __init__(self, resolver: GeocodingResolver, fallback: Optional[HeuristicScorer] = None):
        self.resolver = resolver
        self.fallback = fallback or HeuristicScorer()

    async def score(self, candidates: Sequence[Transaction], target: TargetProperty) -> List[ScoredTransaction]:
        origin = await self.resolver.resolve(target.full_address, target.postal_code, target.city)
        if origin is None:
            logger.warning("target address %r could not be geocoded, using address heuristic",
                           target.full_address)
            return await self.fallback.score(candidates, target)

        points = await asyncio.gather(*(
            self.resolver.resolve(t.full_address, t.postal_code, t.commune) for t in candidates
        ))
        scale = BatchScale.of(candidates, target)
        scored = []
        for t, point in zip(candidates, points):
            if point is None:
                scored.append(build_scored(t, target, scale,
                                           proximity_score(target.full_address, target.city, t)))
                continue
            meters = distance_meters(origin, point)
            scored.append(build_scored(t, target, scale, distance_band_score(meters), meters))
        located = sum(1 for p in points if p is not None)
        logger.info("geocoded %d/%d candidates", located, len(candidates))
        return scored
