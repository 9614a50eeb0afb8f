from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from ..data.base import ScoredTransaction, TargetProperty, Transaction

WEIGHT_PROXIMITY = 0.6
WEIGHT_ROOMS = 0.25
WEIGHT_AREA = 0.15

class ProximityScorer(Protocol):
    async def score(
        self, candidates: Sequence[Transaction], target: TargetProperty
    ) -> List[ScoredTransaction]:
        """
        Returns one ScoredTransaction per candidate, in input order.
        """
        ...

@dataclass(frozen=True)
class BatchScale:
    """
    Largest room / area gap seen in the current candidate batch.

    Room and area scores are relative to it, so the same transaction can
    score differently against another batch.
    """
    max_room_gap: float
    max_area_gap: float

    @classmethod
    def of(cls, candidates: Sequence[Transaction], target: TargetProperty) -> "BatchScale":
        room_gaps = [abs(t.room_count - target.room_count) for t in candidates]
        area_gaps = [abs(t.living_area - target.living_area) for t in candidates]
        return cls(max_room_gap=max(room_gaps + [1]), max_area_gap=max(area_gaps + [1]))

    def room_score(self, t: Transaction, target: TargetProperty) -> float:
        gap = abs(t.room_count - target.room_count)
        return max(0.0, 100 - gap / self.max_room_gap * 100)

    def area_score(self, t: Transaction, target: TargetProperty) -> float:
        gap = abs(t.living_area - target.living_area)
        return max(0.0, 100 - gap / self.max_area_gap * 100)

def combined_score(proximity: float, room: float, area: float) -> float:
    return round(proximity * WEIGHT_PROXIMITY + room * WEIGHT_ROOMS + area * WEIGHT_AREA)

def build_scored(
    t: Transaction,
    target: TargetProperty,
    scale: BatchScale,
    proximity: float,
    distance: Optional[float] = None,
) -> ScoredTransaction:
    room = scale.room_score(t, target)
    area = scale.area_score(t, target)
    return ScoredTransaction(
        transaction=t,
        combined_score=combined_score(proximity, room, area),
        proximity_score=proximity,
        room_score=room,
        area_score=area,
        distance_meters=distance,
    )
