import logging
from typing import List, Optional, Sequence

from ..core.utils import department_of
from ..data.base import RoomPriority, Transaction

logger = logging.getLogger(__name__)

def within_area(t: Transaction, target_area: float, tolerance: float) -> bool:
    return target_area - tolerance <= t.living_area <= target_area + tolerance

def prioritize_by_rooms(transactions: Sequence[Transaction], room_count: int) -> List[Transaction]:
    """
    exact > ±1 > ±2 > other room gap; most recent sale first inside each tier.
    """
    by_date = sorted(transactions, key=lambda t: t.sale_date, reverse=True)
    return sorted(by_date, key=lambda t: RoomPriority.from_gap(t.room_count - room_count).rank)

def filter_candidates(
    transactions: Sequence[Transaction],
    postal_code: str,
    target_area: float,
    room_count: int,
    tolerance: float,
    department_tolerance: float = 30,
    cap: Optional[int] = 1000,
) -> List[Transaction]:
    """
    Transactions comparable to the target: same postal code within ±tolerance m²,
    or, when there are none, same department within ±department_tolerance m².
    The result is ranked by room proximity before being capped.
    """
    candidates = [
        t for t in transactions
        if t.postal_code == postal_code and within_area(t, target_area, tolerance)
    ]
    logger.info("%d candidates in postal code %s (±%s m²)", len(candidates), postal_code, tolerance)

    if not candidates:
        department = department_of(postal_code)
        candidates = [
            t for t in transactions
            if department_of(t.postal_code) == department
            and within_area(t, target_area, department_tolerance)
        ]
        logger.info("widened to department %s: %d candidates (±%s m²)",
                    department, len(candidates), department_tolerance)

    ranked = prioritize_by_rooms(candidates, room_count)
    if cap is not None and len(ranked) > cap:
        logger.info("keeping the %d most relevant of %d candidates", cap, len(ranked))
        ranked = ranked[:cap]
    return ranked
