"""
Address-string proximity heuristic. No network calls.

Both addresses are normalized, split into street number / street type /
street name, and compared by a cascade of rules from most to least specific.
Candidates reaching this scorer already share the target's postal code (or
department), so the floor is 20 rather than 0.
"""

import re
import unicodedata
from typing import List, Optional, Sequence, Tuple

from .base import BatchScale, ProximityScorer, build_scored
from ..data.base import ScoredTransaction, TargetProperty, Transaction

STREET_TYPES = ("rue", "avenue", "boulevard", "chemin", "impasse", "place",
                "allee", "passage", "cours", "quai")
LEADING_ARTICLE = re.compile(r"^(de|du|des|le|la|les)\s+")

def normalize_address(address: Optional[str]) -> str:
    """Lowercase, accents and punctuation removed, single spaces."""
    if not address:
        return ""
    text = unicodedata.normalize("NFD", address.lower())
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()

def street_number(normalized: str) -> Optional[int]:
    match = re.match(r"^(\d+)\s+", normalized)
    return int(match.group(1)) if match else None

def street_parts(normalized: str) -> Tuple[Optional[str], Optional[str]]:
    """(street type, street name) of a normalized address."""
    for street_type in STREET_TYPES:
        match = re.match(rf"^(?:\d+\s+)?(?:bis\s+|ter\s+)?{street_type}\s+(.+)$", normalized)
        if match:
            return street_type, match.group(1).strip()
    words = normalized.split(" ")
    if len(words) > 1:
        return None, " ".join(words[1:])
    return None, None

def word_overlap(a: str, b: str) -> float:
    """
    Share of the shorter side's significant words (> 2 chars) found verbatim
    in the other side, after dropping one leading article.
    """
    if a == b:
        return 1.0
    a = LEADING_ARTICLE.sub("", a).strip()
    b = LEADING_ARTICLE.sub("", b).strip()
    if a == b:
        return 1.0
    words_a = [w for w in a.split(" ") if len(w) > 2]
    words_b = [w for w in b.split(" ") if len(w) > 2]
    shorter = min(len(words_a), len(words_b))
    if shorter == 0:
        return 0.0
    matches = sum(1 for w in words_a if w in words_b)
    return matches / shorter

def number_gap_score(gap: int) -> float:
    if gap <= 10:
        return 100
    if gap <= 20:
        return 95
    if gap <= 50:
        return 85
    return 60

def proximity_score(user_address: Optional[str], user_commune: Optional[str], t: Transaction) -> float:
    """0..100 closeness of `t` to the user's address, from strings alone."""
    if not user_address:
        return 0
    user = normalize_address(user_address)
    other = normalize_address(t.full_address)
    user_commune = normalize_address(user_commune)
    other_commune = normalize_address(t.commune)

    user_type, user_name = street_parts(user)
    other_type, other_name = street_parts(other) if other else (None, None)

    # Same street
    if other and user_type and user_type == other_type and user_name and other_name:
        if word_overlap(user_name, other_name) > 0.8:
            user_no, other_no = street_number(user), street_number(other)
            if user_no and other_no:
                return number_gap_score(abs(user_no - other_no))
            return 95

    if user_commune and other_commune and user_commune == other_commune:
        if user_type and user_type == other_type:
            if user_name and other_name and word_overlap(user_name, other_name) > 0.5:
                return 55
            return 25
        if other and word_overlap(user, other) > 0.4:
            return 50
        return 15

    return 20

class HeuristicScorer(ProximityScorer):
    async def score(self, candidates: Sequence[Transaction], target: TargetProperty) -> List[ScoredTransaction]:
        scale = BatchScale.of(candidates, target)
        return [
            build_scored(t, target, scale, proximity_score(target.full_address, target.city, t))
            for t in candidates
        ]
