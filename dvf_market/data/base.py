from typing import Protocol, List, Optional
from dataclasses import dataclass, field
from enum import Enum

# ----- Data shapes (thin & explicit) -----

@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float

@dataclass(frozen=True)
class GeocodeFeature:
    label: str                      # normalized full label, e.g. "12 Rue de la Paix 93100 Montreuil"
    postcode: Optional[str]
    city: Optional[str]
    street: Optional[str]           # street-only name, e.g. "Rue de la Paix"
    coordinates: Coordinates

@dataclass(frozen=True)
class Transaction:
    """One recorded sale (mutation) from a DVF extract."""
    id: str
    sale_date: str                  # ISO YYYY-MM-DD when the source date was well-formed
    price: float
    property_type: str              # e.g. "Appartement", "Maison"
    living_area: float              # m²
    postal_code: str
    room_count: int = 0
    full_address: Optional[str] = None
    commune: Optional[str] = None
    price_per_area: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "price_per_area", self.price / self.living_area)

@dataclass(frozen=True)
class ScoredTransaction:
    transaction: Transaction
    combined_score: float           # 0..100
    proximity_score: float          # 0..100
    room_score: float               # 0..100
    area_score: float               # 0..100
    distance_meters: Optional[float] = None

@dataclass(frozen=True)
class TargetProperty:
    """The property being appraised. Financial context is not used for scoring."""
    postal_code: str
    city: str
    living_area: float
    room_count: int
    full_address: Optional[str] = None
    asking_price: Optional[float] = None
    floor: Optional[int] = None
    top_floor: Optional[bool] = None
    construction_year: Optional[int] = None
    condition: Optional[str] = None
    quarterly_charges: Optional[float] = None

# ----- Analysis output -----

class Reliability(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"

class Conclusion(str, Enum):
    GOOD_DEAL = "good-deal"
    OVERPRICED = "overpriced"
    FAIR = "fair"

class RoomPriority(str, Enum):
    EXACT = "exact"
    CLOSE = "close"
    BROAD = "broad"
    OTHER = "other"

    @classmethod
    def from_gap(cls, gap: int) -> "RoomPriority":
        gap = abs(gap)
        if gap == 0:
            return cls.EXACT
        if gap == 1:
            return cls.CLOSE
        if gap == 2:
            return cls.BROAD
        return cls.OTHER

    @property
    def rank(self) -> int:
        return list(RoomPriority).index(self)

@dataclass
class RoomGroup:
    room_count: int
    transaction_count: int
    median_price_per_area: float
    min_price_per_area: float
    max_price_per_area: float
    gap_to_target: int
    priority: RoomPriority

@dataclass
class RoomStatistics:
    target_rooms: int
    total_transactions: int
    groups: List[RoomGroup]
    exact_match_count: int
    close_match_count: int

@dataclass
class SimilarTransaction:
    id: str
    address: str
    sale_price: float
    living_area: float
    room_count: int
    sale_date: str
    price_per_area: float
    distance_meters: Optional[float] = None
    combined_score: Optional[float] = None

@dataclass
class MarketAnalysis:
    avg_price_per_area_district: float
    min_price_per_area: float
    max_price_per_area: float
    estimated_value_low: int
    estimated_value_median: int
    estimated_value_high: int
    similar_transaction_count: int
    price_gap_vs_asking_pct: int
    conclusion: Conclusion
    data_vintage: str
    reliability: Reliability
    room_statistics: RoomStatistics
    similar_transactions: List[SimilarTransaction]
    exact_match_price_per_area: Optional[float] = None
    source: str = "DVF"
    updated_at: str = ""

# ----- Protocols (interfaces) -----

class GeocodeClient(Protocol):
    async def search(
        self, query: str, limit: int = 1, type: Optional[str] = None
    ) -> List[GeocodeFeature]: ...

class TransactionSource(Protocol):
    async def fetch(self, location: str) -> str:
        """Return the whole raw text of one vintage. Raises SourceError."""
        ...

class SourceError(Exception):
    """A vintage could not be read (missing file, HTTP failure...)."""
