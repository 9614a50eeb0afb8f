from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .data.base import Conclusion, Reliability, RoomPriority, TargetProperty

class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class MarketAnalysisRequest(CamelModel):
    postal_code: str = Field(pattern=r"^\d{5}$")
    city: str = Field(min_length=1)
    living_area: float = Field(gt=0)
    room_count: int = Field(ge=0)
    full_address: str | None = None
    asking_price: float | None = Field(default=None, gt=0)
    floor: int | None = None
    top_floor: bool | None = None
    construction_year: int | None = None
    condition: str | None = None
    quarterly_charges: float | None = Field(default=None, ge=0)

    def to_target(self) -> TargetProperty:
        address = (self.full_address or "").strip() or None
        return TargetProperty(**{**self.model_dump(), "full_address": address})

class RoomGroupOut(CamelModel):
    room_count: int
    transaction_count: int
    median_price_per_area: float
    min_price_per_area: float
    max_price_per_area: float
    gap_to_target: int
    priority: RoomPriority

class RoomStatisticsOut(CamelModel):
    target_rooms: int
    total_transactions: int
    groups: list[RoomGroupOut]
    exact_match_count: int
    close_match_count: int

class SimilarTransactionOut(CamelModel):
    id: str
    address: str
    sale_price: float
    living_area: float
    room_count: int
    sale_date: str
    price_per_area: float
    distance_meters: float | None = None
    combined_score: float | None = None

class MarketAnalysisResponse(CamelModel):
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
    room_statistics: RoomStatisticsOut
    similar_transactions: list[SimilarTransactionOut]
    exact_match_price_per_area: float | None = None
    source: str = "DVF"
    updated_at: str
    etag: str | None = None

class LoaderStatus(CamelModel):
    data_vintage: str
    state: str
    cached_transactions: int
    rows_processed: int | None = None
    accepted: int | None = None
    rejected: int | None = None
    rejected_by_reason: dict[str, int] = {}
