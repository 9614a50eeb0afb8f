"""Candidate selection, estimation paths and the service around them."""

import pytest

from dvf_market.core.cache import TTLStore
from dvf_market.data.base import Conclusion, Reliability, RoomPriority, TargetProperty
from dvf_market.services.candidates import filter_candidates, prioritize_by_rooms
from dvf_market.services.loader import DataUnavailableError, DataVintage, TransactionLoader
from dvf_market.services.market_analysis import (
    AnalysisConfig,
    MarketAggregator,
    analyze_market,
    conclusion_for,
    reliability_for,
    room_statistics,
)
from dvf_market.services.market_service import MarketService

from conftest import FakeSource, csv_row, csv_text, make_transaction


def priced(id: str, price_per_area: float, rooms: int = 3, area: float = 50, **kwargs):
    return make_transaction(id, price=price_per_area * area, area=area, rooms=rooms, **kwargs)


# ---------- candidate filter ----------

def test_exact_postal_code_within_tolerance():
    transactions = [
        priced("in", 5000, area=60),
        priced("too-big", 5000, area=75),
        priced("other-cp", 5000, area=50, postal_code="93200"),
    ]
    result = filter_candidates(transactions, "93100", 50, 3, tolerance=20)

    assert [t.id for t in result] == ["in"]


def test_widens_to_department_when_postal_code_has_nothing():
    transactions = [
        priced("same-dept", 5000, area=75, postal_code="93200"),
        priced("too-big", 5000, area=85, postal_code="93200"),
        priced("paris", 5000, area=50, postal_code="75011"),
    ]
    result = filter_candidates(transactions, "93100", 50, 3, tolerance=20, department_tolerance=30)

    assert [t.id for t in result] == ["same-dept"]


def test_rooms_rank_before_recency_and_cap_applies_after():
    transactions = [
        priced("other-new", 5000, rooms=7, sale_date="2024-12-01"),
        priced("exact-old", 5000, rooms=3, sale_date="2024-01-01"),
        priced("close", 5000, rooms=4, sale_date="2024-06-01"),
        priced("exact-new", 5000, rooms=3, sale_date="2024-11-01"),
    ]
    ranked = prioritize_by_rooms(transactions, 3)
    assert [t.id for t in ranked] == ["exact-new", "exact-old", "close", "other-new"]

    capped = filter_candidates(transactions, "93100", 50, 3, tolerance=20, cap=2)
    assert [t.id for t in capped] == ["exact-new", "exact-old"]


# ---------- room statistics ----------

def test_room_groups_are_tagged_and_ordered():
    candidates = (
        [priced(f"r3-{i}", 5000, rooms=3) for i in range(2)]
        + [priced("r2", 4000, rooms=2)]
        + [priced(f"r4-{i}", 4000 + i * 1000, rooms=4) for i in range(3)]
        + [priced("r5", 6000, rooms=5), priced("r7", 7000, rooms=7)]
    )
    stats = room_statistics(candidates, 3)

    assert [(g.room_count, g.priority) for g in stats.groups] == [
        (3, RoomPriority.EXACT),
        (4, RoomPriority.CLOSE),
        (2, RoomPriority.CLOSE),
        (5, RoomPriority.BROAD),
        (7, RoomPriority.OTHER),
    ]
    four = stats.groups[1]
    assert (four.min_price_per_area, four.median_price_per_area, four.max_price_per_area) == (4000, 5000, 6000)
    assert stats.exact_match_count == 2
    assert stats.close_match_count == 4
    assert stats.total_transactions == 8


# ---------- estimation without an address ----------

@pytest.mark.asyncio
async def test_many_exact_matches_give_a_strong_median(target):
    candidates = [priced(f"e{i}", 4000 + i * 100) for i in range(12)]
    candidates.append(priced("big", 9000, rooms=5))

    analysis = await MarketAggregator().aggregate(candidates, target, "2025")

    assert analysis.reliability is Reliability.STRONG
    assert analysis.avg_price_per_area_district == 4550
    assert analysis.exact_match_price_per_area == 4550
    assert analysis.estimated_value_median == 227_500
    assert analysis.estimated_value_low <= analysis.estimated_value_median <= analysis.estimated_value_high
    assert analysis.min_price_per_area == 4000
    assert analysis.max_price_per_area == 9000
    assert analysis.similar_transaction_count == 13
    assert analysis.data_vintage == "2025"
    assert analysis.source == "DVF"


@pytest.mark.asyncio
async def test_few_exact_matches_are_weak(target):
    candidates = [priced(f"e{i}", 5000) for i in range(4)] + [priced("close", 8000, rooms=4)]

    analysis = await MarketAggregator().aggregate(candidates, target)

    assert analysis.reliability is Reliability.WEAK
    assert analysis.avg_price_per_area_district == 5000


@pytest.mark.asyncio
async def test_no_exact_match_uses_room_weighted_prices(target):
    candidates = [
        priced("close", 5000, rooms=4),      # x0.8
        priced("broad", 5000, rooms=1),      # x0.6
        priced("other", 5000, rooms=7),      # x0.4
    ]

    analysis = await MarketAggregator().aggregate(candidates, target)

    assert analysis.avg_price_per_area_district == 3000
    assert analysis.exact_match_price_per_area is None
    assert analysis.reliability is Reliability.WEAK


@pytest.mark.asyncio
async def test_display_list_is_limited(target):
    candidates = [priced(f"e{i}", 5000) for i in range(30)]
    config = AnalysisConfig(display_limit=5)

    analysis = await MarketAggregator(config=config).aggregate(candidates, target)

    assert [s.id for s in analysis.similar_transactions] == [f"e{i}" for i in range(5)]
    assert analysis.similar_transactions[0].address == "Code postal 93100"


@pytest.mark.asyncio
async def test_empty_candidates_give_no_analysis(target):
    assert await MarketAggregator().aggregate([], target) is None


# ---------- asking price ----------

@pytest.mark.parametrize(
    "asking, gap, conclusion",
    [
        (200_000, -12, Conclusion.GOOD_DEAL),
        (230_000, 1, Conclusion.FAIR),
        (260_000, 14, Conclusion.OVERPRICED),
        (None, 0, Conclusion.FAIR),
    ],
)
@pytest.mark.asyncio
async def test_asking_price_gap(asking, gap, conclusion):
    target = TargetProperty(postal_code="93100", city="Montreuil", living_area=50, room_count=3,
                            asking_price=asking)
    candidates = [priced(f"e{i}", 4550) for i in range(3)]

    analysis = await MarketAggregator().aggregate(candidates, target)

    assert analysis.estimated_value_median == 227_500
    assert analysis.price_gap_vs_asking_pct == gap
    assert analysis.conclusion is conclusion


def test_conclusion_thresholds_are_exclusive():
    config = AnalysisConfig()
    assert conclusion_for(-5, config) is Conclusion.FAIR
    assert conclusion_for(-6, config) is Conclusion.GOOD_DEAL
    assert conclusion_for(10, config) is Conclusion.FAIR
    assert conclusion_for(11, config) is Conclusion.OVERPRICED


@pytest.mark.parametrize(
    "sample, avg, expected",
    [
        (20, 71, Reliability.STRONG),
        (10, 61, Reliability.STRONG),
        (10, 60, Reliability.MEDIUM),
        (5, 51, Reliability.MEDIUM),
        (3, 41, Reliability.MEDIUM),
        (3, 40, Reliability.WEAK),
        (2, 99, Reliability.WEAK),
    ],
)
def test_reliability_rules(sample, avg, expected):
    assert reliability_for(sample, avg, AnalysisConfig()) is expected


# ---------- estimation with an address ----------

def addressed(**kwargs) -> TargetProperty:
    fields = dict(postal_code="93100", city="Montreuil", living_area=50, room_count=3,
                  full_address="12 rue de la Paix")
    fields.update(kwargs)
    return TargetProperty(**fields)


@pytest.mark.asyncio
async def test_divergent_weighted_mean_falls_back_to_median():
    candidates = [priced("neighbour", 10_000, address="14 rue de la Paix")] + [
        priced(f"far{i}", 4000, address=f"{i} avenue Jean Jaures", commune="Bagnolet") for i in range(4)
    ]

    analysis = await MarketAggregator().aggregate(candidates, addressed())

    assert analysis.avg_price_per_area_district == 4000
    assert analysis.reliability is Reliability.MEDIUM
    assert analysis.exact_match_price_per_area is None
    assert analysis.similar_transactions[0].id == "neighbour"
    assert analysis.similar_transactions[0].combined_score == 100


@pytest.mark.asyncio
async def test_consistent_prices_use_the_weighted_mean():
    candidates = [priced(f"n{i}", 5000, address=f"{10 + i} rue de la Paix") for i in range(12)]

    analysis = await MarketAggregator().aggregate(candidates, addressed())

    assert analysis.avg_price_per_area_district == 5000
    assert analysis.reliability is Reliability.STRONG


@pytest.mark.asyncio
async def test_analyze_market_uses_wider_tolerance_with_an_address():
    transactions = [priced("big", 5000, area=85, address="14 rue de la Paix")]

    assert await analyze_market(transactions, addressed()) is not None
    assert await analyze_market(transactions, addressed(full_address=None)) is None


# ---------- service ----------

def loader_for(files, min_transactions: int = 10) -> TransactionLoader:
    return TransactionLoader(
        FakeSource(files),
        TTLStore(ttl_seconds=1800, maxsize=1),
        DataVintage("2025", "p.csv"),
        DataVintage("2024", "f.csv"),
        min_transactions=min_transactions,
    )


@pytest.mark.asyncio
async def test_analysis_reports_the_fallback_vintage(target):
    files = {
        "p.csv": csv_text([csv_row(f"P{i}") for i in range(3)]),
        "f.csv": csv_text([csv_row(f"F{i}") for i in range(40)]),
    }
    service = MarketService(loader_for(files))

    analysis = await service.analyze(target)

    assert analysis.data_vintage == "2024"
    assert analysis.similar_transaction_count == 40
    assert analysis.reliability is Reliability.STRONG
    assert analysis.avg_price_per_area_district == 5000


@pytest.mark.asyncio
async def test_postal_code_absent_from_data_gives_no_analysis():
    files = {"p.csv": csv_text([csv_row(f"P{i}", postal_code="93100") for i in range(12)])}
    target = TargetProperty(postal_code="93200", city="Saint-Denis", living_area=50, room_count=3)

    assert await MarketService(loader_for(files)).analyze(target) is None

    relaxed = AnalysisConfig(require_exact_postal_code=False)
    analysis = await MarketService(loader_for(files), config=relaxed).analyze(target)
    assert analysis.similar_transaction_count == 12


@pytest.mark.asyncio
async def test_unavailable_data_propagates(target):
    with pytest.raises(DataUnavailableError):
        await MarketService(loader_for({})).analyze(target)


@pytest.mark.asyncio
async def test_payload_etag_ignores_the_timestamp(target):
    service = MarketService(loader_for({"p.csv": csv_text([csv_row(f"P{i}") for i in range(12)])}))

    first, etag1 = service.to_payload(await service.analyze(target))
    second, etag2 = service.to_payload(await service.analyze(target))

    assert etag1 == etag2
    assert first["conclusion"] == "fair"
    assert first["room_statistics"]["groups"][0]["priority"] == "exact"
