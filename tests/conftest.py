from __future__ import annotations

import pytest

from dvf_market.data.base import (
    Coordinates,
    GeocodeFeature,
    SourceError,
    TargetProperty,
    Transaction,
)

HEADER = "idmutation;datemut;valeurfonc;libtypbien;sbatapt;code_postal;nbapt1pp;adresse_complete;commune"


def make_transaction(
    id: str = "T1",
    price: float = 250_000,
    area: float = 50,
    rooms: int = 3,
    postal_code: str = "93100",
    sale_date: str = "2024-06-01",
    address: str | None = None,
    commune: str | None = "Montreuil",
    kind: str = "Appartement",
) -> Transaction:
    return Transaction(
        id=id,
        sale_date=sale_date,
        price=price,
        property_type=kind,
        living_area=area,
        postal_code=postal_code,
        room_count=rooms,
        full_address=address,
        commune=commune,
    )


def csv_row(id: str, price: str = "250000,00", area: str = "50,00", rooms: str = "3",
            postal_code: str = "93100", date: str = "01/06/2024", kind: str = "Appartement",
            address: str = "", commune: str = "Montreuil") -> str:
    return ";".join([id, date, price, kind, area, postal_code, rooms, address, commune])


def csv_text(rows: list[str]) -> str:
    return "\n".join([HEADER, *rows])


class FakeSource:
    """In-memory vintages; counts fetches and fails on unknown locations."""

    def __init__(self, files: dict[str, str]):
        self.files = files
        self.fetches: list[str] = []

    async def fetch(self, location: str) -> str:
        self.fetches.append(location)
        if location not in self.files:
            raise SourceError(f"no such file {location}")
        return self.files[location]


class FakeGeocode:
    """Answers from a fixed table; records every query."""

    def __init__(self, table: dict[str, Coordinates | None] | None = None, error: Exception | None = None):
        self.table = table or {}
        self.error = error
        self.queries: list[str] = []

    async def search(self, query: str, limit: int = 1, type: str | None = None) -> list[GeocodeFeature]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        coords = self.table.get(query)
        if coords is None:
            return []
        return [GeocodeFeature(label=query, postcode=None, city=None, street=None, coordinates=coords)]


@pytest.fixture
def target() -> TargetProperty:
    return TargetProperty(postal_code="93100", city="Montreuil", living_area=50, room_count=3)
