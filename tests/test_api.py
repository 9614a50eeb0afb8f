import pytest
from fastapi.testclient import TestClient

from dvf_market.core.cache import TTLStore
from dvf_market.core.config import settings
from dvf_market.main import create_app
from dvf_market.services.geocoding import GeocodingResolver
from dvf_market.services.loader import DataVintage, TransactionLoader

from conftest import FakeGeocode, FakeSource, csv_row, csv_text

REQUEST = {"postalCode": "93100", "city": "Montreuil", "livingArea": 50, "roomCount": 3}


def build_client(files) -> TestClient:
    app = create_app()
    app.state.loader = TransactionLoader(
        FakeSource(files),
        TTLStore(ttl_seconds=1800, maxsize=1),
        DataVintage("2025", "p.csv"),
        DataVintage("2024", "f.csv"),
    )
    app.state.resolver = GeocodingResolver(FakeGeocode(), TTLStore(ttl_seconds=60, maxsize=100))
    return TestClient(app)


@pytest.fixture
def client():
    files = {"p.csv": csv_text([
        csv_row(f"P{i}", address=f"{2 * i + 1} rue de Paris") for i in range(12)
    ] + [csv_row("bad", area="5,00")])}
    with build_client(files) as c:
        yield c


def test_health(client):
    assert client.get("/v1/health").json() == {"status": "ok"}


def test_market_analysis_returns_camel_case_and_etag(client):
    r = client.post("/v1/market-analysis", json=REQUEST)

    assert r.status_code == 200
    body = r.json()
    assert body["dataVintage"] == "2025"
    assert body["reliability"] == "strong"
    assert body["estimatedValueMedian"] == 250_000
    assert body["roomStatistics"]["exactMatchCount"] == 12
    assert body["source"] == "DVF"
    assert r.headers["ETag"] == body["etag"]
    assert "X-Request-Id" in r.headers


def test_matching_etag_gives_not_modified(client):
    etag = client.post("/v1/market-analysis", json=REQUEST).headers["ETag"]

    r = client.post("/v1/market-analysis", json=REQUEST, headers={"If-None-Match": etag})

    assert r.status_code == 304


def test_address_request_is_scored(client):
    r = client.post("/v1/market-analysis", json={**REQUEST, "fullAddress": "5 rue de Paris", "askingPrice": 300_000})

    assert r.status_code == 200
    body = r.json()
    assert body["conclusion"] == "overpriced"
    assert all(s["combinedScore"] is not None for s in body["similarTransactions"])


def test_unknown_postal_code_is_not_found(client):
    r = client.post("/v1/market-analysis", json={**REQUEST, "postalCode": "93200"})
    assert r.status_code == 404


@pytest.mark.parametrize("patch", [{"postalCode": "931"}, {"livingArea": 0}, {"roomCount": -1}])
def test_invalid_request_is_rejected(client, patch):
    assert client.post("/v1/market-analysis", json={**REQUEST, **patch}).status_code == 422


def test_no_data_is_service_unavailable():
    with build_client({}) as c:
        assert c.post("/v1/market-analysis", json=REQUEST).status_code == 503


def test_status_and_cache_reset(client):
    client.post("/v1/market-analysis", json=REQUEST)

    status = client.get("/v1/transactions/status").json()
    assert status["dataVintage"] == "2025"
    assert status["state"] == "done"
    assert status["cachedTransactions"] == 12
    assert status["rejectedByReason"] == {"not_admissible": 1}

    assert client.delete("/v1/transactions/cache").status_code == 204
    status = client.get("/v1/transactions/status").json()
    assert status["cachedTransactions"] == 0
    assert status["state"] == "idle"


def test_api_key_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "secret")

    assert client.post("/v1/market-analysis", json=REQUEST).status_code == 401
    r = client.post("/v1/market-analysis", json=REQUEST, headers={"x-api-key": "secret"})
    assert r.status_code == 200


def test_metrics_are_exposed(client):
    client.post("/v1/market-analysis", json=REQUEST)
    r = client.get("/v1/metrics")

    assert r.status_code == 200
    assert "market_analyses_total" in r.text
