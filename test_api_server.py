from fastapi.testclient import TestClient

from api.server import create_app
from investments.repository import InvestmentsRepository
from investments.service import InvestmentsMetricsService

HEADERS = {"X-User-Id": "u1"}


def _client(tmp_path) -> TestClient:
    repository = InvestmentsRepository(str(tmp_path / "api.db"))
    service = InvestmentsMetricsService(repository, market_data_enabled=False)
    return TestClient(create_app(service))


def _create_asset(client: TestClient) -> str:
    response = client.post(
        "/api/investments/assets/manual",
        headers=HEADERS,
        json={"assetClass": "cash", "name": "Caixa", "quantity": 1, "avgPrice": 250, "referenceDate": "2024-01-02"},
    )
    assert response.status_code == 201
    return response.json()["asset"]["asset_id"]


def test_manifest_and_health(tmp_path):
    client = _client(tmp_path)
    assert client.get("/health").json() == {"status": "ok"}
    manifest = client.get("/api/investments/manifest").json()
    assert {metric["id"] for metric in manifest["metrics"]} == {"investments.net_worth", "investments.profitability"}


def test_metrics_query_and_malformed_filters(tmp_path):
    client = _client(tmp_path)
    _create_asset(client)

    ok = client.post(
        "/api/investments/metrics/query",
        headers=HEADERS,
        json={"metricIds": ["investments.net_worth", "nope"], "filters": {"asOf": "2024-03-01"}},
    )
    assert ok.status_code == 200
    assert [m["status"] for m in ok.json()["metrics"]] == ["ok", "not_found"]

    bad = client.post(
        "/api/investments/metrics/query",
        headers=HEADERS,
        json={"metricIds": ["investments.net_worth"], "filters": {"assetClasses": "equity"}},
    )
    assert bad.status_code == 400
    assert bad.json()["success"] is False

    no_user = client.post("/api/investments/metrics/query", json={"metricIds": ["investments.net_worth"]})
    assert no_user.status_code == 400


def test_cards_query(tmp_path):
    client = _client(tmp_path)
    response = client.post(
        "/api/investments/cards/query",
        headers=HEADERS,
        json={"cards": [{"cardId": "rent", "metricIds": ["investments.profitability"]}]},
    )
    assert response.status_code == 200
    assert response.json()["cards"][0]["status"] == "empty"


def test_manual_asset_routes(tmp_path):
    client = _client(tmp_path)
    asset_id = _create_asset(client)

    edited = client.post(
        f"/api/investments/assets/{asset_id}/edit",
        headers=HEADERS,
        json={"operation": "add_income", "payload": {"amount": 5, "referenceDate": "2024-02-01"}},
    )
    assert edited.status_code == 200
    assert edited.json()["transaction"]["operation"] == "income"

    invalid = client.post(
        f"/api/investments/assets/{asset_id}/edit",
        headers=HEADERS,
        json={"operation": "rename", "payload": {}},
    )
    assert invalid.status_code == 400

    missing = client.post(
        "/api/investments/assets/unknown/edit",
        headers=HEADERS,
        json={"operation": "add_income", "payload": {"amount": 5}},
    )
    assert missing.status_code == 404

    search = client.get("/api/investments/assets/search", headers=HEADERS, params={"q": "cai"})
    assert search.json()["total"] == 1

    refused = client.delete(f"/api/investments/assets/{asset_id}", headers=HEADERS, params={"confirm": "sim"})
    assert refused.status_code == 400
    deleted = client.delete(f"/api/investments/assets/{asset_id}", headers=HEADERS, params={"confirm": "APAGAR AGORA"})
    assert deleted.status_code == 200
    again = client.delete(f"/api/investments/assets/{asset_id}", headers=HEADERS, params={"confirm": "APAGAR AGORA"})
    assert again.status_code == 404


def test_orchestrator_validate_route(tmp_path):
    client = _client(tmp_path)
    response = client.post(
        "/api/orchestrator/validate",
        json={
            "request_id": "r1",
            "original_query": "q",
            "reasoning": "too short",
            "execution_plan": {"agents": []},
        },
    )
    body = response.json()
    assert response.status_code == 200
    assert body["valid"] is False
    assert body["errors"]
