import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import main
import server
from routers.recap_router import clamp_page_limit, create_recap_router

WALLET = "0x4d26f0e78c154f8fda7acf6646246fa135507017"

RECAP = {
    "pnl": 500.0,
    "realizedPnlUsd": 0.0,
    "unrealizedPnlUsd": 500.0,
    "investedUsd": 1000.0,
    "holdings": {"ETH": 10.0},
    "holdingsValueUsd": 1500.0,
}


@pytest.fixture
def recap_calls():
    return []


@pytest.fixture
def client(recap_calls):
    def fake_recap(wallet, chains, limit):
        recap_calls.append((wallet, chains, limit))
        if wallet.endswith("dead"):
            raise RuntimeError("provider exploded")
        return RECAP

    app = FastAPI()
    app.include_router(create_recap_router(
        default_chains=main.DEFAULT_CHAINS,
        api_key_configured=lambda: True,
        is_valid_address=main.is_valid_evm_address,
        resolve_chains=main.resolve_chains,
        recap_wallet=fake_recap,
    ))
    return TestClient(app)


def test_clamp_page_limit():
    assert clamp_page_limit(None) == 100
    assert clamp_page_limit(0) == 1
    assert clamp_page_limit(250) == 100
    assert clamp_page_limit(42.9) == 42
    assert clamp_page_limit(float("inf")) == 100
    assert clamp_page_limit("20") == 100
    assert clamp_page_limit(True) == 100


def test_swaps_returns_recap_shape(client, recap_calls):
    resp = client.post("/api/swaps", json={"address": f"  {WALLET} ", "chains": ["eth", "solana"], "limit": 20})

    assert resp.status_code == 200
    assert resp.json() == RECAP
    assert recap_calls == [(WALLET, ["eth"], 20)]


def test_swaps_defaults_to_all_chains(client, recap_calls):
    client.post("/api/swaps", json={"address": WALLET})
    assert recap_calls == [(WALLET, main.DEFAULT_CHAINS, 100)]


@pytest.mark.parametrize("address", ["", "0x123", "hello", WALLET + "00"])
def test_swaps_rejects_bad_address(client, address):
    resp = client.post("/api/swaps", json={"address": address})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid or missing EVM address"


def test_swaps_unexpected_error(client):
    resp = client.post("/api/swaps", json={"address": "0x" + "0" * 36 + "dead"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Unexpected server error"


def test_chains(client):
    assert client.get("/api/chains").json() == {"chains": main.DEFAULT_CHAINS}


def test_projections(client):
    resp = client.post("/api/projections", json={"investedUsd": 1000, "pnl": 500, "unrealizedPnlUsd": 500})
    body = resp.json()

    assert resp.status_code == 200
    assert [s["rate"] for s in body["scenarios"]] == [0.05, 0.15, 0.25]
    assert body["conservative"]["rate"] == 0.10
    assert body["shareText"].startswith("Trading Wrapped 2024 · Invested: $1,000.00")


def test_projections_rejects_bad_years(client):
    assert client.post("/api/projections", json={"investedUsd": 1000, "years": 0}).status_code == 400


@pytest.mark.parametrize("invested", [1e308, -1e308])
def test_projections_rejects_overflowing_amount(client, invested):
    resp = client.post("/api/projections", json={"investedUsd": invested})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "investedUsd is out of range"


@pytest.mark.parametrize("chains, limit", [
    ("eth", "20"),
    ({"eth": True}, None),
    (42, True),
    (None, [5]),
])
def test_swaps_unusable_chains_and_limit_fall_back(client, recap_calls, chains, limit):
    resp = client.post("/api/swaps", json={"address": WALLET, "chains": chains, "limit": limit})

    assert resp.status_code == 200
    assert recap_calls == [(WALLET, main.DEFAULT_CHAINS, 100)]


class TestServerApp:

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(main, "API_KEYS", [])
        resp = TestClient(server.app).post("/api/swaps", json={"address": WALLET})

        assert resp.status_code == 500
        assert "MORALIS_API_KEY" in resp.json()["detail"]

    def test_wires_recap_wallet(self, monkeypatch):
        monkeypatch.setattr(main, "API_KEYS", ["key"])
        monkeypatch.setattr(main, "recap_wallet", lambda wallet, chains, limit: RECAP)
        resp = TestClient(server.app).post("/api/swaps", json={"address": WALLET, "chains": ["base"]})

        assert resp.status_code == 200
        assert resp.json() == RECAP
