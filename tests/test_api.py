"""End-to-end tests for the HTTP and WebSocket surface."""

import pytest
from fastapi.testclient import TestClient

from pluto.config import Settings
from pluto.main import create_app
from pluto.market.seed_prices import SEED_PRICES
from pluto.market.simulator import SimulatorQuoteSource


@pytest.fixture
def client():
    settings = Settings(poll_interval=0.05, default_tickers=("BTCUSD", "ETHUSD"))
    source = SimulatorQuoteSource(update_interval=0.05, known_tickers=SEED_PRICES)
    with TestClient(create_app(settings, source)) as test_client:
        yield test_client


def _receive_until(ws, kind: str, limit: int = 50) -> dict:
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == kind:
            return message
    raise AssertionError(f"no {kind} message within {limit} frames")


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        """Test that a running app reports healthy."""
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["tickers"] == 2
        assert body["streaming"] is True


class TestTickerEndpoints:
    """Tests for /api/tickers."""

    def test_list_tickers(self, client):
        """Test that defaults are tracked at startup, sorted."""
        body = client.get("/api/tickers").json()
        assert body["tickers"] == ["BTCUSD", "ETHUSD"]
        assert body["count"] == 2
        assert isinstance(body["timestamp"], int)

    def test_add_ticker(self, client):
        """Test that a new ticker is normalized and tracked."""
        r = client.post("/api/tickers", json={"ticker": " solusd "})
        assert r.status_code == 200
        assert r.json()["ticker"] == "SOLUSD"
        assert "SOLUSD" in client.get("/api/tickers").json()["tickers"]

    def test_add_invalid_ticker(self, client):
        """Test that malformed tickers are rejected with 400."""
        r = client.post("/api/tickers", json={"ticker": "BTC-USD"})
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "INVALID_TICKER_FORMAT"

    def test_add_wrong_quote_currency(self, client):
        """Test that tickers outside the quote currency are rejected."""
        r = client.post("/api/tickers", json={"ticker": "BTCEUR"})
        assert r.status_code == 400

    def test_add_duplicate_ticker(self, client):
        """Test that a tracked ticker returns 409."""
        r = client.post("/api/tickers", json={"ticker": "btcusd"})
        assert r.status_code == 409
        assert r.json()["detail"]["code"] == "TICKER_EXISTS"

    def test_add_unknown_ticker(self, client):
        """Test that a ticker the source does not know returns 404."""
        r = client.post("/api/tickers", json={"ticker": "FAKEUSD"})
        assert r.status_code == 404
        assert r.json()["detail"]["code"] == "TICKER_NOT_FOUND"

    def test_remove_ticker(self, client):
        """Test removing a tracked ticker, then removing it again."""
        r = client.delete("/api/tickers/ethusd")
        assert r.status_code == 200
        assert r.json()["ticker"] == "ETHUSD"
        assert client.get("/api/tickers").json()["tickers"] == ["BTCUSD"]

        r = client.delete("/api/tickers/ETHUSD")
        assert r.status_code == 404

    def test_websocket_info(self, client):
        """Test the WebSocket status endpoint."""
        body = client.get("/api/websocket").json()
        assert body == {"path": "/ws", "clients": 0, "streaming": True}


class TestStreaming:
    """Tests for the /ws stream wired to the engine."""

    def test_viewer_receives_tickers_then_prices(self, client):
        """Test the connect-time snapshot and the periodic price batches."""
        with client.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            assert first["type"] == "activeTickers"
            assert first["data"] == ["BTCUSD", "ETHUSD"]

            prices = _receive_until(ws, "prices")
            tickers = {entry["ticker"] for entry in prices["data"]}
            assert tickers == {"BTCUSD", "ETHUSD"}
            assert all(entry["price"] > 0 for entry in prices["data"])
            assert client.get("/api/websocket").json()["clients"] == 1

    def test_add_is_announced_to_viewers(self, client):
        """Test that adding a ticker pushes the new list to connected viewers."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            client.post("/api/tickers", json={"ticker": "SOLUSD"})

            announced = _receive_until(ws, "activeTickers")
            assert announced["data"] == ["BTCUSD", "ETHUSD", "SOLUSD"]

    def test_malformed_frame_keeps_stream_open(self, client):
        """Test that a bad frame is answered and prices keep flowing."""
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json at all")

            error = _receive_until(ws, "error")
            assert error["data"]["message"] == "Invalid message format"
            assert _receive_until(ws, "prices")["type"] == "prices"
