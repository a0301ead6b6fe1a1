from fastapi.testclient import TestClient

from perptrader.api.app import create_app
from perptrader.persistence.position_store import InMemoryPositionStore
from perptrader.services.trading_engine import TradingEngine
from perptrader.tests.fakes import FakeExchange, RecordingSink, breakout_candles


def _client(exchange=None):
    exchange = exchange or FakeExchange(candles={"SOLUSD": breakout_candles()}, prices={"SOLUSD": 152.0})

    def factory():
        return TradingEngine(exchange=exchange, store=InMemoryPositionStore(), notifier=RecordingSink(),
                             symbols=["SOLUSD"], strategies=["trend_breakout", "ema_crossover"])

    return TestClient(create_app(engine_factory=factory)), exchange


def test_health_and_status():
    client, _ = _client()
    with client:
        assert client.get("/health").json()["status"] == "healthy"
        status = client.get("/status").json()
        engine = status["engine"]
        assert engine["running"] is False
        assert set(engine["runners"]) == {"trend_breakout", "ema_crossover"}
        assert "sltp_monitor" in engine["scheduler"]["tasks"]


def test_metrics_endpoint_exposes_counters():
    client, _ = _client()
    with client:
        r = client.get("/metrics")
        assert r.status_code == 200
        assert "perptrader_ticks_skipped_total" in r.text


def test_run_once_opens_position_then_manual_close_feeds_stats():
    client, exchange = _client()
    with client:
        run = client.post("/control/run/trend_breakout").json()
        assert len(run["opened"]) == 1
        position_id = run["opened"][0]
        assert exchange.orders[0]["side"] == "BUY"

        listed = client.get("/positions/").json()
        assert listed["count"] == 1
        assert listed["positions"][0]["id"] == position_id
        assert client.get(f"/positions/{position_id}").json()["status"] == "OPEN"

        again = client.post("/control/run/trend_breakout").json()
        assert again["rejected"] == ["DUPLICATE_POSITION"]

        closed = client.post(f"/positions/{position_id}/close", json={"exit_price": 153.52})
        assert closed.status_code == 200
        assert closed.json()["exit_reason"] == "MANUAL"
        assert closed.json()["exit_order_sent"] is True
        assert [o["side"] for o in exchange.orders] == ["BUY", "SELL"]
        assert client.post(f"/positions/{position_id}/close", json={"exit_price": 153.0}).status_code == 409

        stats = client.get("/positions/stats").json()
        assert stats["total_trades"] == 1
        assert stats["win_rate"] == 100.0
        assert client.get("/positions/", params={"status": "closed"}).json()["count"] == 1


def test_sltp_check_closes_hit_position():
    client, exchange = _client()
    with client:
        position_id = client.post("/control/run/trend_breakout").json()["opened"][0]
        exchange.prices["SOLUSD"] = 151.0
        report = client.post("/control/sltp/check").json()
        assert report["closed"] == [position_id]
        assert report["exit_order_failures"] == []
        assert exchange.orders[-1]["side"] == "SELL"
        assert client.get(f"/positions/{position_id}").json()["exit_reason"] == "STOP_LOSS"


def test_unknown_resources():
    client, _ = _client()
    with client:
        assert client.get("/positions/nope").status_code == 404
        assert client.post("/positions/nope/close", json={"exit_price": 1.0}).status_code == 404
        assert client.post("/control/run/unknown").status_code == 404
        assert client.get("/positions/", params={"status": "weird"}).status_code == 400


def test_start_and_stop():
    client, _ = _client()
    with client:
        started = client.post("/control/start").json()
        assert started["status"] == "running"
        assert client.get("/status").json()["engine"]["running"] is True
        assert client.post("/control/stop").json()["status"] == "stopped"
        assert client.get("/status").json()["engine"]["running"] is False


def test_engine_unavailable_after_shutdown():
    client, _ = _client()
    with client:
        assert client.get("/positions/").status_code == 200
    assert client.get("/positions/").status_code == 503
    assert "engine" not in client.get("/").json()["services"]
