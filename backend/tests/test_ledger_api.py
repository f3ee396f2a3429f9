"""Tests for ledger API endpoints."""

import pytest


@pytest.mark.asyncio
async def test_get_balances(client):
    """Test demo balances are returned by default."""
    response = await client.get("/api/ledger/balances")
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "demo"
    assert data["balances"] == {"USDT": 100000.0}


@pytest.mark.asyncio
async def test_get_live_balances(client):
    """Test balances of the other mode can be queried."""
    response = await client.get("/api/ledger/balances", params={"mode": "live"})
    assert response.status_code == 200
    assert response.json()["mode"] == "live"
    assert response.json()["balances"]["USDT"] == 0.0


@pytest.mark.asyncio
async def test_switch_mode(client):
    """Test switching the trading mode."""
    response = await client.put("/api/ledger/mode", json={"mode": "live"})
    assert response.status_code == 200
    assert response.json() == {"mode": "live"}

    response = await client.get("/api/ledger/mode")
    assert response.json() == {"mode": "live"}


@pytest.mark.asyncio
async def test_switch_mode_invalid(client):
    """Test unknown modes are rejected."""
    response = await client.put("/api/ledger/mode", json={"mode": "paper"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_switch_mode_while_running(client, registry, feed, engine, bot_spec):
    """Test mode cannot change while a bot runs."""
    bot_id = registry.create(bot_spec())
    feed.push_price("BTC/USDT", 100.0)
    await engine.start_bot(bot_id)

    response = await client.put("/api/ledger/mode", json={"mode": "live"})
    assert response.status_code == 400

    response = await client.get("/api/ledger/mode")
    assert response.json() == {"mode": "demo"}


@pytest.mark.asyncio
async def test_reset_demo(client, ledger):
    """Test resetting the demo ledger."""
    await ledger.update_balance("demo", "BTC", 2.0)

    response = await client.post("/api/ledger/demo/reset", json={"initial_balance": 5000.0})
    assert response.status_code == 200
    assert response.json()["balances"] == {"USDT": 5000.0}


@pytest.mark.asyncio
async def test_reset_demo_while_running(client, registry, feed, engine, bot_spec):
    """Test the demo ledger cannot be reset under running bots."""
    bot_id = registry.create(bot_spec())
    feed.push_price("BTC/USDT", 100.0)
    await engine.start_bot(bot_id)

    response = await client.post("/api/ledger/demo/reset", json={})
    assert response.status_code == 400
