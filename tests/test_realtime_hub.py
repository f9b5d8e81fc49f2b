"""Tests del hub realtime: grupos por tenant, relay y websocket."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest
import redis
import redis.asyncio as aioredis
from fastapi.testclient import TestClient

from common.contracts import RealtimeMeasurement
from realtime_hub.hub import PUSH_EVENT, TelemetryHub, group_name
from realtime_hub.main import create_app
from realtime_hub.relay import RedisRelay

from conftest import DEVICE_ID, TIMESTAMP


class FakeConnection:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.sent = []
        self.fail = fail
        self.delay = delay

    async def send_json(self, data) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class FakePubSub:
    """pubsub() de redis.asyncio: falla al suscribir o entrega `messages` y queda escuchando."""

    def __init__(self, messages=(), fail: bool = False):
        self.messages = list(messages)
        self.fail = fail
        self.channels = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def subscribe(self, channel: str) -> None:
        if self.fail:
            raise redis.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        self.channels.append(channel)

    async def listen(self):
        yield {"type": "subscribe", "data": 1}
        for data in self.messages:
            yield {"type": "message", "data": data}
        await asyncio.Event().wait()


class FakeRedis:
    def __init__(self, pubsub: FakePubSub):
        self._pubsub = pubsub
        self.closed = False

    def pubsub(self) -> FakePubSub:
        return self._pubsub

    async def aclose(self) -> None:
        self.closed = True


def make_measurement(tenant: str = "innovia", value: float = 950) -> RealtimeMeasurement:
    return RealtimeMeasurement(
        tenant_slug=tenant,
        device_id=DEVICE_ID,
        type="co2",
        value=value,
        unit="ppm",
        time=TIMESTAMP,
    )


# =============================================================================
# GRUPOS
# =============================================================================

class TestTelemetryHub:

    def test_group_name(self):
        assert group_name("innovia") == "tenant:innovia"

    @pytest.mark.asyncio
    async def test_only_tenant_members_receive(self):
        hub = TelemetryHub()
        a, b = FakeConnection(), FakeConnection()
        hub.join_tenant(hub.connect(a), "innovia")
        hub.join_tenant(hub.connect(b), "acme")

        delivered = await hub.publish_measurement(make_measurement("innovia"))

        assert delivered == 1
        assert len(a.sent) == 1
        assert b.sent == []
        assert a.sent[0]["type"] == PUSH_EVENT
        payload = a.sent[0]["payload"]
        assert payload["tenantSlug"] == "innovia"
        assert payload["deviceId"] == str(DEVICE_ID)
        assert payload["value"] == 950.0

    @pytest.mark.asyncio
    async def test_unjoined_connection_receives_nothing(self):
        hub = TelemetryHub()
        conn = FakeConnection()
        hub.connect(conn)

        assert await hub.publish_measurement(make_measurement()) == 0
        assert conn.sent == []

    @pytest.mark.asyncio
    async def test_joins_are_additive(self):
        hub = TelemetryHub()
        conn = FakeConnection()
        cid = hub.connect(conn)
        hub.join_tenant(cid, "innovia")
        hub.join_tenant(cid, "acme")
        hub.join_tenant(cid, "innovia")

        await hub.publish_measurement(make_measurement("innovia"))
        await hub.publish_measurement(make_measurement("acme"))

        assert [m["payload"]["tenantSlug"] for m in conn.sent] == ["innovia", "acme"]

    @pytest.mark.asyncio
    async def test_disconnect_removes_memberships(self):
        hub = TelemetryHub()
        conn = FakeConnection()
        cid = hub.connect(conn)
        hub.join_tenant(cid, "innovia")

        hub.disconnect(cid)

        assert hub.members("innovia") == set()
        assert hub.connection_count == 0
        assert await hub.publish_measurement(make_measurement()) == 0

    def test_join_unknown_connection(self):
        with pytest.raises(KeyError):
            TelemetryHub().join_tenant("nope", "innovia")

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        hub = TelemetryHub(send_timeout_seconds=0.05)
        ok, broken, slow = FakeConnection(), FakeConnection(fail=True), FakeConnection(delay=1.0)
        for conn in (ok, broken, slow):
            hub.join_tenant(hub.connect(conn), "innovia")

        delivered = await hub.publish_measurement(make_measurement())

        assert delivered == 1
        assert len(ok.sent) == 1


# =============================================================================
# RELAY REDIS → HUB
# =============================================================================

class TestRedisRelay:

    def _relay(self, hub):
        return RedisRelay(hub, url="redis://localhost:6379/0", channel="telemetry:test")

    @pytest.mark.asyncio
    async def test_relays_wire_message(self):
        hub = TelemetryHub()
        conn = FakeConnection()
        hub.join_tenant(hub.connect(conn), "innovia")
        relay = self._relay(hub)

        delivered = await relay.handle_message(make_measurement().to_wire().encode("utf-8"))

        assert delivered == 1
        assert conn.sent[0]["payload"]["type"] == "co2"
        assert relay.stats["relayed"] == 1

    @pytest.mark.asyncio
    async def test_malformed_message_is_rejected(self):
        relay = self._relay(TelemetryHub())

        assert await relay.handle_message(b'{"tenantSlug": "innovia"}') == 0
        assert await relay.handle_message(b"not json") == 0
        assert relay.stats["rejected"] == 2

    @pytest.mark.asyncio
    async def test_reconnects_after_redis_failure(self):
        hub = TelemetryHub()
        conn = FakeConnection()
        hub.join_tenant(hub.connect(conn), "innovia")
        unreachable = FakeRedis(FakePubSub(fail=True))
        healthy_pubsub = FakePubSub(messages=[make_measurement().to_wire().encode("utf-8")])
        healthy = FakeRedis(healthy_pubsub)
        relay = RedisRelay(
            hub,
            url="redis://localhost:6379/0",
            channel="telemetry:test",
            reconnect_backoff_seconds=0.01,
        )

        with patch.object(aioredis, "from_url", side_effect=[unreachable, healthy]) as from_url:
            relay.start()
            try:
                for _ in range(200):
                    if conn.sent:
                        break
                    await asyncio.sleep(0.01)

                assert from_url.call_count == 2
                assert relay.stats["running"] is True
                assert unreachable.closed is True
                assert healthy_pubsub.channels == ["telemetry:test"]
                assert len(conn.sent) == 1
                assert conn.sent[0]["payload"]["tenantSlug"] == "innovia"
                assert relay.stats["relayed"] == 1
            finally:
                await relay.stop()

        assert healthy.closed is True
        assert relay.stats["running"] is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        relay = self._relay(TelemetryHub())
        await relay.stop()
        assert relay.stats["running"] is False


# =============================================================================
# WEBSOCKET /hub/telemetry
# =============================================================================

@pytest.fixture
def hub_client(settings):
    app = create_app(settings, relay_enabled=False)
    with TestClient(app) as c:
        yield c


class TestWebsocket:

    def _join(self, ws, tenant):
        ws.send_text(json.dumps({"type": "joinTenant", "tenant": tenant}))
        assert ws.receive_json() == {"type": "joined", "tenant": tenant}

    def test_connected_greeting(self, hub_client):
        with hub_client.websocket_connect("/hub/telemetry") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "connected"
            assert msg["connectionId"]

    def test_publish_reaches_only_tenant_group(self, hub_client):
        with hub_client.websocket_connect("/hub/telemetry") as viewer, \
                hub_client.websocket_connect("/hub/telemetry") as other, \
                hub_client.websocket_connect("/hub/telemetry") as producer:
            for ws in (viewer, other, producer):
                ws.receive_json()
            self._join(viewer, "innovia")
            self._join(other, "acme")

            producer.send_text(json.dumps({
                "type": "publishMeasurement",
                "payload": json.loads(make_measurement("innovia", 612).to_wire()),
            }))

            pushed = viewer.receive_json()
            assert pushed["type"] == "measurementReceived"
            assert pushed["payload"]["value"] == 612.0

            # Si "acme" hubiera recibido algo, llegaría antes que este joined
            self._join(other, "acme-2")

    def test_invalid_messages_get_error(self, hub_client):
        with hub_client.websocket_connect("/hub/telemetry") as ws:
            ws.receive_json()

            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"

            ws.send_text(json.dumps({"type": "joinTenant", "tenant": ""}))
            assert ws.receive_json()["type"] == "error"

            ws.send_text(json.dumps({"type": "publishMeasurement", "payload": {"tenantSlug": "x"}}))
            assert ws.receive_json()["type"] == "error"

            ws.send_text(json.dumps({"type": "leaveTenant"}))
            assert "Unknown message type" in ws.receive_json()["error"]

    def test_disconnect_cleans_up(self, hub_client):
        hub = hub_client.app.state.hub
        with hub_client.websocket_connect("/hub/telemetry") as ws:
            ws.receive_json()
            self._join(ws, "innovia")
            assert len(hub.members("innovia")) == 1

        assert hub.members("innovia") == set()

    def test_health(self, hub_client):
        body = hub_client.get("/health").json()
        assert body["status"] == "ok"
        assert body["relay"]["running"] is False
