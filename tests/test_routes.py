"""Tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from tts_vtex_bridge.config.settings import Settings
from tts_vtex_bridge.core.errors import NotFoundError, OrderValidationError, UnprocessableOrderError, VtexApiError
from tts_vtex_bridge.core.signature import compute_webhook_signature
from tts_vtex_bridge.queue import NotificationDispatcher
from tts_vtex_bridge.server import create_app
from tts_vtex_bridge.server.dependencies import BridgeServices

from tests.fakes import SHOP_ID, WEBHOOK_TOKEN, FakeShopConfig, make_webhook

APP_KEY = "app-key"
APP_SECRET = "app-secret"
API_KEY = "operator-key"


class FakeSession:
    async def execute(self, statement):
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeOrderService:
    def __init__(self, result="processed", error=None):
        self.result = result
        self.error = error
        self.webhooks = []
        self.label_calls = []

    async def handle_order_webhook(self, payload):
        self.webhooks.append(payload)
        if self.error:
            raise self.error
        return self.result

    async def handle_marketplace_notification(self, payload, shop_id):
        return None

    async def get_label(self, order_id, shop_id=None):
        self.label_calls.append((order_id, shop_id))
        if order_id == "order-404":
            raise NotFoundError(f"Label not found for order {order_id}")
        return {"orderId": order_id, "labelUrl": "https://labels.example.com/order-001.pdf"}


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        tiktok_app_key=APP_KEY,
        tiktok_app_secret=APP_SECRET,
        verify_webhook_signature=True,
        middleware_api_key=API_KEY,
        vtex_invoice_poll_enabled=False,
    )


@pytest.fixture
def order_service():
    return FakeOrderService()


@pytest.fixture
def services(settings, order_service):
    return BridgeServices(
        settings=settings,
        session_factory=FakeSession,
        shop_config=FakeShopConfig(),
        order_service=order_service,
        label_service=None,
        dispatcher=NotificationDispatcher(order_service),
    )


@pytest.fixture
def client(services):
    # No context manager: startup hooks (database, workers) are not run
    return TestClient(create_app(services=services))


def signed_post(client, payload, secret=APP_SECRET):
    body = json.dumps(payload)
    signature = compute_webhook_signature(APP_KEY, secret, body)
    return client.post(
        "/webhooks/tiktok/orders",
        content=body,
        headers={"Content-Type": "application/json", "x-signature": signature},
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {
            "database": "ok",
            "notification_dispatcher": "stopped",
            "invoice_poll": "disabled",
        }


class TestTiktokWebhook:
    def test_signed_webhook_is_processed(self, client, order_service):
        response = signed_post(client, make_webhook())

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}
        assert order_service.webhooks[0]["data"]["order_id"] == "order-001"

    def test_bad_signature_is_rejected(self, client, order_service):
        response = signed_post(client, make_webhook(), secret="wrong-secret")

        assert response.status_code == 401
        assert order_service.webhooks == []

    def test_missing_signature_is_rejected(self, client):
        response = client.post("/webhooks/tiktok/orders", json=make_webhook())
        assert response.status_code == 401

    def test_signature_check_can_be_disabled(self, services, order_service):
        services.settings.verify_webhook_signature = False
        client = TestClient(create_app(services=services))

        response = client.post("/webhooks/tiktok/orders", json=make_webhook())
        assert response.json() == {"status": "processed"}

    def test_webhook_without_order_id_is_ignored(self, client, order_service):
        payload = make_webhook()
        payload["data"] = {}

        response = signed_post(client, payload)

        assert response.json() == {"status": "ignored"}
        assert order_service.webhooks == []

    def test_non_object_body(self, client):
        response = signed_post(client, ["not", "an", "object"])
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (OrderValidationError("No valid CPF"), 422),
            (UnprocessableOrderError("No valid SLA found"), 422),
            (VtexApiError("VTEX down", status_code=500), 502),
        ],
    )
    def test_pipeline_errors_are_mapped(self, client, order_service, error, status_code):
        order_service.error = error

        response = signed_post(client, make_webhook())

        assert response.status_code == status_code
        assert response.json() == {"error": type(error).__name__, "message": str(error)}


class TestVtexMarketplaceWebhook:
    def test_notification_is_queued(self, client, services):
        response = client.post(f"/webhooks/vtex/marketplace/{WEBHOOK_TOKEN}", json={"orderId": "vtex-001"})

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        assert services.dispatcher.queue.qsize() == 1
        assert services.dispatcher.queue.get_nowait() == ({"orderId": "vtex-001"}, SHOP_ID)

    def test_unknown_token(self, client, services):
        response = client.post("/webhooks/vtex/marketplace/other-token", json={"orderId": "vtex-001"})

        assert response.status_code == 404
        assert services.dispatcher.queue.qsize() == 0

    def test_invalid_json(self, client):
        response = client.post(
            f"/webhooks/vtex/marketplace/{WEBHOOK_TOKEN}",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestLabelEndpoint:
    def test_requires_api_key(self, client, order_service):
        assert client.get("/orders/order-001/label").status_code == 401
        assert client.get("/orders/order-001/label", headers={"X-API-Key": "nope"}).status_code == 401
        assert order_service.label_calls == []

    def test_header_key(self, client, order_service):
        response = client.get(
            "/orders/order-001/label",
            headers={"X-API-Key": API_KEY, "X-TTS-ShopId": SHOP_ID},
        )

        assert response.status_code == 200
        assert response.json()["labelUrl"] == "https://labels.example.com/order-001.pdf"
        assert order_service.label_calls == [("order-001", SHOP_ID)]

    def test_query_key(self, client, order_service):
        response = client.get(f"/orders/order-001/label?apiKey={API_KEY}")

        assert response.status_code == 200
        assert order_service.label_calls == [("order-001", None)]

    def test_non_ascii_key_is_rejected(self, client, order_service):
        response = client.get("/orders/order-001/label", params={"apiKey": "op\u00e9rator-key"})

        assert response.status_code == 401
        assert order_service.label_calls == []

    def test_unknown_order(self, client):
        response = client.get("/orders/order-404/label", headers={"X-API-Key": API_KEY})
        assert response.status_code == 404

    def test_rejects_when_no_key_configured(self, services):
        services.settings.middleware_api_key = None
        client = TestClient(create_app(services=services))

        response = client.get("/orders/order-001/label", headers={"X-API-Key": API_KEY})
        assert response.status_code == 401
