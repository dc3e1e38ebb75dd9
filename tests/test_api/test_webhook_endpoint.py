"""Tests for POST /api/v1/webhooks/stripe — signature verification and dispatch."""

import json
import time
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.billing.events import EVENT_KINDS
from app.billing.webhooks import register_hook
from app.config import get_settings
from app.main import app

URL = "/api/v1/webhooks/stripe"


def _event_body(event_type: str = "checkout.session.completed", **data_object) -> bytes:
    data_object.setdefault("id", "cs_test_endpoint")
    return json.dumps(
        {
            "id": "evt_endpoint_1",
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        },
        separators=(",", ":"),
    ).encode()


async def _post(client: AsyncClient, body: bytes, signature: str | None):
    headers = {"content-type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return await client.post(URL, content=body, headers=headers)


class TestSignatureRequired:
    """Requests without a signature are rejected before any parsing."""

    async def test_missing_header_is_bad_request(self, client: AsyncClient):
        with (
            patch("app.api.v1.webhooks.verify_webhook_signature") as mock_verify,
            patch("app.api.v1.webhooks.parse_event") as mock_parse,
        ):
            response = await _post(client, _event_body(), signature=None)

        assert response.status_code == 400
        assert response.json()["detail"] == "No signature"
        mock_verify.assert_not_called()
        mock_parse.assert_not_called()

    async def test_missing_header_with_garbage_body(self, client: AsyncClient):
        response = await _post(client, b"\x00not-json", signature=None)
        assert response.status_code == 400
        assert response.json()["detail"] == "No signature"

    async def test_get_not_allowed(self, client: AsyncClient):
        response = await client.get(URL)
        assert response.status_code == 405


class TestSignatureVerification:
    """Verification runs over the exact raw bytes."""

    async def test_valid_signature_acknowledged(self, client: AsyncClient, sign):
        body = _event_body(customer_email="buyer@example.com", amount_total=1000)
        response = await _post(client, body, sign(body))
        assert response.status_code == 200
        assert response.json() == {"received": True}

    async def test_mutated_body_rejected(self, client: AsyncClient, sign):
        body = _event_body(amount_total=1000)
        signature = sign(body)
        tampered = body.replace(b"1000", b"9000")
        assert tampered != body

        response = await _post(client, tampered, signature)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    async def test_mutated_signature_rejected(self, client: AsyncClient, sign):
        body = _event_body()
        signature = sign(body)
        last = signature[-1]
        tampered = signature[:-1] + ("0" if last != "0" else "1")

        response = await _post(client, body, tampered)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    async def test_reserialized_json_rejected(self, client: AsyncClient, sign):
        """Same event, different bytes: the signature no longer matches."""
        body = _event_body()
        signature = sign(body)
        reserialized = json.dumps(json.loads(body), indent=2).encode()

        response = await _post(client, reserialized, signature)
        assert response.status_code == 400

    async def test_wrong_secret_rejected(self, client: AsyncClient, sign):
        body = _event_body()
        response = await _post(client, body, sign(body, secret="whsec_someone_else"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    async def test_stale_timestamp_rejected(self, client: AsyncClient, sign):
        body = _event_body()
        stale = int(time.time()) - 3600
        response = await _post(client, body, sign(body, timestamp=stale))
        assert response.status_code == 400

    async def test_malformed_header_rejected(self, client: AsyncClient):
        response = await _post(client, _event_body(), "not-a-stripe-header")
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    async def test_unconfigured_secret_rejected(self, client: AsyncClient, sign):
        settings = get_settings().model_copy(update={"stripe_webhook_secret": ""})
        app.dependency_overrides[get_settings] = lambda: settings

        body = _event_body()
        response = await _post(client, body, sign(body))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    async def test_signed_non_json_is_invalid_payload(self, client: AsyncClient, sign):
        body = b"definitely not json"
        response = await _post(client, body, sign(body))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload"

    async def test_signed_envelope_without_type_is_invalid_payload(self, client: AsyncClient, sign):
        body = json.dumps({"id": "evt_1", "data": {"object": {}}}).encode()
        response = await _post(client, body, sign(body))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload"

    async def test_signed_non_utf8_is_invalid_payload(self, client: AsyncClient, sign):
        body = b"\xff\xfe\x00"
        response = await _post(client, body, sign(body))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid payload"

    async def test_signed_event_missing_fields_acknowledged(self, client: AsyncClient, sign):
        hook = AsyncMock()
        register_hook("invoice_paid", hook)

        body = json.dumps(
            {"id": "evt_1", "type": "invoice.paid", "data": {"object": {"amount_paid": 100}}}
        ).encode()
        response = await _post(client, body, sign(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        hook.assert_not_awaited()


class TestDispatch:
    """Verified events are dispatched and always acknowledged."""

    @pytest.mark.parametrize(
        "event_type",
        [
            "checkout.session.completed",
            "customer.subscription.created",
            "customer.subscription.updated",
            "customer.subscription.deleted",
            "invoice.paid",
            "invoice.payment_failed",
        ],
    )
    async def test_handled_types_acknowledged(self, client: AsyncClient, sign, event_type):
        body = _event_body(event_type, id="obj_123", status="active")
        response = await _post(client, body, sign(body))
        assert response.status_code == 200
        assert response.json() == {"received": True}

    async def test_unknown_type_acknowledged_without_side_effects(
        self, client: AsyncClient, sign
    ):
        hooks = {kind: AsyncMock() for kind in EVENT_KINDS if kind != "unhandled"}
        for kind, hook in hooks.items():
            register_hook(kind, hook)

        body = _event_body("customer.tax_id.created", id="txi_123")
        response = await _post(client, body, sign(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}
        for hook in hooks.values():
            hook.assert_not_awaited()

    async def test_hook_receives_parsed_event(self, client: AsyncClient, sign):
        hook = AsyncMock()
        register_hook("invoice_paid", hook)

        body = _event_body("invoice.paid", id="in_hooked", amount_paid=2900)
        response = await _post(client, body, sign(body))

        assert response.status_code == 200
        event = hook.await_args.args[0]
        assert event.invoice_id == "in_hooked"
        assert event.amount_paid == 2900

    async def test_hook_failure_returns_500(self, client: AsyncClient, sign):
        register_hook("checkout_completed", AsyncMock(side_effect=RuntimeError("boom")))

        body = _event_body()
        response = await _post(client, body, sign(body))

        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook processing failed"
