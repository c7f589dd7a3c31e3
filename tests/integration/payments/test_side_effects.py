"""Side effects of a completed payment, seen through the webhooks.

- Stock is deducted exactly once, however often the gateway retries.
- A broken notification sink never changes the gateway's reply.
- With Telegram configured the paid-order message is delivered per chat.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests

from modules.inventory.models import Stock
from modules.notifications.services import LoggingNotifier
from modules.orders.constants import PaymentStatus
from modules.orders.models import Order

pytestmark = pytest.mark.integration

AMOUNT = 5_000_000
PAYME_URL = "/api/v1/payments/payme/webhook/"


@pytest.fixture()
def payme(api_client, basic_auth):
    api_client.credentials(HTTP_AUTHORIZATION=basic_auth("Paycom", "payme-test-key"))

    def _call(method, **params):
        response = api_client.post(
            PAYME_URL, {"id": 1, "method": method, "params": params}, format="json"
        )
        assert response.status_code == 200
        return response.json()

    return _call


def _pay(payme, order, tx="pm-1"):
    payme(
        "CreateTransaction",
        id=tx,
        time=0,
        amount=AMOUNT,
        account={"order_id": str(order.id)},
    )
    return payme("PerformTransaction", id=tx)


def _quantities(stock) -> dict:
    return {key: Stock.objects.get(pk=row.pk).quantity for key, row in stock.items()}


class TestStockDeduction:
    def test_deducted_once_across_retries(self, payme, order, stock):
        _pay(payme, order)
        payme("PerformTransaction", id="pm-1")
        payme("PerformTransaction", id="pm-1")

        assert _quantities(stock) == {"tshirt": 8, "tote": 0}
        tshirt = Stock.objects.get(pk=stock["tshirt"].pk)
        assert tshirt.notes == f"Deducted for order {order.id}: -2"

    def test_not_deducted_before_payment(self, payme, order, stock):
        payme(
            "CreateTransaction",
            id="pm-1",
            time=0,
            amount=AMOUNT,
            account={"order_id": str(order.id)},
        )
        assert _quantities(stock) == {"tshirt": 10, "tote": 1}

    def test_refund_does_not_restock(self, payme, order, stock):
        _pay(payme, order)
        payme("CancelTransaction", id="pm-1", reason=5)
        assert _quantities(stock) == {"tshirt": 8, "tote": 0}

    def test_missing_variant_does_not_block_payment(self, payme, order):
        body = _pay(payme, order)
        assert body["result"]["state"] == 2
        assert Order.objects.get(pk=order.pk).payment_status == PaymentStatus.COMPLETED


class TestNotificationFailures:
    def test_notifier_error_keeps_success_reply(self, payme, order, stock):
        with patch.object(
            LoggingNotifier, "notify", side_effect=RuntimeError("sink down")
        ) as notify:
            body = _pay(payme, order)

        notify.assert_called_once()
        assert body["result"]["state"] == 2
        assert Order.objects.get(pk=order.pk).payment_status == PaymentStatus.COMPLETED
        assert _quantities(stock) == {"tshirt": 8, "tote": 0}

    def test_notified_once_across_retries(self, payme, order):
        with patch.object(LoggingNotifier, "notify") as notify:
            _pay(payme, order)
            payme("PerformTransaction", id="pm-1")

        notify.assert_called_once()
        message = notify.call_args.args[0]
        assert "<b>Provider:</b> Payme" in message
        assert "<b>Payme transaction:</b> pm-1" in message


class TestTelegramDelivery:
    def test_message_sent_to_each_chat(self, payme, order, settings):
        settings.TELEGRAM_BOT_TOKEN = "123:abc"
        settings.TELEGRAM_CHAT_IDS = ["100", "200"]

        with patch(
            "modules.notifications.tasks.requests.post", return_value=MagicMock()
        ) as post:
            body = _pay(payme, order)

        assert body["result"]["state"] == 2
        assert post.call_count == 2
        chats = sorted(call.kwargs["json"]["chat_id"] for call in post.call_args_list)
        assert chats == ["100", "200"]
        text = post.call_args.kwargs["json"]["text"]
        assert "Cotton T-shirt (M, black)" in text
        assert "<b>Total:</b> 50 000 UZS" in text

    def test_delivery_failure_keeps_success_reply(self, payme, order, settings):
        settings.TELEGRAM_BOT_TOKEN = "123:abc"
        settings.TELEGRAM_CHAT_IDS = ["100"]

        with patch(
            "modules.notifications.tasks.requests.post",
            side_effect=requests.ConnectionError("offline"),
        ):
            body = _pay(payme, order)

        assert body["result"]["state"] == 2
