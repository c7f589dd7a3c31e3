"""Notification sink for paid orders.

The payment transition service depends only on ``INotifier``.  Concrete
sinks are chosen by ``get_notifier()`` from settings: Telegram when a bot
token and at least one chat id are configured, structured logging
otherwise.  ``NullNotifier`` records messages for tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, Sequence

import structlog
from django.conf import settings
from django.utils import timezone
from django.utils.html import escape

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


class INotifier(Protocol):
    def notify(self, message: str) -> None: ...


class NullNotifier:
    """Keeps messages in memory instead of sending them."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


class LoggingNotifier:
    def notify(self, message: str) -> None:
        logger.info("notification.logged", message=message)


class TelegramNotifier:
    """Fans a message out to every configured chat via Celery.

    ``enqueue`` defaults to the ``send_telegram_message`` task's
    ``delay`` so the webhook request never waits on Telegram.
    """

    def __init__(
        self,
        chat_ids: Sequence[str],
        enqueue: Optional[Callable[[str, str], object]] = None,
    ) -> None:
        self._chat_ids = [chat_id for chat_id in chat_ids if chat_id]
        if enqueue is None:
            from modules.notifications.tasks import send_telegram_message

            enqueue = send_telegram_message.delay
        self._enqueue = enqueue

    def notify(self, message: str) -> None:
        for chat_id in self._chat_ids:
            self._enqueue(chat_id, message)
        logger.info("notification.enqueued", chat_count=len(self._chat_ids))


def get_notifier() -> INotifier:
    chat_ids = [chat_id for chat_id in settings.TELEGRAM_CHAT_IDS if chat_id]
    if settings.TELEGRAM_BOT_TOKEN and chat_ids:
        return TelegramNotifier(chat_ids)
    return LoggingNotifier()


# ---------------------------------------------------------------------------
# Message formatting
# ---------------------------------------------------------------------------


def format_amount(amount_minor: int, currency: str = "UZS") -> str:
    """``5000050`` -> ``"50 000.50 UZS"``."""
    major, minor = divmod(int(amount_minor), 100)
    text = f"{major:,}".replace(",", " ")
    if minor:
        text = f"{text}.{minor:02d}"
    return f"{text} {currency}"


def build_paid_order_message(
    order: Order,
    provider_label: str,
    transaction_id: str,
    extra: Optional[Dict[str, str]] = None,
) -> str:
    """HTML message announcing a newly paid order."""
    lines = [
        "<b>New paid order</b>",
        "",
        f"<b>Order ID:</b> {order.id}",
        "<b>Payment Status:</b> Paid",
        f"<b>Provider:</b> {escape(provider_label)}",
        f"<b>Transaction ID:</b> {escape(str(transaction_id))}",
        "",
        "<b>Customer:</b>",
        f"• Name: {escape(order.customer_name or 'Not provided')}",
        f"• Phone: {escape(order.customer_phone or 'Not provided')}",
        f"• Address: {escape(order.customer_address or 'Not provided')}",
        "",
        "<b>Products:</b>",
    ]
    for item in order.items.all():
        variant = ", ".join(part for part in (item.size, item.color) if part)
        title = f"{item.name} ({variant})" if variant else item.name
        lines.append(f"• {escape(title)}")
        lines.append(
            f"  Qty: {item.quantity} | {format_amount(item.subtotal, order.currency)}"
        )

    lines += ["", f"<b>Total:</b> {format_amount(order.amount, order.currency)}"]
    for label, value in (extra or {}).items():
        if value:
            lines.append(f"<b>{escape(label)}:</b> {escape(str(value))}")
    lines += ["", f"<b>Time:</b> {timezone.now().isoformat()}"]
    return "\n".join(lines)
