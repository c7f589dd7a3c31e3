"""Asynchronous delivery of notifications to Telegram."""

import requests
import structlog
from celery import shared_task
from django.conf import settings

logger = structlog.get_logger(__name__)


@shared_task(name="notifications.send_telegram_message")
def send_telegram_message(chat_id, text):
    """Post *text* to one Telegram chat.

    Delivery is best effort: failures are logged and reported in the
    task result, never retried.
    """
    log = logger.bind(chat_id=chat_id)
    token = settings.TELEGRAM_BOT_TOKEN
    if not token:
        log.warning("telegram.not_configured")
        return {"status": "skipped", "chat_id": chat_id}

    url = f"{settings.TELEGRAM_API_URL}/bot{token}/sendMessage"
    try:
        response = requests.post(
            url,
            json={
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
            timeout=settings.TELEGRAM_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        log.error("telegram.delivery_failed", error=str(exc))
        return {"status": "failed", "chat_id": chat_id}

    log.info("telegram.delivered")
    return {"status": "sent", "chat_id": chat_id}
