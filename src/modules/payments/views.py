"""Shared base for gateway callback views."""

from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.parsers import FormParser, JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.views import APIView

from modules.inventory.repositories import StockDjangoRepository
from modules.inventory.services import StockService
from modules.notifications.services import get_notifier
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import PaymentTransitionService


def build_transition_service() -> PaymentTransitionService:
    return PaymentTransitionService(
        order_repository=OrderDjangoRepository(),
        notifier=get_notifier(),
        stock_deductor=StockService(StockDjangoRepository()),
    )


class GatewayWebhookView(APIView):
    """Callbacks authenticate the gateway themselves.

    Session / CSRF authentication, permissions and throttling are off:
    gateways retry on any non-protocol reply, so every request must reach
    the provider service and be answered in the provider's own format.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []
    parser_classes = [JSONParser, FormParser]

    @staticmethod
    def payload(request: Request) -> Optional[Dict[str, Any]]:
        """Request body as a plain dict; ``None`` when it is not an object."""
        try:
            data = request.data
        except (ParseError, UnsupportedMediaType):
            return None
        if hasattr(data, "dict"):
            return data.dict()
        return data if isinstance(data, dict) else None
