"""Click callback endpoint."""

from __future__ import annotations

from django.conf import settings
from rest_framework.request import Request
from rest_framework.response import Response

from modules.payments.auth import test_mode_active
from modules.payments.click.services import ClickMerchantService
from modules.payments.views import GatewayWebhookView, build_transition_service


def build_click_service() -> ClickMerchantService:
    return ClickMerchantService(
        transitions=build_transition_service(),
        service_id=settings.CLICK_SERVICE_ID,
        secret_key=settings.CLICK_SECRET_KEY,
        test_mode=test_mode_active("click"),
    )


class ClickWebhookView(GatewayWebhookView):
    """POST /api/v1/payments/click/webhook/

    Handles both PREPARE (``action=0``) and COMPLETE (``action=1``).
    Always answers HTTP 200; failures are encoded in ``error``.
    """

    def post(self, request: Request) -> Response:
        return Response(build_click_service().handle(self.payload(request)))
