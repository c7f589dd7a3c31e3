"""Uzum Bank callback endpoints (one view class, five routes)."""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from modules.payments.auth import test_mode_active
from modules.payments.exceptions import GatewayAuthError
from modules.payments.uzum.constants import UzumError, UzumOperation
from modules.payments.uzum.responses import uzum_error
from modules.payments.uzum.services import UzumMerchantService
from modules.payments.views import GatewayWebhookView, build_transition_service


def build_uzum_service() -> UzumMerchantService:
    return UzumMerchantService(
        transitions=build_transition_service(),
        service_id=settings.UZUM_SERVICE_ID,
        username=settings.UZUM_USERNAME,
        password=settings.UZUM_PASSWORD,
        test_mode=test_mode_active("uzum"),
        create_timeout=timedelta(minutes=settings.UZUM_CREATE_TIMEOUT_MINUTES),
    )


class UzumCallbackView(GatewayWebhookView):
    """POST /api/v1/payments/uzum/<operation>/

    Bad credentials answer HTTP 401; every other outcome is HTTP 200 with
    the result encoded in ``status``.
    """

    operation: UzumOperation = UzumOperation.CHECK

    def post(self, request: Request) -> Response:
        service = build_uzum_service()
        try:
            service.authenticate(request.META.get("HTTP_AUTHORIZATION"))
        except GatewayAuthError:
            return Response(
                uzum_error(UzumError.UNAUTHORIZED),
                status=status.HTTP_401_UNAUTHORIZED,
            )
        return Response(service.handle(self.operation, self.payload(request)))
