"""Payme JSON-RPC endpoint."""

from __future__ import annotations

from django.conf import settings
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response

from modules.payments.auth import test_mode_active
from modules.payments.exceptions import GatewayAuthError
from modules.payments.payme.receipts import MappingFiscalCatalog, NullFiscalCatalog
from modules.payments.payme.services import PaymeMerchantService
from modules.payments.views import GatewayWebhookView, build_transition_service


def build_payme_service() -> PaymeMerchantService:
    entries = getattr(settings, "PAYME_FISCAL_CATALOG", None)
    catalog = MappingFiscalCatalog(entries) if entries else NullFiscalCatalog()
    return PaymeMerchantService(
        transitions=build_transition_service(),
        merchant_login=settings.PAYME_MERCHANT_LOGIN,
        merchant_key=settings.PAYME_MERCHANT_KEY,
        test_mode=test_mode_active("payme"),
        fiscal_catalog=catalog,
        default_ikpu=settings.PAYME_DEFAULT_IKPU,
        default_vat_percent=settings.PAYME_DEFAULT_VAT_PERCENT,
    )


class PaymeWebhookView(GatewayWebhookView):
    """POST /api/v1/payments/payme/webhook/

    Bad credentials answer HTTP 401 with error ``-32504``; every other
    outcome is HTTP 200 with a JSON-RPC ``result`` or ``error``.
    """

    def post(self, request: Request) -> Response:
        service = build_payme_service()
        payload = self.payload(request)
        try:
            service.authenticate(request.META.get("HTTP_AUTHORIZATION"))
        except GatewayAuthError:
            return Response(
                service.unauthorized(payload), status=status.HTTP_401_UNAUTHORIZED
            )
        return Response(service.handle(payload))
