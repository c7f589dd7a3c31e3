from django.urls import path

from modules.payments.payme.views import PaymeWebhookView

urlpatterns = [
    path("webhook/", PaymeWebhookView.as_view(), name="payme-webhook"),
]
