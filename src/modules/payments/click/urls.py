from django.urls import path

from modules.payments.click.views import ClickWebhookView

urlpatterns = [
    path("webhook/", ClickWebhookView.as_view(), name="click-webhook"),
]
