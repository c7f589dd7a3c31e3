"""Gateway callback routes."""

from django.urls import include, path

urlpatterns = [
    path("click/", include("modules.payments.click.urls")),
    path("uzum/", include("modules.payments.uzum.urls")),
    path("payme/", include("modules.payments.payme.urls")),
]
