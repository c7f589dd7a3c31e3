from django.urls import path

from modules.payments.uzum.constants import UzumOperation
from modules.payments.uzum.views import UzumCallbackView

urlpatterns = [
    path(
        f"{operation.value}/",
        UzumCallbackView.as_view(operation=operation),
        name=f"uzum-{operation.value}",
    )
    for operation in UzumOperation
]
