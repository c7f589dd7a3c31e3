import structlog
from django.apps import AppConfig

logger = structlog.get_logger(__name__)


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.payments"
    label = "payments"

    def ready(self) -> None:
        from modules.payments.auth import (
            TEST_MODE_SETTINGS,
            test_mode_active,
            test_mode_requested,
        )

        for provider, setting_name in TEST_MODE_SETTINGS.items():
            if not test_mode_requested(provider):
                continue
            if test_mode_active(provider):
                logger.warning(
                    "payments.test_mode_enabled",
                    provider=provider,
                    setting=setting_name,
                    detail="!!! caller verification DISABLED - never use in production !!!",
                )
            else:
                logger.error(
                    "payments.test_mode_ignored",
                    provider=provider,
                    setting=setting_name,
                    detail="set PAYMENTS_ALLOW_TEST_MODE=True to honour it",
                )
