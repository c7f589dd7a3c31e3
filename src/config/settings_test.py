"""Settings for the pytest run: no Redis, eager Celery, fixed gateway credentials."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

from config.settings import *  # noqa: E402,F401,F403

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

PAYMENTS_ALLOW_TEST_MODE = False

CLICK_SERVICE_ID = "12345"
CLICK_SECRET_KEY = "click-test-secret"
CLICK_TEST_MODE = False

UZUM_SERVICE_ID = "498"
UZUM_USERNAME = "uzum-test"
UZUM_PASSWORD = "uzum-test-password"
UZUM_TEST_MODE = False
UZUM_CREATE_TIMEOUT_MINUTES = 30

PAYME_MERCHANT_LOGIN = "Paycom"
PAYME_MERCHANT_KEY = "payme-test-key"
PAYME_TEST_MODE = False
PAYME_FISCAL_CATALOG = {}

TELEGRAM_BOT_TOKEN = ""
TELEGRAM_CHAT_IDS = []
