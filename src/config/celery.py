"""
Celery application for the storefront payments service.

DJANGO_SETTINGS_MODULE is set before the app is created so Celery reads
the Django settings (CELERY_ prefix).  The only task today is the
Telegram paid-order notification.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("storefront_payments")

# Django settings with the CELERY_ prefix
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up tasks.py from every installed app
app.autodiscover_tasks()
