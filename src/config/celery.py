"""
Celery application of the food order engine.

DJANGO_SETTINGS_MODULE is set before the app is instantiated so that
Celery reads its configuration from the Django settings (``CELERY_``
prefix), the beat schedule included.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("foodorder")

app.config_from_object("django.conf:settings", namespace="CELERY")

# Finds tasks.py in every installed app
app.autodiscover_tasks()
