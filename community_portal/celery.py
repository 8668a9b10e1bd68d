"""Celery app: tarefas de reconciliação das subcontas Asaas (payments.tasks)."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "community_portal.settings.dev")

app = Celery("community_portal")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
