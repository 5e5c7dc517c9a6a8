"""
RepairShop — Celery Application

Workers discover tasks in every installed app; beat reads its schedule
from django-celery-beat (seeded from CELERY_BEAT_SCHEDULE).

@file config/celery.py
"""

import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

app = Celery('repairshop')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
