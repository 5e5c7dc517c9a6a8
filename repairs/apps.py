"""
Repairs — Application Configuration
"""

from django.apps import AppConfig


class RepairsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'repairs'
    verbose_name = 'Repair Orders'
