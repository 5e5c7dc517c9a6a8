"""
Commerce — Application Configuration
"""

from django.apps import AppConfig


class CommerceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'commerce'
    verbose_name = 'Sales & Purchases'
