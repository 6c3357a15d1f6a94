"""
Shop App Configuration - Decoryy

Django app configuration for orders, sellers, commissions and the
settlement services that act on them.

Author: Decoryy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class ShopConfig(AppConfig):
    """
    Django AppConfig for the shop module.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "shop"
    verbose_name = "Shop"
