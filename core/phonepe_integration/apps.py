"""
PhonePe Integration AppConfig
=============================

Registers `core.phonepe_integration` with Django. The app has no models of
its own; it owns the PhonePe OAuth token cache, the HTTP client and the
checkout / webhook / callback / status / refund endpoints.

Operational notes
-----------------
- Nothing talks to PhonePe at startup. The token cache and the client are
  created lazily on first use, so management commands and migrations run
  without PhonePe credentials.

Author: Decoryy Development Team
Date: 2025-10-02
"""

from django.apps import AppConfig


class PhonePeIntegrationConfig(AppConfig):
    """
    App configuration for the `core.phonepe_integration` package.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "core.phonepe_integration"
    label = "phonepe_integration"
    verbose_name = "PhonePe Integration"
