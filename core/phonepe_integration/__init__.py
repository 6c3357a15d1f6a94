"""
PhonePe Integration Package - Decoryy
=============================================================

This package centralizes all PhonePe-related logic for the Decoryy backend.

Current Scope
--------------------
- OAuth client-credentials token acquisition with caching (token_manager.py)
- HTTP client for Standard Checkout v2: checkout creation, order status,
  refunds and refund status (client.py)
- API endpoints (views.py):
  * Creating a checkout session for a new order
  * Receiving server-to-server webhooks
  * Verifying the browser callback after hosted checkout
  * Polling an order's payment status
  * Issuing refunds and checking refund status

Design Rationale
----------------
- All three reconciliation channels (webhook, callback, status poll) hand
  the verified outcome to `shop.services.settlement.SettlementReconciler`.
  This package only parses transport input, authenticates it and talks to
  PhonePe; it never mutates orders directly.
- The token cache and client are injectable objects with lazily-built
  module defaults, so tests can swap them without touching settings.

Structure
---------
- __init__.py      (this file)
- apps.py          → App configuration
- exceptions.py    → Payment exception hierarchy
- token_manager.py → OAuth token cache
- client.py        → PhonePe HTTP client
- webhooks.py      → Webhook authorization check
- serializers.py   → Request validation
- views.py         → API endpoints
- urls.py          → Routes

Author: Decoryy Development Team
Date: 2025-10-02
"""
