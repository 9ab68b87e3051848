"""Metrionix integrations backend.

OAuth connections, per-platform metric sync and inbound webhooks for the
Metrionix agency dashboard.
"""
