"""
Token service.

Holds (or receives) the long-lived provider key and mints short-lived realtime
session tokens for the Voice Session gateway.
"""
