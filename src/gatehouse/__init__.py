"""Gatehouse: identity and trust boundary for the workforce administration backend.

This package decides who an inbound caller is before any business logic runs:
external identity providers for people, account linking, server-side sessions
and webservice credentials for machine clients.
"""

__version__ = "0.1.0"
