"""
Observability for the realtime session core.

Structured envelope events (events.py) plus a bounded in-memory store
(event_store.py) that tests and operators can query by session_id.
"""
