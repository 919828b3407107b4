"""
Fabric client adapters.

``paho_client`` and ``zenoh_session`` import their client libraries when
imported; the in-memory fabrics have no third-party dependency.
"""

from .memory import InMemoryBroker, InMemoryOverlay

__all__ = ["InMemoryBroker", "InMemoryOverlay"]
