"""
Adapters layer - Reservation store integrations (HTTP API, local YAML file).
"""

from .http_store import HttpReservationStore
from .yaml_store import YamlReservationStore

__all__ = ["HttpReservationStore", "YamlReservationStore"]
