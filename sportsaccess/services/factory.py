"""
Wire a ReservationService from application configuration.
"""

from ..adapters.http_store import HttpReservationStore
from ..adapters.yaml_store import YamlReservationStore
from ..config import AppConfig
from .reservation_service import ReservationService


def build_service(config: AppConfig) -> ReservationService:
    """
    Build the service with the stores the configuration enables.

    The HTTP store is used when ``store.api_base_url`` is set; the YAML
    fallback when ``store.use_fallback`` is true.
    """
    catalog = config.class_catalog()

    primary = None
    if config.store.api_base_url:
        primary = HttpReservationStore(
            base_url=config.store.api_base_url,
            timeout_seconds=config.store.timeout_seconds,
        )

    fallback = None
    if config.store.use_fallback:
        fallback = YamlReservationStore(
            path=config.store.fallback_path,
            timezone=config.timezone,
            classes=catalog,
        )

    return ReservationService(
        schedule=config.schedule.to_schedule(),
        primary_store=primary,
        fallback_store=fallback,
        timezone=config.timezone,
        catalog=catalog,
        timeout_seconds=config.store.timeout_seconds,
    )
