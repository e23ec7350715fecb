"""
HTTP client for the primary reservation store.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from pendulum import Date, DateTime

from ..domain.exceptions import StoreConflict, StoreUnreachable, StoreWriteUnconfirmed
from ..domain.models import ClassDefinition, Reservation

logger = logging.getLogger(__name__)


class HttpReservationStore:
    """
    Client for the reservation API.

    Endpoints:
        GET  /api/classes
        GET  /api/reservations?studentId=...&date=YYYY-MM-DD
        POST /api/reservations  {studentId, classId, startISO, endISO}

    A 409 answer is a definite rejection (``StoreConflict``). Everything
    else that is not a usable 2xx answer, including transport errors and
    timeouts, is reported as ``StoreUnreachable``. A write whose answer
    times out is reported as ``StoreWriteUnconfirmed``.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the store client.

        Args:
            base_url: API root, e.g. "https://reservas.example.com"
            timeout_seconds: Per-request timeout
            session: Optional preconfigured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json"
        }

    async def list_classes(self) -> List[ClassDefinition]:
        data = await asyncio.to_thread(self._request, "GET", "/api/classes")
        if not isinstance(data, list):
            raise StoreUnreachable("Class list response is not a list")

        classes: List[ClassDefinition] = []
        for item in data:
            try:
                classes.append(ClassDefinition.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Could not parse class entry %r: %s", item, e)
        return classes

    async def list_reservations(self, subject_id: str, day: Date) -> List[Reservation]:
        """
        Get a subject's reservations for one calendar date.

        Args:
            subject_id: Student/user identifier
            day: Calendar date

        Returns:
            Reservations returned by the API

        Raises:
            StoreUnreachable: If the API cannot be used
        """
        data = await asyncio.to_thread(
            self._request,
            "GET",
            "/api/reservations",
            params={"studentId": subject_id, "date": day.isoformat()}
        )
        if not isinstance(data, list):
            raise StoreUnreachable("Reservation list response is not a list")

        return self._parse_reservations(data)

    async def create_reservation(
        self,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime
    ) -> Reservation:
        payload = {
            "studentId": subject_id,
            "classId": class_id,
            "startISO": start.to_iso8601_string(),
            "endISO": end.to_iso8601_string(),
        }
        data = await asyncio.to_thread(self._request, "POST", "/api/reservations", json=payload)
        if not isinstance(data, dict) or "id" not in data:
            raise StoreUnreachable("Create response does not carry a reservation id")

        # The API may echo only the id; fill the rest from what was sent.
        try:
            return Reservation.from_dict({**payload, **data})
        except (KeyError, ValueError) as e:
            raise StoreUnreachable(f"Could not parse created reservation: {e}") from e

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"

        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                timeout=self.timeout_seconds,
                **kwargs
            )
        except requests.exceptions.ReadTimeout as e:
            if method == "GET":
                raise StoreUnreachable(f"Reservation API request timed out: {e}") from e
            # The request went out; the API may have stored it.
            raise StoreWriteUnconfirmed(f"Reservation API did not confirm the write: {e}") from e
        except requests.exceptions.RequestException as e:
            raise StoreUnreachable(f"Reservation API request failed: {e}") from e

        if response.status_code == 409:
            raise StoreConflict(f"Reservation API rejected the request: {response.text}")

        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise StoreUnreachable(f"Reservation API error: {e}") from e
        except ValueError as e:
            raise StoreUnreachable(f"Reservation API returned invalid JSON: {e}") from e

    def _parse_reservations(self, rows: List[Dict[str, Any]]) -> List[Reservation]:
        reservations: List[Reservation] = []

        for row in rows:
            try:
                reservations.append(Reservation.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Could not parse reservation %r: %s", row, e)
                continue

        return reservations
