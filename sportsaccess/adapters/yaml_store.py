"""
Durable local reservation store, used when the primary store is unreachable.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import shutil
import string
import threading
from pathlib import Path
from typing import Any, Dict, List, Sequence

import pendulum
import yaml
from pendulum import Date, DateTime

from ..domain.exceptions import StoreUnreachable
from ..domain.models import ClassDefinition, Reservation

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


class YamlReservationStore:
    """
    Reservation store backed by a single YAML list on disk.

    Rows use the same wire keys as the HTTP API. ``startISO`` is written in
    the store's timezone so a subject's day is selected by its date prefix.
    """

    def __init__(
        self,
        path: str | Path,
        timezone: str = "America/Santiago",
        classes: Sequence[ClassDefinition] = ()
    ) -> None:
        self.path = Path(path)
        self.timezone = timezone
        self._classes = list(classes)
        self._lock = threading.Lock()

    async def list_classes(self) -> List[ClassDefinition]:
        return list(self._classes)

    async def list_reservations(self, subject_id: str, day: Date) -> List[Reservation]:
        return await asyncio.to_thread(self._list_reservations, subject_id, day)

    async def create_reservation(
        self,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime
    ) -> Reservation:
        return await asyncio.to_thread(self._create_reservation, subject_id, class_id, start, end)

    def _list_reservations(self, subject_id: str, day: Date) -> List[Reservation]:
        prefix = day.isoformat()
        with self._lock:
            rows = self._read_rows()

        reservations: List[Reservation] = []
        for row in rows:
            if str(row.get("studentId")) != subject_id or not str(row.get("startISO", "")).startswith(prefix):
                continue
            try:
                reservations.append(Reservation.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable reservation %r in %s: %s", row.get("id"), self.path.name, e)
        return reservations

    def _create_reservation(
        self,
        subject_id: str,
        class_id: str,
        start: DateTime,
        end: DateTime
    ) -> Reservation:
        reservation = Reservation(
            id=_new_reservation_id(),
            subject_id=subject_id,
            class_id=class_id,
            start=pendulum.instance(start).in_timezone(self.timezone),
            end=pendulum.instance(end).in_timezone(self.timezone),
        )
        with self._lock:
            rows = self._read_rows()
            rows.append(reservation.to_dict())
            self._write_rows(rows)

        logger.info("Stored reservation %s locally in %s", reservation.id, self.path)
        return reservation

    def _read_rows(self) -> List[Dict[str, Any]]:
        try:
            payload = yaml.safe_load(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_file(error)
            return []
        except OSError as error:
            raise StoreUnreachable(f"Failed to read fallback store {self.path}: {error}") from error

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_file(ValueError("top-level YAML is not a list"))
            return []

        sanitized: List[Dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict) and {"id", "studentId", "classId", "startISO", "endISO"} <= row.keys():
                sanitized.append(row)
            else:
                logger.warning("Skipping malformed row %d in %s", index, self.path.name)
        return sanitized

    def _write_rows(self, rows: List[Dict[str, Any]]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(self.path)
        except OSError as error:
            raise StoreUnreachable(f"Failed to write fallback store {self.path}: {error}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_file(self, error: Exception) -> None:
        timestamp = pendulum.now().format("YYYYMMDDHHmmss")
        backup_path = self.path.with_name(f"{self.path.stem}.corrupt.{timestamp}{self.path.suffix}")
        try:
            shutil.move(str(self.path), backup_path)
        except OSError as move_error:
            raise StoreUnreachable(f"Fallback store {self.path} is corrupt and could not be moved aside") from move_error

        logger.warning("Fallback store %s was corrupt (%s); moved to %s", self.path.name, error, backup_path.name)


def _new_reservation_id() -> str:
    return "rsv_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
