"""
Tests for the HTTP and YAML reservation store adapters.
"""

import asyncio

import pendulum
import pytest
import requests

from sportsaccess.adapters.http_store import HttpReservationStore
from sportsaccess.adapters.yaml_store import YamlReservationStore
from sportsaccess.domain.exceptions import StoreConflict, StoreUnreachable, StoreWriteUnconfirmed
from sportsaccess.domain.models import ClassDefinition

TZ = "America/Santiago"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


class FakeSession:
    """Replays canned responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _http_store(*responses):
    session = FakeSession(*responses)
    return HttpReservationStore("https://api.example.com/", timeout_seconds=3, session=session), session


class TestHttpReservationStore:
    """Tests for HttpReservationStore."""

    def test_list_classes(self):
        store, session = _http_store(FakeResponse(payload=[
            {"id": "gim", "name": "Gimnasio", "durationMinutes": 60},
            {"id": "broken"},
        ]))

        classes = asyncio.run(store.list_classes())

        assert classes == [ClassDefinition(id="gim", name="Gimnasio", duration_minutes=60)]
        assert session.calls[0]["url"] == "https://api.example.com/api/classes"
        assert session.calls[0]["timeout"] == 3

    def test_list_reservations_sends_subject_and_date(self):
        store, session = _http_store(FakeResponse(payload=[
            {
                "id": "1",
                "studentId": "uai1",
                "classId": "gim",
                "startISO": "2025-10-03T10:00:00.000Z",
                "endISO": "2025-10-03T11:00:00.000Z",
            },
            {"id": "2", "studentId": "uai1"},
        ]))

        reservations = asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3)))

        assert [r.id for r in reservations] == ["1"]
        assert session.calls[0]["method"] == "GET"
        assert session.calls[0]["params"] == {"studentId": "uai1", "date": "2025-10-03"}

    def test_create_reservation(self):
        store, session = _http_store(FakeResponse(status_code=201, payload={"id": "srv-9"}))
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        reservation = asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))

        assert reservation.id == "srv-9"
        assert reservation.start == start
        body = session.calls[0]["json"]
        assert body["studentId"] == "uai1"
        assert body["classId"] == "gim"
        assert body["startISO"].startswith("2025-10-03T07:00:00")

    def test_conflict_is_definite(self):
        store, _ = _http_store(FakeResponse(status_code=409, text="taken"))
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        with pytest.raises(StoreConflict):
            asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))

    @pytest.mark.parametrize("response", [
        FakeResponse(status_code=500),
        FakeResponse(status_code=404),
        FakeResponse(payload=ValueError("no json")),
        FakeResponse(payload={"not": "a list"}),
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.Timeout("slow"),
    ])
    def test_unusable_answers_are_unreachable(self, response):
        store, _ = _http_store(response)

        with pytest.raises(StoreUnreachable):
            asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3)))

    def test_create_without_id_is_unreachable(self):
        store, _ = _http_store(FakeResponse(payload={}))
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        with pytest.raises(StoreUnreachable):
            asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))

    def test_create_read_timeout_is_unconfirmed(self):
        """The POST went out, so a missing answer may still have been stored."""
        store, _ = _http_store(requests.exceptions.ReadTimeout("no answer"))
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        with pytest.raises(StoreWriteUnconfirmed):
            asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))

    def test_list_read_timeout_is_unreachable(self):
        store, _ = _http_store(requests.exceptions.ReadTimeout("no answer"))

        with pytest.raises(StoreUnreachable) as excinfo:
            asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3)))
        assert not isinstance(excinfo.value, StoreWriteUnconfirmed)



class TestYamlReservationStore:
    """Tests for the local fallback store."""

    def test_create_and_list(self, tmp_path):
        store = YamlReservationStore(tmp_path / "reservations.yaml", timezone=TZ)
        start = pendulum.datetime(2025, 10, 3, 7, 0, tz=TZ)

        async def scenario():
            created = await store.create_reservation("uai1", "gim", start, start.add(hours=1))
            await store.create_reservation("uai2", "gim", start, start.add(hours=1))
            await store.create_reservation("uai1", "fut", start.add(days=1), start.add(days=1, hours=1))
            return created, await store.list_reservations("uai1", pendulum.date(2025, 10, 3))

        created, listed = asyncio.run(scenario())

        assert created.id.startswith("rsv_")
        assert len(created.id) == 11
        assert listed == [created]

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "reservations.yaml"
        start = pendulum.datetime(2025, 10, 3, 9, 0, tz=TZ)
        created = asyncio.run(
            YamlReservationStore(path, timezone=TZ).create_reservation("uai1", "esc", start, start.add(minutes=90))
        )

        listed = asyncio.run(YamlReservationStore(path, timezone=TZ).list_reservations("uai1", start.date()))

        assert listed == [created]

    def test_date_prefix_uses_store_timezone(self, tmp_path):
        """02:00 UTC on the 4th is still the 3rd in Santiago."""
        store = YamlReservationStore(tmp_path / "reservations.yaml", timezone=TZ)
        start = pendulum.datetime(2025, 10, 4, 2, 0, tz="UTC")

        asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))

        assert len(asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3)))) == 1
        assert asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 4))) == []

    def test_missing_file_is_empty(self, tmp_path):
        store = YamlReservationStore(tmp_path / "absent.yaml", timezone=TZ)

        assert asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3))) == []

    def test_corrupt_file_is_moved_aside(self, tmp_path):
        path = tmp_path / "reservations.yaml"
        path.write_text("{not: [valid", encoding="utf-8")
        store = YamlReservationStore(path, timezone=TZ)

        assert asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3))) == []
        assert not path.exists()
        assert len(list(tmp_path.glob("reservations.corrupt.*.yaml"))) == 1

    def test_list_classes_returns_catalog(self, tmp_path):
        catalog = [ClassDefinition(id="gim", name="Gimnasio", duration_minutes=60)]
        store = YamlReservationStore(tmp_path / "reservations.yaml", timezone=TZ, classes=catalog)

        assert asyncio.run(store.list_classes()) == catalog

    @pytest.mark.parametrize("start_iso,end_iso", [
        ("2025-10-03Tbroken", "2025-10-03T08:00:00-03:00"),
        ("2025-10-03T09:00:00-03:00", "2025-10-03T08:00:00-03:00"),
    ])
    def test_unreadable_rows_are_skipped(self, tmp_path, start_iso, end_iso, caplog):
        path = tmp_path / "reservations.yaml"
        store = YamlReservationStore(path, timezone=TZ)
        start = pendulum.datetime(2025, 10, 3, 10, 0, tz=TZ)
        kept = asyncio.run(store.create_reservation("uai1", "gim", start, start.add(hours=1)))
        with path.open("a", encoding="utf-8") as handle:
            handle.write(
                "- id: rsv_bad\n"
                "  studentId: uai1\n"
                "  classId: gim\n"
                f"  startISO: '{start_iso}'\n"
                f"  endISO: '{end_iso}'\n"
            )

        reservations = asyncio.run(store.list_reservations("uai1", pendulum.date(2025, 10, 3)))

        assert [r.id for r in reservations] == [kept.id]
        assert "rsv_bad" in caplog.text
