import base64
import json
from typing import Any, Optional

import httpx
import pytest

from winelist.config.settings import Settings
from winelist.models.schemas import CleanedRecord, VenueInfo, ZoneDescriptor

VENUE_ID = "recVENUE000000001"
BASE_ID = "appBASE000000001"
INVENTORY_TABLE = "tblINVENTORY0001"
ZONE_TABLE = "tblZONES00000001"
VENUE_TABLE = "tblVENUES0000001"
WINE_LIST_TABLE = "tblWINELIST00001"
WINE_LIST_FIELD = "fldATTACHMENT001"


def wine_record(record_id: str, **overrides: Any) -> dict[str, Any]:
    """A complete wine inventory record."""
    fields = {
        "Vino + Annata": "Chianti Classico 2019",
        "Carta dei Vini": True,
        "Produttore": "Castello di Ama",
        "Zona": ["recZONECHIANTI01"],
        "Regione": "Toscana",
        "Tipologia": "Rosso",
        "Prezzo In Carta Testo": "45,00 €",
        "Lista Vitigni AI": {"value": "Sangiovese"},
        "Luogo di Produzione": "Gaiole in Chianti",
        "Affinamento AI": {"value": "12 mesi in botte"},
        "Alcolicità AI": {"value": "13,5%"},
        "Enoteca": [VENUE_ID],
    }
    fields.update(overrides)
    return {"id": record_id, "createdTime": "2024-05-01T10:00:00.000Z", "fields": fields}


@pytest.fixture
def settings(tmp_path):
    """Fully configured settings with no network delays."""
    return Settings(
        _env_file=None,
        AIRTABLE_AUTH_TOKEN="patTEST.secret-token",
        AIRTABLE_BASE_ID=BASE_ID,
        AIRTABLE_INV_TAB_ID=INVENTORY_TABLE,
        AIRTABLE_ZONE_TAB_ID=ZONE_TABLE,
        AIRTABLE_ENO_TAB_ID=VENUE_TABLE,
        AIRTABLE_WINE_LIST_TAB_ID=WINE_LIST_TABLE,
        AIRTABLE_WINE_LIST_FIELD_ID=WINE_LIST_FIELD,
        PROPAGATION_DELAY_SECONDS=0,
        OUTPUT_DIR=str(tmp_path / "out"),
        LOG_JSON=False,
    )


@pytest.fixture
def zone_mapping():
    return {
        "recZONECHIANTI01": ZoneDescriptor(
            id="recZONECHIANTI01", name="Chianti Classico", region="Toscana", country="Italia", priority=1
        ),
        "recZONEMONTALC01": ZoneDescriptor(
            id="recZONEMONTALC01", name="Montalcino", region="Toscana", country="Italia", priority=2
        ),
        "recZONEBOLGHERI1": ZoneDescriptor(
            id="recZONEBOLGHERI1", name="Bolgheri", region="Toscana", country="Italia", priority=None
        ),
    }


@pytest.fixture
def venue():
    return VenueInfo(
        id=VENUE_ID,
        name="Porgi l'Altra Pancia",
        description="Enoteca e cucina",
        logo_url="https://dl.airtable.com/logo.png",
        qr_code_url="https://dl.airtable.com/qr.png",
        digital_menu_url="https://example.com/menu",
    )


@pytest.fixture
def cleaned():
    """Factory turning field dicts into CleanedRecord objects."""
    def _make(record_id: Optional[str], **fields: Any) -> CleanedRecord:
        return CleanedRecord(id=record_id, fields=fields)
    return _make


# =============================================================================
# Fake Airtable backend
# =============================================================================

class FakeAirtable:
    """
    In-memory stand-in for the Airtable record and content APIs.

    Filter formulas are not evaluated: each table should only hold the
    records a test expects to be returned.
    """

    def __init__(self, tables: Optional[dict[str, list[dict]]] = None):
        self.tables: dict[str, list[dict]] = {name: list(records) for name, records in (tables or {}).items()}
        self.requests: list[httpx.Request] = []
        self.attachments_visible = True
        self.fail: dict[str, httpx.Response] = {}
        self._next_id = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def find(self, record_id: str) -> Optional[dict]:
        for records in self.tables.values():
            for record in records:
                if record.get("id") == record_id:
                    return record
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for key, response in self.fail.items():
            method, _, fragment = key.partition(" ")
            if request.method == method and fragment in request.url.path:
                return response

        parts = request.url.path.strip("/").split("/")
        if request.url.host == "content.airtable.com":
            return self._upload(request, parts)

        _, _base, table, *rest = parts
        if request.method == "GET" and rest:
            record = next((r for r in self.tables.get(table, []) if r.get("id") == rest[0]), None)
            if record is None:
                return httpx.Response(404, json={"error": {"type": "NOT_FOUND", "message": "Record not found"}})
            return httpx.Response(200, json=record)
        if request.method == "GET":
            return self._list(request, table)
        if request.method == "POST":
            return self._create(request, table)
        if request.method == "DELETE":
            self.tables[table] = [r for r in self.tables.get(table, []) if r.get("id") != rest[0]]
            return httpx.Response(200, json={"id": rest[0], "deleted": True})
        return httpx.Response(405)

    def _list(self, request: httpx.Request, table: str) -> httpx.Response:
        records = self.tables.get(table, [])
        page_size = int(request.url.params.get("pageSize", 100))
        start = int(request.url.params.get("offset", 0))
        payload: dict[str, Any] = {"records": records[start:start + page_size]}
        if start + page_size < len(records):
            payload["offset"] = str(start + page_size)
        return httpx.Response(200, json=payload)

    def _create(self, request: httpx.Request, table: str) -> httpx.Response:
        body = json.loads(request.content)
        created = []
        for item in body["records"]:
            self._next_id += 1
            record = {
                "id": f"recNEW{self._next_id:010d}",
                "createdTime": "2024-05-01T12:00:00.000Z",
                "fields": dict(item["fields"]),
            }
            self.tables.setdefault(table, []).append(record)
            created.append(record)
        return httpx.Response(200, json={"records": created})

    def _upload(self, request: httpx.Request, parts: list[str]) -> httpx.Response:
        _, _base, record_id, field, _ = parts
        record = self.find(record_id)
        if record is None:
            return httpx.Response(404, json={"error": {"type": "NOT_FOUND", "message": "Record not found"}})
        body = json.loads(request.content)
        attachment = {
            "id": "attUPLOADED00001",
            "url": f"https://dl.airtable.com/{body['filename']}",
            "filename": body["filename"],
            "size": len(base64.b64decode(body["file"])),
            "type": body["contentType"],
        }
        if self.attachments_visible:
            record["fields"][field] = [attachment]
        return httpx.Response(200, json={"id": record_id, "fields": {field: [attachment]}})


@pytest.fixture
def fake_airtable():
    """The FakeAirtable class, used as a factory taking initial tables."""
    return FakeAirtable


@pytest.fixture
def make_wine():
    """Factory for complete wine records; keyword overrides replace fields."""
    def _make(record_id: str, **overrides: Any) -> dict[str, Any]:
        return wine_record(record_id, **overrides)
    return _make


@pytest.fixture
def seeded_airtable(venue, make_wine):
    """Fake base holding a venue, three zones and four wines for it."""
    return FakeAirtable({
        VENUE_TABLE: [{
            "id": VENUE_ID,
            "createdTime": "2024-01-01T00:00:00.000Z",
            "fields": {
                "Nome": venue.name,
                "Descrizione": venue.description,
                "Logo": [{"id": "attLOGO", "url": venue.logo_url, "filename": "logo.png"}],
                "QR Code": [{"id": "attQR", "url": venue.qr_code_url, "filename": "qr.png"}],
                "Menu Digitale": venue.digital_menu_url,
            },
        }],
        ZONE_TABLE: [
            {"id": "recZONECHIANTI01", "fields": {"Nome Zona": "Chianti Classico", "Regione": "Toscana", "Priorità Zone": 1}},
            {"id": "recZONEMONTALC01", "fields": {"Nome Zona": "Montalcino", "Regione": "Toscana", "Priorità Zone": 2}},
            {"id": "recZONEBOLGHERI1", "fields": {"Nome Zona": "Bolgheri", "Regione": "Toscana"}},
        ],
        INVENTORY_TABLE: [
            make_wine("recWINE000000001", **{"Vino + Annata": "Brunello di Montalcino 2017", "Zona": ["recZONEMONTALC01"], "Produttore": "Biondi-Santi", "Prezzo In Carta Testo": "180 €"}),
            make_wine("recWINE000000002"),
            make_wine("recWINE000000003", **{"Vino + Annata": "Vermentino 2022", "Tipologia": "Bianco", "Zona": ["recZONEBOLGHERI1"], "Produttore": "Guado al Tasso", "Prezzo In Carta Testo": "32"}),
            make_wine("recWINE000000004", **{"Vino + Annata": "Senza Prezzo 2020", "Prezzo In Carta Testo": ""}),
        ],
        WINE_LIST_TABLE: [],
    })
