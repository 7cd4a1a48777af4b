"""
Async Airtable REST client.

Wraps the record endpoints used by the pipeline (list, get, create, delete)
and the attachment upload endpoint of the content API. Every non-success
response is raised as an ``AirtableRequestError`` subclass carrying status,
status text, parsed payload and URL.

Example:
    >>> async with AirtableClient(settings) as client:
    ...     records = await client.list_all_records(
    ...         "tblInventory", filter_by_formula=wine_list_formula("recVenue")
    ...     )
"""

from __future__ import annotations

import base64
from pathlib import PurePosixPath
from typing import Any, Mapping, Optional, Sequence

import httpx

from winelist.config.settings import Settings, get_settings
from winelist.utils.errors import (
    AirtableNetworkError,
    AmbiguousLookupError,
    AttachmentTooLargeError,
    InputFormatError,
    error_from_response,
)
from winelist.utils.logger import get_logger

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
MAX_CREATE_BATCH = 10
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
    ".zip": "application/zip",
    ".html": "text/html",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def guess_content_type(filename: str) -> str:
    """MIME type from the filename extension, ``application/octet-stream`` if unknown."""
    return CONTENT_TYPES.get(PurePosixPath(filename).suffix.lower(), "application/octet-stream")


# =============================================================================
# Filter formulas
# =============================================================================

def escape_formula_string(value: str) -> str:
    """Escape a value for use inside a double-quoted formula string."""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def field_ref(field: str) -> str:
    return "{" + field + "}"


def field_equals(field: str, value: Any) -> str:
    """``{Field} = "value"``"""
    return f'{field_ref(field)} = "{escape_formula_string(value)}"'


def link_contains(field: str, record_id: str) -> str:
    """Membership of a record id in a linked-record field."""
    return f'FIND("{escape_formula_string(record_id)}", ARRAYJOIN({field_ref(field)}))'


def is_truthy(field: str) -> str:
    return field_ref(field)


def and_(*clauses: str) -> str:
    parts = [clause for clause in clauses if clause]
    if len(parts) == 1:
        return parts[0]
    return "AND(" + ", ".join(parts) + ")"


def wine_list_formula(venue_id: str) -> str:
    """Wines flagged for the wine list and linked to the given venue."""
    return and_(is_truthy("Carta dei Vini"), link_contains("Enoteca", venue_id))


# =============================================================================
# Client
# =============================================================================

class AirtableClient:
    """
    Thin async client over the Airtable REST API.

    Credentials and the base id come from ``Settings`` and are checked right
    before each request, so a missing value raises ``ConfigurationError``
    without any network traffic.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        base_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._base_id = base_id
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.request_timeout_seconds, connect=10.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                transport=self._transport,
            )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AirtableClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def base_id(self) -> str:
        return self._base_id or self.settings.require("airtable_base_id")

    def _headers(self, with_body: bool) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.settings.require('airtable_auth_token')}"}
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _table_url(self, table: str, record_id: Optional[str] = None) -> str:
        if not table:
            raise InputFormatError("table id or name is required")
        url = f"{self.settings.airtable_api_base}/{self.base_id}/{table}"
        return f"{url}/{record_id}" if record_id else url

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Sequence[tuple[str, Any]]] = None,
        body: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON payload."""
        headers = self._headers(with_body=body is not None)
        await self.connect()

        logger.debug("Airtable request", method=method, url=url)
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=body,
                headers=headers,
            )
        except httpx.TransportError as e:
            raise AirtableNetworkError(f"Airtable request failed: {e}", url=url) from e

        payload: Any = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = {"raw": response.text}

        if not response.is_success:
            error = error_from_response(response, payload)
            logger.warning(
                "Airtable request failed",
                method=method,
                url=url,
                status=error.status,
                error=error.message,
            )
            raise error
        return payload

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def list_records_page(
        self,
        table: str,
        *,
        filter_by_formula: Optional[str] = None,
        view: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        page_size: Optional[int] = None,
        offset: Optional[str] = None,
    ) -> dict[str, Any]:
        """Fetch one page; the result carries ``records`` and, if more remain, ``offset``."""
        params: list[tuple[str, Any]] = [
            ("pageSize", min(page_size or self.settings.page_size, MAX_PAGE_SIZE)),
        ]
        if filter_by_formula:
            params.append(("filterByFormula", filter_by_formula))
        view = view or self.settings.airtable_view
        if view:
            params.append(("view", view))
        for name in fields or ():
            params.append(("fields[]", name))
        if offset:
            params.append(("offset", offset))

        payload = await self._request("GET", self._table_url(table), params=params)
        return payload if isinstance(payload, dict) else {"records": []}

    async def list_all_records(
        self,
        table: str,
        *,
        filter_by_formula: Optional[str] = None,
        view: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        page_size: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Follow ``offset`` cursors sequentially until the last page."""
        records: list[dict[str, Any]] = []
        offset: Optional[str] = None
        pages = 0
        while True:
            page = await self.list_records_page(
                table,
                filter_by_formula=filter_by_formula,
                view=view,
                fields=fields,
                page_size=page_size,
                offset=offset,
            )
            pages += 1
            records.extend(page.get("records") or [])
            offset = page.get("offset")
            if not offset:
                break

        logger.info("Fetched records", table=table, count=len(records), pages=pages)
        return records

    async def get_record(
        self,
        table: str,
        record_id: str,
        *,
        return_fields_by_field_id: bool = False,
    ) -> dict[str, Any]:
        if not record_id:
            raise InputFormatError("record_id is required")
        params = [("returnFieldsByFieldId", "true")] if return_fields_by_field_id else None
        return await self._request("GET", self._table_url(table, record_id), params=params)

    async def create_records(
        self,
        table: str,
        records: Sequence[Mapping[str, Any]],
        *,
        typecast: bool = False,
        return_fields_by_field_id: bool = False,
    ) -> dict[str, Any]:
        """
        Create up to 10 records in one call.

        Each element must have the ``{"fields": {...}}`` shape.
        """
        if not records:
            raise InputFormatError("records must be a non-empty list")
        if len(records) > MAX_CREATE_BATCH:
            raise InputFormatError(
                f"Airtable supports max {MAX_CREATE_BATCH} records per create request. "
                f"Received: {len(records)}"
            )
        for i, record in enumerate(records):
            if not isinstance(record, Mapping):
                raise InputFormatError(f"records[{i}] must be an object")
            if not isinstance(record.get("fields"), Mapping):
                raise InputFormatError(f"records[{i}].fields must be an object")

        body = {
            "records": [{"fields": dict(record["fields"])} for record in records],
            "typecast": typecast,
            "returnFieldsByFieldId": return_fields_by_field_id,
        }
        return await self._request("POST", self._table_url(table), body=body)

    async def create_record(
        self,
        table: str,
        fields: Mapping[str, Any],
        *,
        typecast: bool = False,
        return_fields_by_field_id: bool = False,
    ) -> dict[str, Any]:
        """Create a single record and return it."""
        if not isinstance(fields, Mapping):
            raise InputFormatError("fields must be an object")
        payload = await self.create_records(
            table,
            [{"fields": fields}],
            typecast=typecast,
            return_fields_by_field_id=return_fields_by_field_id,
        )
        created = (payload or {}).get("records") or []
        if not created:
            raise InputFormatError("Airtable create response contained no records")
        return created[0]

    async def delete_record(self, table: str, record_id: str) -> dict[str, Any]:
        if not record_id:
            raise InputFormatError("record_id is required")
        return await self._request("DELETE", self._table_url(table, record_id))

    async def find_record_id_by_field(
        self,
        table: str,
        field_name: str,
        value: Any,
        *,
        view: Optional[str] = None,
    ) -> Optional[str]:
        """
        Id of the single record whose field equals ``value``.

        Returns None when nothing matches and raises ``AmbiguousLookupError``
        when several records match.
        """
        if not field_name:
            raise InputFormatError("field_name is required")
        if value is None or value == "":
            raise InputFormatError("value is required")

        records = await self.list_all_records(
            table,
            filter_by_formula=field_equals(field_name, value),
            view=view,
        )
        if not records:
            logger.info("No record found", table=table, field=field_name, value=value)
            return None
        if len(records) > 1:
            raise AmbiguousLookupError(
                f"{len(records)} records in {table} have {field_name} = {value!r}",
                details={"record_ids": [r.get("id") for r in records]},
            )
        return records[0].get("id")

    # -------------------------------------------------------------------------
    # Attachments
    # -------------------------------------------------------------------------

    async def upload_attachment(
        self,
        record_id: str,
        field: str,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Upload ``content`` to an attachment field through the content API.

        ``field`` may be a field id (``fld...``) or a field name.
        """
        if len(content) > MAX_UPLOAD_BYTES:
            raise AttachmentTooLargeError(
                f"{filename} is {len(content)} bytes; the upload limit is {MAX_UPLOAD_BYTES} bytes",
                details={"size": len(content), "limit": MAX_UPLOAD_BYTES},
            )
        url = (
            f"{self.settings.airtable_content_base}/{self.base_id}/{record_id}/"
            f"{field}/uploadAttachment"
        )
        body = {
            "contentType": content_type or guess_content_type(filename),
            "file": base64.b64encode(content).decode("ascii"),
            "filename": filename,
        }
        logger.info("Uploading attachment", record_id=record_id, field=field, filename=filename, size=len(content))
        return await self._request("POST", url, body=body)
