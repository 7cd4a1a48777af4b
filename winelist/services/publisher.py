"""
Publishing a generated wine list as an Airtable attachment.

Attachments cannot be set when a record is created, so publishing is a
sequence of steps against an eventually consistent API:

    1. validate parameters
    2. resolve the source file (local path or http(s) URL)
    3. create the wine list record without the attachment
    4. wait, then re-read the record to confirm it exists
    5. upload the file to the attachment field
    6. wait, then re-read the record and verify the attachment is there

Every failure is raised as a ``PublishError`` tagged with its step.
"""

from datetime import date, datetime
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Union
from urllib.parse import unquote, urlparse

import httpx

from winelist.config.settings import Settings, get_settings
from winelist.models.schemas import Attachment, PublishedRecord
from winelist.services.airtable_client import MAX_UPLOAD_BYTES, AirtableClient, guess_content_type
from winelist.utils.errors import (
    AirtableNotFoundError,
    AirtableRequestError,
    AppError,
    AttachmentTooLargeError,
    AttachmentVerificationError,
    InputFormatError,
    PublishError,
    PublishStep,
)
from winelist.utils.logger import get_logger
from winelist.utils.propagation import PropagationStrategy, await_propagation, build_propagation_strategy

logger = get_logger(__name__)

VENUE_LINK_FIELD = "Enoteca"
DATE_FIELD = "Data"

CREATE_FORBIDDEN_HINTS = [
    "the token may not have write access to the target table (wrong table id?)",
    "a field name in the payload may not exist in the target table",
    "the token may be expired or revoked",
]
UPLOAD_NOT_FOUND_HINT = "use the attachment field id (fld...) instead of its display name"


def published_record_fields(venue_id: str, on: Union[date, datetime, str]) -> dict[str, Any]:
    """Fields of a new wine list record: the venue link and the ISO date."""
    return {VENUE_LINK_FIELD: [venue_id], DATE_FIELD: iso_date(on)}


def iso_date(value: Union[date, datetime, str]) -> str:
    """Normalize a date or timestamp to ISO-8601."""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    text = str(value).strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text).isoformat()
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError as e:
        raise InputFormatError(f"Invalid date {value!r}, expected ISO-8601") from e


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _attachments(record: Optional[dict], field: str) -> Any:
    return ((record or {}).get("fields") or {}).get(field)


def _has_id(record: Optional[dict]) -> bool:
    return bool(record and record.get("id"))


def _has_attachments(record: Optional[dict], field: str) -> bool:
    # An empty attachment field is omitted from the response entirely.
    value = _attachments(record, field)
    return isinstance(value, list) and len(value) > 0


class AttachmentPublisher:
    """Creates a wine list record and attaches a generated document to it."""

    def __init__(
        self,
        client: AirtableClient,
        settings: Optional[Settings] = None,
        strategy: Optional[PropagationStrategy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client
        self.settings = settings or client.settings or get_settings()
        self.strategy = strategy or build_propagation_strategy(self.settings)
        self._http = http_client

    async def publish(
        self,
        target_table: str,
        linked_id: str,
        on: Union[date, datetime, str],
        attachment_field: str,
        source: Union[str, Path],
        filename: Optional[str] = None,
    ) -> PublishedRecord:
        """
        Create a record linked to ``linked_id`` and upload ``source`` to it.

        Args:
            target_table: Wine list table id or name.
            linked_id: Venue record id stored in the venue link field.
            on: Date stored in the date field.
            attachment_field: Attachment field id (preferred) or name.
            source: Local path or http(s) URL of the file.
            filename: Attachment filename; defaults to the source basename.

        Raises:
            PublishError: Any step failed; ``step`` names which one.
        """
        fields = self._validate(target_table, linked_id, on, attachment_field, source)
        content, filename = await self._resolve_source(str(source), filename)

        record_id = await self._create(target_table, fields)
        by_field_id = attachment_field.startswith("fld")

        async def fetch() -> dict[str, Any]:
            return await self.client.get_record(
                target_table,
                record_id,
                return_fields_by_field_id=by_field_id,
            )

        try:
            confirmed = await await_propagation(fetch, _has_id, self.strategy)
        except AppError as e:
            raise PublishError(
                f"Created record {record_id} could not be read back: {e.message}",
                step=PublishStep.CONFIRM_RECORD,
                details={"record_id": record_id, **e.details},
            ) from e
        if not _has_id(confirmed):
            raise PublishError(
                f"Created record {record_id} was read back without an id",
                step=PublishStep.CONFIRM_RECORD,
                details={"record_id": record_id},
            )

        await self._upload(record_id, attachment_field, content, filename)

        try:
            record = await await_propagation(
                fetch,
                lambda r: _has_attachments(r, attachment_field),
                self.strategy,
            )
        except AppError as e:
            raise PublishError(
                f"Record {record_id} could not be re-read after upload: {e.message}",
                step=PublishStep.VERIFY_ATTACHMENT,
                details={"record_id": record_id, **e.details},
            ) from e

        value = _attachments(record, attachment_field)
        if not _has_attachments(record, attachment_field):
            raise AttachmentVerificationError(
                f"Attachment field '{attachment_field}' has no attachment after uploading '{filename}'",
                details={
                    "record_id": record_id,
                    "field": attachment_field,
                    "filename": filename,
                    "available_fields": sorted(((record or {}).get("fields") or {}).keys()),
                    "observed_value": value,
                },
            )

        logger.info(
            "Attachment published",
            record_id=record_id,
            field=attachment_field,
            filename=filename,
            attachments=len(value),
        )
        return PublishedRecord(
            id=record_id,
            created_time=record.get("createdTime"),
            fields=record.get("fields") or {},
            attachment_field=attachment_field,
            attachments=[Attachment.model_validate(a) for a in value if isinstance(a, dict)],
            filename=filename,
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self, target_table, linked_id, on, attachment_field, source) -> dict[str, Any]:
        params = {
            "target_table": target_table,
            "linked_id": linked_id,
            "date": on,
            "attachment_field": attachment_field,
            "source": source,
        }
        missing = [name for name, value in params.items() if value is None or str(value).strip() == ""]
        if missing:
            raise PublishError(
                f"Missing required parameter(s): {', '.join(missing)}",
                step=PublishStep.VALIDATE_INPUT,
                details={"missing": missing},
            )
        try:
            return published_record_fields(linked_id, on)
        except InputFormatError as e:
            raise PublishError(e.message, step=PublishStep.VALIDATE_INPUT, details={"date": str(on)}) from e

    async def _resolve_source(self, source: str, filename: Optional[str]) -> tuple[bytes, str]:
        try:
            if _is_url(source):
                content = await self._download(source)
                default_name = unquote(PurePosixPath(urlparse(source).path).name) or "attachment"
            else:
                path = Path(source)
                size = path.stat().st_size
                if size > MAX_UPLOAD_BYTES:
                    raise AttachmentTooLargeError(
                        f"{path.name} is {size} bytes; the upload limit is {MAX_UPLOAD_BYTES} bytes",
                        details={"size": size, "limit": MAX_UPLOAD_BYTES},
                    )
                content = path.read_bytes()
                default_name = path.name
        except (AppError, OSError, httpx.HTTPError) as e:
            raise PublishError(
                f"Cannot read attachment source {source}: {e}",
                step=PublishStep.RESOLVE_SOURCE,
                details={"source": source},
            ) from e

        if len(content) > MAX_UPLOAD_BYTES:
            raise PublishError(
                f"Attachment is {len(content)} bytes; the upload limit is {MAX_UPLOAD_BYTES} bytes",
                step=PublishStep.RESOLVE_SOURCE,
                details={"source": source, "size": len(content), "limit": MAX_UPLOAD_BYTES},
            )
        return content, filename or default_name

    async def _download(self, url: str) -> bytes:
        if self._http is not None:
            response = await self._http.get(url, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=self.settings.request_timeout_seconds) as http:
                response = await http.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content

    async def _create(self, target_table: str, fields: dict[str, Any]) -> str:
        try:
            created = await self.client.create_record(target_table, fields)
        except AppError as e:
            hints = []
            if isinstance(e, AirtableRequestError) and e.status == 403:
                hints = list(CREATE_FORBIDDEN_HINTS)
            raise PublishError(
                f"Failed to create record in {target_table}: {e.message}",
                step=PublishStep.CREATE_RECORD,
                details={"table": target_table, "fields": fields, **e.details},
                hints=hints,
            ) from e

        record_id = created.get("id")
        logger.info("Wine list record created", table=target_table, record_id=record_id)
        return record_id

    async def _upload(self, record_id: str, field: str, content: bytes, filename: str) -> None:
        try:
            await self.client.upload_attachment(
                record_id,
                field,
                content,
                filename,
                content_type=guess_content_type(filename),
            )
        except AppError as e:
            status = getattr(e, "status", None)
            hints = [UPLOAD_NOT_FOUND_HINT] if isinstance(e, AirtableNotFoundError) else []
            raise PublishError(
                f"Attachment upload failed{f' ({status})' if status else ''}: {e.message}",
                step=PublishStep.UPLOAD_ATTACHMENT,
                details={"record_id": record_id, "field": field, "filename": filename, "status": status},
                hints=hints,
            ) from e
