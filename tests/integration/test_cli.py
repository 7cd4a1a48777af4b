"""
Integration tests for the CLI using Click's CliRunner.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from winelist.main import cli
from winelist.models.schemas import GenerationResult, NormalizedWineEntry, PublishedRecord
from winelist.processing.assembler import assemble_document, serialize_document
from winelist.utils.errors import ConfigurationError, PipelineError, PublishError, PublishStep

VENUE_ID = "recVENUE000000001"

# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def cli_settings(settings):
    """Patch get_settings for all CLI commands."""
    with patch("winelist.main.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def generation_result(venue):
    document = assemble_document(
        [NormalizedWineEntry(name="Chianti Classico 2019", producer="Castello di Ama", zone="Chianti Classico",
                             price_eur=45.0, category="Rosso", region="Toscana")],
        venue,
        generated_on="2024-05-01",
    )
    return GenerationResult(
        run_id="run-1",
        venue=venue,
        document=document,
        document_yaml=serialize_document(document),
        summary={"valid": 1, "warning": 0, "invalid": 2, "categories": 1},
    )


@pytest.fixture
def mock_pipeline(generation_result):
    """Patches the pipeline class; yields the instance used inside ``async with``."""
    instance = MagicMock()
    instance.run = AsyncMock(return_value=generation_result)
    pipeline_cls = MagicMock()
    pipeline_cls.return_value.__aenter__.return_value = instance
    pipeline_cls.return_value.__aexit__.return_value = None

    with patch("winelist.main.WineListPipeline", pipeline_cls):
        yield instance

# =============================================================================
# Tests
# =============================================================================

def test_cli_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "generate" in result.output
    assert "validate-setup" in result.output


def test_generate_success(runner, mock_pipeline):
    result = runner.invoke(cli, ["generate", VENUE_ID, "--html-only", "--publish", "--date", "2024-05-01"])

    assert result.exit_code == 0, result.output
    assert "Wine list generated successfully" in result.output
    mock_pipeline.run.assert_awaited_once_with(
        VENUE_ID,
        publish=True,
        html_only=True,
        generated_on=date(2024, 5, 1),
    )


def test_generate_failure_exits_with_category(runner, mock_pipeline):
    cause = ConfigurationError("AIRTABLE_INV_TAB_ID is required but not configured", parameter="AIRTABLE_INV_TAB_ID")
    error = PipelineError(cause.message, stage="fetch_wines")
    error.__cause__ = cause
    mock_pipeline.run.side_effect = error

    result = runner.invoke(cli, ["generate", VENUE_ID])

    assert result.exit_code == 1
    assert "CONFIGURATION_ERROR" in result.output
    assert "fetch_wines" in result.output


def test_preview_prints_yaml(runner, mock_pipeline):
    result = runner.invoke(cli, ["preview", VENUE_ID])

    assert result.exit_code == 0, result.output
    assert "main_cover" in result.output
    assert "Chianti Classico 2019" in result.output
    mock_pipeline.run.assert_awaited_once_with(VENUE_ID, render=False)


def test_publish_command(runner, tmp_path, cli_settings):
    pdf = tmp_path / "carta.pdf"
    pdf.write_bytes(b"%PDF-1.7")

    publisher = MagicMock()
    publisher.publish = AsyncMock(return_value=PublishedRecord(
        id="recLIST0000000001", attachment_field="fldATTACHMENT001", filename="carta.pdf",
    ))
    with patch("winelist.main.AirtableClient") as client_cls, \
            patch("winelist.main.AttachmentPublisher", return_value=publisher):
        client_cls.return_value.__aenter__.return_value = MagicMock()
        result = runner.invoke(cli, ["publish", str(pdf), "--venue-id", VENUE_ID, "--date", "2024-05-01"])

    assert result.exit_code == 0, result.output
    assert "recLIST0000000001" in result.output
    publisher.publish.assert_awaited_once_with(
        cli_settings.airtable_wine_list_table,
        VENUE_ID,
        date(2024, 5, 1),
        cli_settings.airtable_wine_list_field,
        str(pdf),
        filename=None,
    )


def test_publish_command_reports_step_details(runner, tmp_path):
    pdf = tmp_path / "carta.pdf"
    pdf.write_bytes(b"%PDF-1.7")

    publisher = MagicMock()
    publisher.publish = AsyncMock(side_effect=PublishError(
        "Attachment upload failed (404): NOT_FOUND",
        step=PublishStep.UPLOAD_ATTACHMENT,
        details={"record_id": "recLIST0000000001"},
    ))
    with patch("winelist.main.AirtableClient") as client_cls, \
            patch("winelist.main.AttachmentPublisher", return_value=publisher):
        client_cls.return_value.__aenter__.return_value = MagicMock()
        result = runner.invoke(cli, ["publish", str(pdf), "--venue-id", VENUE_ID])

    assert result.exit_code == 1
    assert "upload_attachment" in result.output
    assert "recLIST0000000001" in result.output


def test_publish_command_missing_file(runner, tmp_path):
    result = runner.invoke(cli, ["publish", str(tmp_path / "missing.pdf"), "--venue-id", VENUE_ID])
    assert result.exit_code == 2


def test_validate_setup_passes(runner):
    result = runner.invoke(cli, ["validate-setup"])
    assert result.exit_code == 0, result.output
    assert "Pass" in result.output
    assert "Fail" not in result.output
    assert "Missing configuration" not in result.output


def test_validate_setup_reports_missing(runner, cli_settings):
    cli_settings.airtable_wine_list_field = None

    result = runner.invoke(cli, ["validate-setup"])

    assert result.exit_code == 1
    assert "AIRTABLE_WINE_LIST_FIELD_ID" in result.output
    assert "Missing configuration" in result.output
