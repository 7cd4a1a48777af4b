"""
Pipeline orchestrator using LangGraph.

Coordinates wine list generation for one venue:

    load_venue -> fetch_wines -> resolve_zones -> clean_records -> sort_records
        -> validate_records -> assemble_document -> render_document
        -> publish_document (only when publishing is requested)

Every node is timed and logged. A failing node aborts the run with a
PipelineError naming the node; the original exception is kept as its cause.
"""

import asyncio
import operator
import time
from datetime import date
from functools import wraps
from pathlib import Path
from typing import Annotated, Any, Callable, Literal, Optional, TypedDict
from uuid import uuid4

from langgraph.graph import END, StateGraph

from winelist.config.settings import Settings, get_settings
from winelist.models.schemas import (
    ClassificationResult,
    CleanedRecord,
    DocumentModel,
    GenerationRequest,
    GenerationResult,
    PublishedRecord,
    VenueInfo,
    ZoneMapping,
)
from winelist.processing.assembler import assemble_document, load_category_definitions, serialize_document
from winelist.processing.cleaner import clean_records
from winelist.processing.sorter import ZonePriorityPolicy, sort_records
from winelist.services.airtable_client import AirtableClient, wine_list_formula
from winelist.services.publisher import AttachmentPublisher
from winelist.services.validation_service import AirtableProducerResolver, ValidationService
from winelist.services.venue_service import VenueService
from winelist.services.zone_service import ZoneService
from winelist.utils.errors import InputFormatError, PipelineError
from winelist.utils.formatters import WineListRenderer, artifact_basename
from winelist.utils.logger import LogContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# Constants and Configuration
# =============================================================================

DEFAULT_NODE_TIMEOUT_SECONDS = 300
PUBLISH_TIMEOUT_SECONDS = 180


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class PipelineStateDict(TypedDict, total=False):
    """
    State shared by the graph nodes.

    Each node returns only the keys it produces; earlier values are never
    modified in place.
    """
    # Input
    run_id: str
    venue_id: str
    generated_on: str
    render: bool
    html_only: bool
    publish: bool

    # Step outputs
    venue: VenueInfo
    raw_records: list[dict]
    zone_mapping: ZoneMapping
    cleaned_records: list[CleanedRecord]
    sorted_records: list[CleanedRecord]
    classification: ClassificationResult
    document: DocumentModel
    document_yaml: str
    html_path: Optional[str]
    pdf_path: Optional[str]
    published: Optional[PublishedRecord]

    # Metadata
    step_timings: dict
    completed_steps: Annotated[list[str], operator.add]


# =============================================================================
# Decorators for Node Execution
# =============================================================================

def with_timeout(timeout_seconds: int):
    """Decorator to add timeout to async node functions."""
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)
        return wrapper
    return decorator


def track_timing(func: Callable):
    """Decorator to time a node and turn its failure into a PipelineError."""
    @wraps(func)
    async def wrapper(self, state: PipelineStateDict) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.removeprefix("_").removesuffix("_node")

        logger.info(f"Starting node: {node_name}", run_id=state.get("run_id"))

        try:
            result = await func(self, state)
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"Node failed: {node_name}",
                run_id=state.get("run_id"),
                duration_ms=duration_ms,
                error=str(e),
            )
            if isinstance(e, PipelineError):
                raise
            raise PipelineError(
                getattr(e, "message", None) or str(e) or type(e).__name__,
                stage=node_name,
                details={"run_id": state.get("run_id"), "error_type": type(e).__name__},
            ) from e

        duration_ms = int((time.time() - start_time) * 1000)
        step_timings = state.get("step_timings", {}).copy()
        step_timings[node_name] = duration_ms
        result["step_timings"] = step_timings
        result["completed_steps"] = [node_name]

        logger.info(
            f"Completed node: {node_name}",
            run_id=state.get("run_id"),
            duration_ms=duration_ms,
        )
        return result

    return wrapper


# =============================================================================
# Main Pipeline Class
# =============================================================================

class WineListPipeline:
    """
    LangGraph-based pipeline generating a venue's wine list.

    Example:
        >>> async with WineListPipeline() as pipeline:
        ...     result = await pipeline.run("recXXXXXXXXXXXXXX", publish=True)
        ...     print(result.summary)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AirtableClient] = None,
        renderer: Optional[WineListRenderer] = None,
        publisher: Optional[AttachmentPublisher] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            settings: Application settings (uses defaults if not provided)
            client: Airtable client (created if not provided)
            renderer: Document renderer writing to ``settings.output_dir``
            publisher: Attachment publisher (created on first publish)
        """
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or AirtableClient(self.settings)
        self.renderer = renderer or WineListRenderer(self.settings.output_dir)
        self._publisher = publisher

        self.venues = VenueService(self.client)
        self.zones = ZoneService(self.client)
        self.validator = ValidationService(self.settings.include_warning_records)

        self._graph = self._build_graph()

    async def __aenter__(self):
        await self.client.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def publisher(self) -> AttachmentPublisher:
        if self._publisher is None:
            self._publisher = AttachmentPublisher(self.client, self.settings)
        return self._publisher

    def _build_graph(self):
        """
        Build the LangGraph state machine.

        Graph structure:
            load_venue -> fetch_wines -> resolve_zones -> clean_records
                -> sort_records -> validate_records -> assemble_document
                -> render_document -+-> publish_document -> END
                                    +-> END
        """
        graph = StateGraph(PipelineStateDict)

        nodes = [
            ("load_venue", self._load_venue_node),
            ("fetch_wines", self._fetch_wines_node),
            ("resolve_zones", self._resolve_zones_node),
            ("clean_records", self._clean_records_node),
            ("sort_records", self._sort_records_node),
            ("validate_records", self._validate_records_node),
            ("assemble_document", self._assemble_document_node),
            ("render_document", self._render_document_node),
        ]
        for name, node in nodes:
            graph.add_node(name, node)
        graph.add_node("publish_document", self._publish_document_node)

        graph.set_entry_point("load_venue")
        for (current, _), (following, _) in zip(nodes, nodes[1:]):
            graph.add_edge(current, following)

        graph.add_conditional_edges(
            "render_document",
            self._route_after_render,
            {
                "publish": "publish_document",
                "done": END,
            },
        )
        graph.add_edge("publish_document", END)

        return graph.compile()

    def _route_after_render(self, state: PipelineStateDict) -> Literal["publish", "done"]:
        return "publish" if state.get("publish") else "done"

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_timing
    @with_timeout(DEFAULT_NODE_TIMEOUT_SECONDS)
    async def _load_venue_node(self, state: PipelineStateDict) -> dict[str, Any]:
        venue = await self.venues.get_venue(state["venue_id"])
        return {"venue": venue}

    @track_timing
    @with_timeout(DEFAULT_NODE_TIMEOUT_SECONDS)
    async def _fetch_wines_node(self, state: PipelineStateDict) -> dict[str, Any]:
        table = self.settings.require("airtable_inventory_table")
        records = await self.client.list_all_records(
            table,
            filter_by_formula=wine_list_formula(state["venue_id"]),
        )
        return {"raw_records": records}

    @track_timing
    @with_timeout(DEFAULT_NODE_TIMEOUT_SECONDS)
    async def _resolve_zones_node(self, state: PipelineStateDict) -> dict[str, Any]:
        return {"zone_mapping": await self.zones.resolve_zones()}

    @track_timing
    async def _clean_records_node(self, state: PipelineStateDict) -> dict[str, Any]:
        cleaned = clean_records({"records": state.get("raw_records", [])})
        return {"cleaned_records": cleaned}

    @track_timing
    async def _sort_records_node(self, state: PipelineStateDict) -> dict[str, Any]:
        ordered = sort_records(
            state.get("cleaned_records", []),
            state.get("zone_mapping"),
            ZonePriorityPolicy(self.settings.zone_priority_policy),
        )
        return {"sorted_records": ordered}

    @track_timing
    @with_timeout(DEFAULT_NODE_TIMEOUT_SECONDS)
    async def _validate_records_node(self, state: PipelineStateDict) -> dict[str, Any]:
        records = state.get("sorted_records", [])
        zone_mapping = state.get("zone_mapping")
        if self.settings.airtable_producer_table:
            resolver = AirtableProducerResolver(self.client)
            classification = await self.validator.classify_async(records, zone_mapping, resolver)
        else:
            classification = self.validator.classify(records, zone_mapping)
        return {"classification": classification}

    @track_timing
    async def _assemble_document_node(self, state: PipelineStateDict) -> dict[str, Any]:
        definitions = None
        if self.settings.categories_file:
            definitions = load_category_definitions(self.settings.categories_file)

        document = assemble_document(
            state["classification"].valid_records,
            state["venue"],
            generated_on=state.get("generated_on"),
            category_definitions=definitions,
        )
        return {"document": document, "document_yaml": serialize_document(document)}

    @track_timing
    async def _render_document_node(self, state: PipelineStateDict) -> dict[str, Any]:
        if not state.get("render", True):
            return {"html_path": None, "pdf_path": None}

        document = state["document"]
        basename = artifact_basename(
            document.meta.date,
            self.settings.artifact_prefix,
            state["venue"].name,
        )
        artifacts = await asyncio.to_thread(
            self.renderer.render,
            document,
            basename,
            state.get("html_only", False),
        )
        return {
            "html_path": str(artifacts.html_path),
            "pdf_path": str(artifacts.pdf_path) if artifacts.pdf_path else None,
        }

    @track_timing
    @with_timeout(PUBLISH_TIMEOUT_SECONDS)
    async def _publish_document_node(self, state: PipelineStateDict) -> dict[str, Any]:
        source = state.get("pdf_path") or state.get("html_path")
        if not source:
            raise InputFormatError("Nothing to publish: the document was not rendered")

        published = await self.publisher.publish(
            self.settings.require("airtable_wine_list_table"),
            state["venue_id"],
            state["document"].meta.date,
            self.settings.require("airtable_wine_list_field"),
            source,
        )
        return {"published": published}

    # =========================================================================
    # Public API
    # =========================================================================

    async def run(
        self,
        venue_id: str,
        publish: bool = False,
        html_only: bool = False,
        render: bool = True,
        generated_on: Optional[date] = None,
        run_id: Optional[str] = None,
    ) -> GenerationResult:
        """
        Generate the wine list for a venue.

        Args:
            venue_id: Venue record id (``rec...``).
            publish: Upload the rendered file to the wine list table.
            html_only: Skip PDF conversion.
            render: Write HTML/PDF files; False only assembles the document.
            generated_on: Document date, today when omitted.
            run_id: Optional run ID for log correlation.

        Raises:
            PipelineError: A stage failed; ``stage`` names it.
        """
        run_id = run_id or str(uuid4())

        errors = GenerationRequest.collect_errors({"venue_id": venue_id})
        if errors:
            raise PipelineError(
                "; ".join(f"{key}: {msg}" for key, msg in errors.items()),
                stage="validate_request",
                details={"errors": errors},
            )

        initial_state: PipelineStateDict = {
            "run_id": run_id,
            "venue_id": venue_id,
            "generated_on": (generated_on or date.today()).isoformat(),
            "render": render,
            "html_only": html_only,
            "publish": publish and render,
            "step_timings": {},
            "completed_steps": [],
        }

        with LogContext(run_id=run_id, venue_id=venue_id):
            logger.info("Starting pipeline run", publish=publish, html_only=html_only)
            try:
                final_state = await self._graph.ainvoke(initial_state)
            except PipelineError:
                raise
            except Exception as e:
                logger.error("Pipeline failed with unexpected error", error=str(e))
                raise PipelineError(
                    f"Unexpected pipeline error: {e}",
                    stage="orchestrator",
                    details={"run_id": run_id},
                ) from e

            classification: ClassificationResult = final_state["classification"]
            logger.info(
                "Pipeline completed successfully",
                duration_ms=sum(final_state.get("step_timings", {}).values()),
                **classification.summary(),
            )

        return GenerationResult(
            run_id=run_id,
            venue=final_state["venue"],
            document=final_state["document"],
            document_yaml=final_state["document_yaml"],
            summary=classification.summary(),
            html_path=Path(final_state["html_path"]) if final_state.get("html_path") else None,
            pdf_path=Path(final_state["pdf_path"]) if final_state.get("pdf_path") else None,
            published=final_state.get("published"),
        )

    async def close(self) -> None:
        """Close the Airtable client if this pipeline created it."""
        if self._owns_client:
            await self.client.close()
