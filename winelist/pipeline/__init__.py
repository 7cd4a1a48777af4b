"""Pipeline module for the Wine List Generator."""

from winelist.pipeline.orchestrator import PipelineStateDict, WineListPipeline

__all__ = [
    "WineListPipeline",
    "PipelineStateDict",
]
