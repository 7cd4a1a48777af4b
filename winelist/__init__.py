"""
Wine List Generator.

Builds a venue's wine list (carta dei vini) from Airtable records, renders it
to HTML/PDF and publishes it back to Airtable as an attachment.
"""

__version__ = "1.0.0"


# Lazy imports to avoid circular dependencies
def get_pipeline():
    """Get the WineListPipeline class (lazy import)."""
    from winelist.pipeline.orchestrator import WineListPipeline
    return WineListPipeline

__all__ = ["get_pipeline", "__version__"]
