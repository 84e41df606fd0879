"""docshelf - document library with AI enrichment and tiered persistence."""

__version__ = "0.1.0"
