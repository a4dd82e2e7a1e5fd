"""Blueprint coach: conversation and stage-progression engine for PBL unit design."""

__version__ = "0.1.0"
