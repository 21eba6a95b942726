"""InsightPulse feedback ingestion, classification and alert fan-out pipeline."""

__version__ = "0.1.0"
