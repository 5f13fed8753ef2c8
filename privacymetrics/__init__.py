"""PrivacyMetrics - cookieless web analytics ingestion and aggregation."""

__version__ = "0.1.0"
