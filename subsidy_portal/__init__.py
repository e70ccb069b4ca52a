"""Subsidy application portal: document ingestion and AI compliance checks."""

__version__ = "0.1.0"
