"""Psych Brief: PubMed psychiatry ingestion pipeline."""

__version__ = "0.1.0"
