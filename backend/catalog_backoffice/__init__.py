"""Catalog back-office: hierarchy resolution, bulk ingestion and identity cascades."""
