"""Segmented object records and table ingestion."""
