"""Spatial index, relationships, aggregation and export."""
