"""
Domain models package for the order enrichment worker.

Immutable records returned by the enricher API and the order models that are
received as messages and persisted to MongoDB.
"""
