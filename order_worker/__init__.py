"""
Order Enrichment Worker - enriches order messages with customer and product data.

Fetches products and customers from the enricher API behind a circuit breaker
and retry policy, validates them, and stores enriched orders in MongoDB.
"""

__version__ = "0.1.0"
