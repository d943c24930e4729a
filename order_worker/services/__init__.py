"""
Services package for the order enrichment worker.

Services orchestrate the enrichment workflow: fetching products and customers
through the resilience layer, validating them and persisting enriched orders.
"""
