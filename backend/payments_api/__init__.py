"""
Payments API: provider notification ingestion and payment state management.
"""
