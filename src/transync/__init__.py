"""Incremental Plaid transaction sync and deduplicated export."""
