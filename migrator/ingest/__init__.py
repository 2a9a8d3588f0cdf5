"""Shopify ingestion and record mapping."""
