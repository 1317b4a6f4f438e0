"""API-layer helpers for Innkeeper."""
