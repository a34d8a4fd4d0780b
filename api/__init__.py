"""HTTP surface: provider webhooks and cascade sync admin endpoints."""
