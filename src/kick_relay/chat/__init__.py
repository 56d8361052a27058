"""Chat relay: upstream connections, enrichment and fan-out."""
