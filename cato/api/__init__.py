"""HTTP API for the cATO dashboard."""
