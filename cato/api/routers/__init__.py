"""API routers for the cATO dashboard."""
