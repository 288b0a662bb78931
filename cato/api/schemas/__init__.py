"""Request and response schemas for the cATO dashboard API."""
