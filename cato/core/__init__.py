"""Core domain logic: authority model and approval workflow."""
