"""cATO dashboard backend: POA&M approval workflow and DoD RBAC."""

__version__ = "0.1.0"
