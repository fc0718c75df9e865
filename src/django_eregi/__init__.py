"""Multi-tenant conference registration for academic societies."""

__version__ = "0.1.0"
