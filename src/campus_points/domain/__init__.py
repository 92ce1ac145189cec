"""Domain primitives shared by the ledger engine and the API layer."""

from .roles import Actor, Role  # noqa: F401
