"""Event roster service exports."""

from .roster import EventRosterService  # noqa: F401
