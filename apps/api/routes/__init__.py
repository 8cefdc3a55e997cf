"""Route modules exposed by the API package."""

from . import billing, ping, service_levels, tickets, work_entries

__all__ = ["billing", "ping", "service_levels", "tickets", "work_entries"]
