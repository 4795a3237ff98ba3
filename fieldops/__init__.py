"""Field operations API: tickets, notes, photos and reports."""

__version__ = "2.0.0"
