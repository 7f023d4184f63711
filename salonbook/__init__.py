"""Salonbook scheduling engine: conflict detection, availability, recurrence and cache coordination."""

__version__ = "1.0.0"
