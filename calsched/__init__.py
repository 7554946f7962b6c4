"""calsched: calendar event scheduling and provider export."""

__version__ = "0.1.0"
