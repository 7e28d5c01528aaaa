"""
agendasync - bookable slots for a single-provider calendar, kept in sync with
Google Calendar.
"""

__version__ = "0.1.0"
