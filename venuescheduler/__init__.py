"""
Venue booking time-window scheduler.
"""

__version__ = "0.1.0"
