"""Admissions and job-matching allocation engine."""

__version__ = "0.1.0"
