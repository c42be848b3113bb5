"""Utility functions for common operations across the application."""

import re


def normalize_email(email: str) -> str:
    """Convert email to lowercase and strip whitespace."""
    return email.strip().lower()


def literal_pattern(text: str) -> str:
    """Escape ``text`` so a Mongo ``$regex`` matches it literally."""
    return re.escape(text)
