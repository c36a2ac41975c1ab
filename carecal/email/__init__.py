"""Email notification module."""
