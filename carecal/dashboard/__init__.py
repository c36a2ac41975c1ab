"""Account-wide dashboard sharing module."""
