"""Invitation and sharing module."""
