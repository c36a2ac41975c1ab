"""Appointment scheduling module."""
