"""Telehealth consultation reminder engine."""
