"""Carrier outage observers."""
