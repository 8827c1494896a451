"""Reconcile the dormitory spreadsheet export into the live document store."""

__version__ = "0.1.0"
