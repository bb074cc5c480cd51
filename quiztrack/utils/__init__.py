"""Helpers for dates, rounding, the module catalog and question files."""
