"""Packaged default settings files."""
