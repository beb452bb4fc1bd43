"""Build spreadsheets in memory and upload them to OneDrive."""

__version__ = "0.1.0"
