"""Custom exceptions used across exceldrive."""


class ExcelDriveError(Exception):
    """Base error for the application."""


class ConfigError(ExcelDriveError):
    """Configuration related error."""


class EncodingError(ExcelDriveError):
    """Raised when a grid cannot be serialized into a workbook."""


class EmptyInputError(ExcelDriveError):
    """Raised when there are no records to encode."""
