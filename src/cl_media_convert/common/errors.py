"""Conversion error taxonomy.

File-scoped errors abort only the file being processed; the runner turns
them into a ``ConversionFailure``. ``BatchSetupFailure`` rejects the whole
batch before any file is touched.
"""


class ConversionError(Exception):
    """Base class for all conversion errors."""

    file_scoped: bool = True

    def __init__(self, message: str):
        self.message: str = message
        super().__init__(message)


class DecodeFailure(ConversionError):
    """Input bytes could not be decoded as an image."""


class UnsupportedFormat(ConversionError):
    def __init__(self, format_name: str, *, role: str = "input"):
        self.format_name: str = format_name
        self.role: str = role
        super().__init__(f"Unsupported {role} format: {format_name}")


class InvalidGeometry(ConversionError):
    """Resize/crop parameters do not fit the current image bounds."""


class TransformFailure(ConversionError):
    def __init__(self, step: str, cause: Exception):
        self.step: str = step
        self.cause: Exception = cause
        super().__init__(f"{step} failed: {cause}")


class EncodeFailure(ConversionError):
    def __init__(self, format_name: str, cause: Exception | str):
        self.format_name: str = format_name
        super().__init__(f"Encoding to {format_name} failed: {cause}")


class BatchSetupFailure(ConversionError):
    """Empty file list, malformed request or similar; fatal for the batch."""

    file_scoped: bool = False

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors: list[str] = errors or []
        super().__init__(message)
