"""Custom exceptions for citelens."""


class CitelensError(Exception):
    """Base exception for all citelens errors."""

    pass


class ConfigurationError(CitelensError):
    """Raised when configuration is invalid or missing."""

    pass


class BibliographyError(CitelensError):
    """Raised when a bibliography source cannot be read or converted."""

    pass


class StyleError(CitelensError):
    """Raised when a citation style cannot be fetched, read or parsed."""

    pass


class LocaleError(CitelensError):
    """Raised when a locale document cannot be fetched or parsed."""

    pass


class EngineError(CitelensError):
    """Raised when a rendering engine cannot be built."""

    pass


class RenderError(CitelensError):
    """Raised when the engine fails while rendering citations or a bibliography."""

    def __init__(self, message: str, stage: str = "citations"):
        super().__init__(message)
        self.stage = stage
