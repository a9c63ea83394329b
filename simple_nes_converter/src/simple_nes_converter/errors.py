"""Exceptions raised by the NES converter."""


class ConversionError(Exception):
    """Custom exception for conversion errors."""


class MalformedPaletteError(ConversionError):
    """Raised when a custom palette string cannot be parsed."""


class NoBackgroundSubpaletteError(ConversionError):
    """Raised when no candidate subpalette contains the background color.

    Every NES subpalette shares the background color, so an image that cannot
    produce a single conforming subpalette cannot be converted.
    """
