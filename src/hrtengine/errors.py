# src/hrtengine/errors.py


class ConversionError(ValueError):
    """A lab value could not be converted between the requested units."""


class UnsupportedUnitError(ConversionError):
    pass


class UnsupportedPrefixError(ConversionError):
    pass


class MalformedRatioError(ConversionError):
    pass


class UnknownHormoneError(ConversionError):
    pass


class UnsupportedBaseConversionError(ConversionError):
    pass
