from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are absent or invalid."""


class AdGenerationError(Exception):
    status_code = 500
    # Set by the pipeline to the stage that raised it.
    stage = None


class ValidationError(AdGenerationError):
    status_code = 400


class UpstreamEmptyResponseError(AdGenerationError):
    """The vendor call succeeded but returned no usable content."""


class UpstreamServiceError(AdGenerationError):
    """The vendor call itself failed (after any retries)."""


class StageTimeoutError(AdGenerationError):
    pass


class InvalidImageFormatError(AdGenerationError):
    pass


class ImageConversionError(AdGenerationError):
    pass


class StorageWriteError(AdGenerationError):
    pass


class StorageUrlResolutionError(AdGenerationError):
    """The object was stored but no public URL could be resolved for it."""
