"""Error taxonomy for offline signing.

Every error is raised to the immediate caller; nothing here retries.
"""


class OffsignError(RuntimeError):
    pass


class EncodingError(OffsignError):
    """Bad base64/text, or an unknown encoding mode."""


class SchemaError(OffsignError):
    """Bytes did not deserialize into the expected protocol message."""


class KeyMaterialError(OffsignError):
    """Key material is absent or cannot be parsed."""


class MissingKeyError(KeyMaterialError):
    pass


class SignError(OffsignError):
    """The signing primitive failed."""


class TransportError(OffsignError):
    """The remote coordinator could not be reached or returned an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(OffsignError):
    pass


class UploadError(OffsignError):
    """The coordinator reported the upload session as failed."""


class UploadTimeoutError(UploadError):
    pass
