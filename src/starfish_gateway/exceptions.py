"""Starfish gateway exceptions."""


class GatewayError(Exception):
    """Base exception for starfish-gateway."""

    pass


class ConfigError(GatewayError):
    """Configuration error."""

    pass


class NotFoundError(GatewayError):
    """Resource not found."""

    pass


class BucketNotFoundError(NotFoundError):
    """No collection is mapped to the requested bucket."""

    def __init__(self, bucket: str) -> None:
        super().__init__(f"No collection mapped for bucket: {bucket}")
        self.bucket = bucket


class ObjectNotFoundError(NotFoundError):
    """No entry presents the requested key."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"No object {key!r} in bucket {bucket!r}")
        self.bucket = bucket
        self.key = key


class UpstreamError(GatewayError):
    """Starfish API request failed."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"Starfish error [{code}]: {message}")
        self.code = code
        self.message = message


class NotImplementedOperationError(GatewayError):
    """Operation is not supported by this read-only gateway."""

    pass


class TemplateError(GatewayError):
    """Path template error."""

    pass


class TemplateSyntaxError(TemplateError):
    """Template could not be parsed."""

    pass


class TemplateRuntimeError(TemplateError):
    """Template failed during rendering."""

    pass
