class LinkError(Exception):
    """Base class for registry errors. ``str(exc)`` is safe to show to users."""

    default_message = "Link operation failed"

    def __init__(self, message: str | None = None, **context):
        super().__init__(message or self.default_message)
        self.context = context


class InvalidUrl(LinkError):
    default_message = "Invalid URL format"


class InvalidShortCode(LinkError):
    default_message = "Custom shortcode must be 3-20 alphanumeric characters"


class ShortCodeTaken(LinkError):
    default_message = "Custom shortcode already exists"


class CodeSpaceExhausted(LinkError):
    default_message = "Could not generate a free shortcode"


class LinkNotFound(LinkError):
    default_message = "Link not found"
