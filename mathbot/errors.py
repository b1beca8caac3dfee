class RelayError(Exception):
    """Base class for failures the relay reports as an error envelope."""

    status_code = 500
    default_message = "An error occurred during chat processing"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(RelayError):
    default_message = "API key is required"


class UpstreamError(RelayError):
    default_message = "Error while contacting the model provider"


class InvalidRequestError(RelayError):
    status_code = 400
    default_message = "Invalid request body"
