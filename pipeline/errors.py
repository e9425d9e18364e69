class TryOnError(Exception):
    pass


class MissingApiKeyError(TryOnError):
    def __init__(self, message: str = "No API key available. Please enter a valid API key in the interface.") -> None:
        super().__init__(message)


class ModelResponseError(TryOnError):
    """The model answered, but not with an image."""


class SafetyBlockedError(ModelResponseError):
    pass


class GenerationStoppedError(ModelResponseError):
    pass


class ModelRefusalError(ModelResponseError):
    pass


class NoImageError(ModelResponseError):
    pass


class GenerationError(TryOnError):
    def __init__(self, last_error: BaseException | None = None) -> None:
        self.last_error = last_error
        detail = str(last_error) if last_error is not None and str(last_error) else "Unknown error"
        super().__init__(f"Generation failed: {detail}")
