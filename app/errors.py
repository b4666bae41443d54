class DispatchError(RuntimeError):
    """Base for every failure the dispatcher turns into an HTTP response."""

    status_code = 500

    def __init__(self, error: str, details: str | None = None):
        super().__init__(error if details is None else f"{error} {details}")
        self.error = error
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(DispatchError):
    status_code = 400


class NotFoundError(DispatchError):
    status_code = 404


class MethodNotAllowedError(DispatchError):
    status_code = 405

    def __init__(self, allowed: tuple[str, ...]):
        super().__init__(f"Method Not Allowed. Use {' or '.join(allowed)}.")
        self.allowed = allowed


class ServiceUnavailableError(DispatchError):
    status_code = 503


class PersistenceFailure(DispatchError):
    pass


class GradingFailure(RuntimeError):
    pass


class GradingUnavailableError(GradingFailure):
    pass


class GradingTransportError(GradingFailure):
    pass


class GradingParseError(GradingFailure):
    pass


class GradingSchemaError(GradingFailure):
    pass


class OutlineGenerationError(RuntimeError):
    pass
