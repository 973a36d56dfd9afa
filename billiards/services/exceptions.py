class ServiceError(Exception):
    """Business-rule failure carrying the HTTP status it maps to."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        errors: list[str] | None = None,
        extra: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        # individual reasons when a check produced several
        self.errors = errors or [message]
        self.extra = extra or {}
