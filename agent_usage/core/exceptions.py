from __future__ import annotations


class AppError(Exception):
    """Base exception for all errors rendered by the HTTP layer."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "Unexpected error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.__class__.message
        if code is not None:
            self.code = code
        super().__init__(self.message)


# --- Usage-envelope errors ---


class UsageRequestError(AppError):
    def __init__(
        self,
        message: str | None = None,
        *,
        usage_type: str,
        email: str | None = None,
        code: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.usage_type = usage_type
        self.email = email
        self.headers = headers
        super().__init__(message, code=code)


class UsageBadRequestError(UsageRequestError):
    status_code = 400
    code = "unsupported_usage_type"


class UsageNotFoundError(UsageRequestError):
    status_code = 404
    code = "usage_not_found"
    message = "No usage data for requested email."


class UsageFetchFailedError(UsageRequestError):
    status_code = 500
    code = "usage_fetch_failed"
    message = "Unknown error"


class AccountUsageFetchFailedError(AppError):
    status_code = 500
    code = "usage_fetch_failed"
    message = "Unknown error"

    def __init__(self, message: str | None = None, *, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(message)
