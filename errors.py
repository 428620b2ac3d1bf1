from typing import Optional


class AppError(Exception):
    """Base for errors that map to a JSON error envelope.

    ``kind`` is the stable machine-readable class of the failure; ``message``
    is what the client sees.
    """

    status_code = 500
    kind = "error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    status_code = 400
    kind = "validation"


class DuplicateRecipeError(AppError):
    status_code = 409
    kind = "conflict"

    def __init__(self, message: str = "Recipe with this URL already exists"):
        super().__init__(message)


class RecipeNotFoundError(AppError):
    status_code = 404
    kind = "not_found"

    def __init__(self, message: str = "Recipe not found"):
        super().__init__(message)


class AuthenticationError(AppError):
    status_code = 401
    kind = "authorization"


class PermissionDeniedError(AppError):
    status_code = 403
    kind = "forbidden"


class StoreError(AppError):
    status_code = 500
    kind = "store"


# =========================
# Outbound fetch failures
# =========================
class FetchError(AppError):
    kind = "upstream_fetch"


class HostUnresolvableError(FetchError):
    status_code = 404

    def __init__(self, message: str = "Unable to reach the specified URL"):
        super().__init__(message)


class FetchTimeoutError(FetchError):
    status_code = 408

    def __init__(
        self, message: str = "Request timeout - the website took too long to respond"
    ):
        super().__init__(message)


class RemoteStatusError(FetchError):
    def __init__(self, remote_status: int):
        status_code = remote_status if 400 <= remote_status < 600 else 502
        super().__init__(f"Website returned error: {remote_status}", status_code)
        self.remote_status = remote_status


class NoResponseError(FetchError):
    status_code = 503

    def __init__(self, message: str = "No response received from the website"):
        super().__init__(message)
