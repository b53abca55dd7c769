"""Domain errors and their HTTP mapping.

Learn: Services raise these instead of HTTPException so the same code
runs from the API, the CLI, or a test without FastAPI in the loop.
create_app() registers one handler that renders every TestCraftError
as {"detail": ...} with the carried status code.
"""

from typing import Optional


class TestCraftError(Exception):
    """Base class for errors that map onto an HTTP status."""

    __test__ = False  # keep pytest from collecting this as a test class

    status_code = 500
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def headers(self) -> dict[str, str]:
        return {}


class ValidationError(TestCraftError):
    status_code = 400
    default_detail = "Invalid request"


class AuthenticationError(TestCraftError):
    status_code = 401
    default_detail = "Authentication required"

    @property
    def headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": "Bearer"}


class AuthorizationError(TestCraftError):
    status_code = 403
    default_detail = "You do not have permission to perform this action"


class NotFoundError(TestCraftError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(TestCraftError):
    status_code = 409
    default_detail = "Conflict"


class RateLimitError(TestCraftError):
    status_code = 429
    default_detail = "Too many requests. Please try again later."

    def __init__(self, detail: Optional[str] = None, retry_after: int = 60):
        super().__init__(detail)
        self.retry_after = retry_after

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}
