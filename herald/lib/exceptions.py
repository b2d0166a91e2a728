import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

logger = logging.getLogger(__name__)


class HeraldError(Exception):
    """Base class for errors raised inside Herald's stores and services."""


class DuplicateInstanceNameError(HeraldError):
    """An alert plugin instance with the same name already exists."""

    def __init__(self, instance_name: str) -> None:
        super().__init__(f"Alert plugin instance {instance_name!r} already exists")
        self.instance_name = instance_name


class GroupNotFoundError(HeraldError):
    """An alert group record is missing."""

    def __init__(self, group_id: int) -> None:
        super().__init__(f"Alert group {group_id} does not exist")
        self.group_id = group_id


class MembershipConflictError(HeraldError):
    """A membership write kept losing the optimistic version race."""

    def __init__(self, group_id: int, attempts: int) -> None:
        super().__init__(
            f"Alert group {group_id} membership changed concurrently {attempts} times in a row"
        )
        self.group_id = group_id
        self.attempts = attempts


class MembershipWriteError(HeraldError):
    """The database rejected a membership write."""

    def __init__(self, group_id: int) -> None:
        super().__init__(f"Writing alert group {group_id} membership failed")
        self.group_id = group_id


class MembershipFormatError(HeraldError, ValueError):
    """A persisted membership list could not be parsed."""


class SchemaParseError(HeraldError, ValueError):
    """A plugin parameter schema or submission is not valid JSON."""


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Render HTTP exceptions as JSON."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return Response(
        content={"status_code": exc.status_code, "detail": detail},
        status_code=exc.status_code,
        media_type="application/json",
    )


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Render unexpected exceptions as a generic JSON 500."""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return Response(
        content={"status_code": HTTP_500_INTERNAL_SERVER_ERROR, "detail": "Internal Server Error"},
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )
