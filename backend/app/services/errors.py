"""Domain errors raised by the folder and document services.

Each error carries the HTTP status it maps to and a client-safe ``detail``;
``app.main`` turns them into JSON responses.
"""


class HierarchyError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, detail: str, reason: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.reason = reason

    def to_dict(self) -> dict[str, str]:
        body = {"detail": self.detail, "code": self.code}
        if self.reason is not None:
            body["reason"] = self.reason
        return body


class NotFound(HierarchyError):
    """Missing, or owned by someone else. The two are never distinguished."""

    status_code = 404
    code = "not_found"


class InvalidInput(HierarchyError):
    status_code = 400
    code = "invalid_input"


class InvalidMove(HierarchyError):
    status_code = 400
    code = "invalid_move"

    SELF = "self"
    DESCENDANT = "descendant"


class Conflict(HierarchyError):
    status_code = 409
    code = "conflict"

    DUPLICATE_NAME = "duplicate_name"


class StorageFailure(HierarchyError):
    status_code = 500
    code = "storage_failure"

    def __init__(self, detail: str = "Storage operation failed", reason: str | None = None) -> None:
        super().__init__(detail, reason)
