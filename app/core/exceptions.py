"""
Ledger-wide exception hierarchy.

All services raise these types; blueprints register handlers against them
once and get consistent HTTP status codes everywhere.

Two families exist:

* Input / lookup failures (``NotFoundError``, ``ValidationError``) which a
  caller fixes by sending a different request.
* Business refusals (subclasses of ``LedgerRefusal``) which mean the request
  was well-formed but the ledger's rules do not allow it right now. Each
  refusal carries a machine-readable ``code`` so ledger operations can hand
  back a structured result instead of an exception.

Usage:
    from app.core.exceptions import ConflictError, NotFoundError

    raise NotFoundError(resource="CostItem", resource_id=42)
    raise ConflictError("Cost item already has a waiting modification",
                        resource="CostItem", field="status", value="WAITING")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable model/entity name (e.g. "CostItem").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        project_id: Optional — the project scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if project_id is not None:
            msg += f" (project={project_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a rule
    (e.g. an unknown decision value, a grandchild cost item).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class LedgerRefusal(Exception):
    """Base for refusals: the request is valid but the ledger state forbids it."""

    code = "ERR_REFUSED"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConflictError(LedgerRefusal):
    """Raised when the current state of a record blocks the operation.

    Covers a second WAITING modification on the same item, edits while the
    quotation is awaiting approval, and decisions on already-resolved rows.

    Maps to HTTP 409.

    Args:
        message: Human-readable explanation.
        resource: Model name.
        field: The field whose state caused the conflict.
        value: The current value of that field.
    """

    code = "ERR_CONFLICT_STATE"

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        field: str | None = None,
        value: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message)


class CapacityError(LedgerRefusal):
    """Raised when an approval would push project extra cost over its cap.

    Maps to HTTP 409.
    """

    code = "ERR_CAPACITY_EXCEEDED"

    def __init__(self, message: str, projected: float | None = None, cap: float | None = None) -> None:
        self.projected = projected
        self.cap = cap
        super().__init__(message)


class PermissionDeniedError(LedgerRefusal):
    """Raised when the acting user's role may not perform the operation.

    Maps to HTTP 403.
    """

    code = "ERR_FORBIDDEN"

    def __init__(self, message: str, role: str | None = None) -> None:
        self.role = role
        super().__init__(message)


class TransactionFailure(Exception):
    """Raised when the database rejects a ledger write; the unit of work was rolled back.

    Maps to HTTP 500. The original driver exception is chained as ``__cause__``.
    """

    code = "ERR_DATABASE"
