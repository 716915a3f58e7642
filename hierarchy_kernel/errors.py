"""
Hierarchy Kernel — Error Taxonomy

Every failure of a transition or exchange is raised as a HierarchyError
subclass before any write happens. status_code is the HTTP status class
the API layer answers with; error is a short stable code.
"""

from __future__ import annotations


class HierarchyError(Exception):
    """Base for every typed hierarchy failure."""

    status_code: int = 400
    error: str = "hierarchy_error"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {
            "success": False,
            "error": self.error,
            "message": self.message,
        }
        if self.retryable:
            body["retryable"] = True
        return body


class TransitionValidationError(HierarchyError):
    """Malformed request: bad role, missing department, bad manager pick."""

    error = "validation_failed"


class SameDepartmentHeadChangeError(HierarchyError):
    """A head tried to demote or re-promote inside their own department."""

    error = "same_department_head_change"


class MissingTargetHeadError(HierarchyError):
    """A lateral move targets a department without a head."""

    error = "missing_target_head"


class MissingHeadError(MissingTargetHeadError):
    """A manager exchange involves a department without a head."""

    error = "missing_head"


class AuthorizationError(HierarchyError):
    """The caller's role may not invoke this operation."""

    status_code = 403
    error = "access_denied"


class NotFoundError(HierarchyError):
    """A referenced Person or Department does not exist."""

    status_code = 404
    error = "not_found"


class RoleMismatchError(HierarchyError):
    """An exchange was invoked with ids that do not both hold the expected role."""

    status_code = 409
    error = "invalid_role_for_operation"


InvalidRoleForOperation = RoleMismatchError


class DepartmentMismatchError(HierarchyError):
    """Exchange participants are not where their departments say they are."""

    status_code = 409
    error = "department_mismatch"


class TransactionConflictError(HierarchyError):
    """The store could not commit atomically; the identical request may be resubmitted."""

    status_code = 409
    error = "transaction_conflict"
    retryable = True
