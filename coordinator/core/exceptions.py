"""Custom exception hierarchy.

Not-found and precondition errors surface synchronously to callers and are
never retried here. Collaborator failures never reach this hierarchy: they are
logged where they happen.
"""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


# Not-found errors


class NotFoundError(AppError):
    """Raised when a referenced record does not exist."""
    pass


class MessageNotFoundError(NotFoundError):
    pass


class DependencyNotFoundError(NotFoundError):
    pass


class TaskNotFoundError(NotFoundError):
    pass


class WorkflowDefinitionNotFoundError(NotFoundError):
    pass


class WorkflowInstanceNotFoundError(NotFoundError):
    pass


class PatternNotFoundError(NotFoundError):
    pass


class RedFlagNotFoundError(NotFoundError):
    pass


class FindingNotFoundError(NotFoundError):
    pass


# Precondition errors


class PreconditionError(AppError):
    """Raised when a record is not in the state an operation requires."""
    pass


class NoPendingRequestError(PreconditionError):
    """The actor holds no pending approval request on the instance."""

    def __init__(self, instance_id, approver: str):
        super().__init__(
            f"No pending approval request for {approver} on workflow instance {instance_id}"
        )
        self.instance_id = instance_id
        self.approver = approver


class DelegationNotAllowedError(PreconditionError):
    pass


class DuplicatePendingRequestError(PreconditionError):
    pass


class InvalidStatusTransitionError(PreconditionError):
    """A status change would move a record backwards or out of a terminal state."""

    def __init__(self, entity: str, entity_id, current: Optional[str], target: str):
        super().__init__(
            f"{entity} {entity_id} cannot move from '{current}' to '{target}'"
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target


class WorkflowTerminatedError(PreconditionError):
    pass


class UnknownParticipantError(PreconditionError):
    pass
