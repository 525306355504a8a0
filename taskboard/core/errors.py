"""Domain errors raised by the board and task services."""


class TaskBoardError(Exception):
    """Base class for errors surfaced by the task board core."""


class NotFound(TaskBoardError):
    def __init__(self, entity_type: str, key):
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"{entity_type} not found: {key}")


class ValidationFailed(TaskBoardError):
    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class ConflictRetry(TaskBoardError):
    """A serialized unit of work lost a race and should be replayed."""


class NotificationDispatchFailed(TaskBoardError):
    """The notification channel rejected or could not accept a message."""


class OrderingInvariantError(RuntimeError):
    """Positions left non-dense. Indicates a bug, never a user error."""
