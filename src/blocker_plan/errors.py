class BlockerPlanError(Exception):
    """Base class for all blocker plan errors."""

    def __init__(self, message: str, code: str = "BLOCKER_PLAN_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class InvalidInputError(BlockerPlanError):
    """Raised for negative durations, malformed times or an instant without a calendar day."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_INPUT")


class InvalidPlanError(BlockerPlanError):
    """Raised when a plan fails validation on creation or load."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_PLAN")


class PlanNotFoundError(BlockerPlanError):
    """Raised when an operation requires a current plan and none exists."""

    def __init__(self, message: str = "No blocker plan is currently set.") -> None:
        super().__init__(message, code="PLAN_NOT_FOUND")
