"""Error taxonomy for blueprint generation, sampling and submission."""


class ExamEngineError(Exception):
    """Base class for every error the engine raises."""


class ValidationError(ExamEngineError):
    """Bad input shape: malformed answer key, missing choices, bad counts."""


class CapacityError(ExamEngineError):
    """The requested allocation cannot be served by the available stock."""


class NoEligibleCategories(CapacityError):
    def __init__(self, message="No category has questions available"):
        super().__init__(message)


class TotalExceedsCapacity(CapacityError):
    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(f"Requested {requested} questions, only {available} available")


class TotalBelowMinimum(CapacityError):
    def __init__(self, requested: int, minimum: int):
        self.requested = requested
        self.minimum = minimum
        super().__init__(
            f"Total {requested} is too small to give each of {minimum} categories one question"
        )


class UnderAllocated(CapacityError):
    def __init__(self, remaining: int):
        self.remaining = remaining
        super().__init__(f"Allocation stopped with {remaining} question(s) unplaced")


class PoolExhausted(CapacityError):
    def __init__(self, category_id: str, requested: int, received: int):
        self.category_id = category_id
        self.requested = requested
        self.received = received
        super().__init__(
            f"Category {category_id}: requested {requested} questions, pool returned {received}"
        )


class SessionClosed(ExamEngineError):
    """The session was already submitted; answers can no longer change."""


class ConcurrencyConflict(ExamEngineError):
    """A concurrent submit won the transition but no stored result is visible."""
