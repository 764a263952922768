# classgroups/domain/errors.py


class GroupingError(Exception):
    """Base class for errors raised by the caller-side services."""


class OperationInProgressError(GroupingError):
    def __init__(self):
        super().__init__("An operation is already in progress. Please wait.")


class RateLimitedError(GroupingError):
    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(f"Please wait {remaining_seconds} seconds before trying again.")
