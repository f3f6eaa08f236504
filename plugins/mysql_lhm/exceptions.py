"""
Copy Engine Exceptions

Fatal conditions raised by the chunked copy. Database errors that are not
retryable (or that exhaust the retry budget) are not wrapped; they propagate
as the original pymysql exception.
"""


class ChunkerError(RuntimeError):
    """Base class for fatal copy errors."""


class NoProgressError(ChunkerError):
    """
    Raised when the next chunk boundary does not move past the current one.

    Usually means the primary key is not unique or not orderable the way
    the copy expects; continuing would loop forever.
    """

    def __init__(self, position, next_position, stride: int):
        self.position = position
        self.next_position = next_position
        self.stride = stride
        super().__init__(
            f"No progress: next chunk start {next_position} does not advance past "
            f"{position} (stride {stride}). Infinite loop due to bad primary key?"
        )


class UnexpectedWarningError(ChunkerError):
    """Raised when a copy statement produces a warning outside the allow-list."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Database error returned: {message} {code}")
