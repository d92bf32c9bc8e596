"""Domain exceptions raised by the engine services."""


class InvalidInteractionError(ValueError):
    """Malformed interaction input; raised before any profile mutation."""


class BookNotFoundError(LookupError):
    def __init__(self, book_id: str):
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class ProfileConflictError(RuntimeError):
    """The stored activity profile changed between read and write."""

    def __init__(self, user_id: str, expected_version: int):
        super().__init__(
            f"Activity profile for user {user_id} is no longer at version {expected_version}"
        )
        self.user_id = user_id
        self.expected_version = expected_version
