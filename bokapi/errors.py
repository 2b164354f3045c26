class BookError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(BookError):
    pass


class BookNotFoundError(BookError, LookupError):
    pass


class BookConflictError(BookError):
    """The row changed between read and write and still exists."""

    def __init__(self, book_id: int, expected_version: int):
        super().__init__(f"Book {book_id} was modified by another request (expected version {expected_version}).")
        self.book_id = book_id
        self.expected_version = expected_version
