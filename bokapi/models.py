from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

MIN_YEAR = 1450
MAX_YEAR = 2025


def _required_text(label: str, max_length: int) -> AfterValidator:
    def check(value: str | None) -> str:
        if value is None or not value.strip():
            raise ValueError(f"{label} is required.")
        if len(value) > max_length:
            raise ValueError(f"{label} can't be more than {max_length} characters.")
        return value

    return AfterValidator(check)


def _check_year(value: int | None) -> int:
    if value is None:
        raise ValueError("Year is required.")
    if not MIN_YEAR <= value <= MAX_YEAR:
        raise ValueError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}.")
    return value


Title = Annotated[str | None, _required_text("Title", 200)]
Author = Annotated[str | None, _required_text("Author", 150)]
Genre = Annotated[str | None, _required_text("Genre", 100)]
Year = Annotated[int | None, AfterValidator(_check_year)]


class Book(BaseModel):
    id: int
    title: str
    author: str
    genre: str
    year: int
    version: int = 1


class CreateBook(BaseModel):
    # missing fields fall back to None so they report the same message as blank ones
    model_config = ConfigDict(validate_default=True)

    title: Title = None
    author: Author = None
    genre: Genre = None
    year: Year = None


class UpdateBook(BaseModel):
    """Full replacement of a stored book.

    ``version`` is the row version the client read. When omitted the version
    current at the start of the update is used.
    """

    model_config = ConfigDict(validate_default=True)

    id: int
    title: Title = None
    author: Author = None
    genre: Genre = None
    year: Year = None
    version: int | None = None


class Message(BaseModel):
    message: str
