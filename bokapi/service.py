import logging
from typing import List

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .entities import BookRecord
from .errors import BadRequestError, BookConflictError, BookNotFoundError
from .models import Book, CreateBook, UpdateBook

logger = logging.getLogger(__name__)


class BookService:
    def __init__(self, session: Session):
        self.session = session

    def list(self) -> List[Book]:
        records = self.session.execute(select(BookRecord).order_by(BookRecord.id)).scalars().all()
        return [self._to_schema(record) for record in records]

    def get(self, book_id: int) -> Book:
        record = self.session.get(BookRecord, book_id)
        if record is None:
            raise BookNotFoundError(f"No book with ID {book_id} was found.")
        return self._to_schema(record)

    def create(self, payload: CreateBook) -> Book:
        record = BookRecord(**payload.model_dump(), version=1)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        logger.info("book.created", extra={"book_id": record.id})
        return self._to_schema(record)

    def update(self, book_id: int, payload: UpdateBook) -> None:
        """Replace every field of a book, guarded by its row version.

        Raises BadRequestError on an id mismatch, BookNotFoundError when the
        row is missing and BookConflictError when the row exists but its
        version moved on since it was read.
        """
        if book_id != payload.id:
            raise BadRequestError(f"Route id {book_id} does not match book id {payload.id}.")

        expected = payload.version
        if expected is None:
            expected = self.session.scalar(select(BookRecord.version).where(BookRecord.id == book_id))
            if expected is None:
                raise BookNotFoundError(f"No book with ID {book_id} was found.")

        stmt = (
            update(BookRecord)
            .where(BookRecord.id == book_id, BookRecord.version == expected)
            .values(
                title=payload.title,
                author=payload.author,
                genre=payload.genre,
                year=payload.year,
                version=expected + 1,
            )
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self.session.rollback()
            if not self._exists(book_id):
                raise BookNotFoundError(f"No book with ID {book_id} was found.")
            raise BookConflictError(book_id, expected)
        self.session.commit()
        logger.info("book.updated", extra={"book_id": book_id, "version": expected + 1})

    def delete(self, book_id: int) -> None:
        record = self.session.get(BookRecord, book_id)
        if record is None:
            raise BookNotFoundError(f"No book with ID {book_id} was found.")
        self.session.delete(record)
        self.session.commit()
        logger.info("book.deleted", extra={"book_id": book_id})

    def filter_by_genre(self, genre: str) -> List[Book]:
        stmt = select(BookRecord).where(func.lower(BookRecord.genre) == func.lower(genre)).order_by(BookRecord.id)
        records = self.session.execute(stmt).scalars().all()
        if not records:
            raise BookNotFoundError(f"No books were found in the genre '{genre}'.")
        return [self._to_schema(record) for record in records]

    def search_by_title(self, title: str | None) -> List[Book]:
        if title is None or not title.strip():
            raise BadRequestError("Title cannot be empty.")

        stmt = select(BookRecord).where(BookRecord.title.icontains(title, autoescape=True)).order_by(BookRecord.id)
        records = self.session.execute(stmt).scalars().all()
        if not records:
            raise BookNotFoundError(f"No books were found with a title containing '{title}'.")
        return [self._to_schema(record) for record in records]

    def _exists(self, book_id: int) -> bool:
        return self.session.scalar(select(BookRecord.id).where(BookRecord.id == book_id)) is not None

    @staticmethod
    def _to_schema(record: BookRecord) -> Book:
        return Book.model_validate(record, from_attributes=True)
