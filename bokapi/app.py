import logging
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .db import get_session, init_db
from .errors import BadRequestError, BookConflictError, BookError, BookNotFoundError
from .models import Book, CreateBook, Message, UpdateBook
from .otel import configure_logging, configure_otel
from .service import BookService

settings = get_settings()
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


def get_book_service(session=Depends(get_session)) -> BookService:
    return BookService(session)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("startup", extra={"app": settings.app_name, "version": settings.version})
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="A minimal Book catalog API backed by a single relational table.",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)
if settings.otel_enabled:
    configure_otel(app, settings)

if settings.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

router_v1 = APIRouter(prefix="/api/v1", tags=["v1"])
not_found = {status.HTTP_404_NOT_FOUND: {"model": Message}}


@router_v1.get("/health", tags=["health"], summary="Liveness check")
def health() -> dict:
    return {"status": "ok"}


@router_v1.get("/books", response_model=List[Book], summary="List all books")
def list_books(service: BookService = Depends(get_book_service)) -> List[Book]:
    """Return every stored book ordered by id. An empty catalog yields an empty list."""
    return service.list()


@router_v1.post(
    "/books",
    response_model=Book,
    status_code=status.HTTP_201_CREATED,
    summary="Add a book",
    responses={status.HTTP_400_BAD_REQUEST: {"description": "Validation failed for one or more fields"}},
)
def create_book(
    payload: CreateBook,
    request: Request,
    response: Response,
    service: BookService = Depends(get_book_service),
) -> Book:
    """Store a new book and return it with its assigned id.

    The `Location` header points at the created resource.
    """
    book = service.create(payload)
    response.headers["Location"] = str(request.url_for("get_book", book_id=book.id))
    return book


# declared ahead of /books/{book_id} so "search" is not parsed as an id
@router_v1.get(
    "/books/search",
    response_model=List[Book],
    summary="Search books by title",
    responses={**not_found, status.HTTP_400_BAD_REQUEST: {"model": Message}},
)
def search_books_by_title(
    title: Optional[str] = Query(default=None, description="Part of the title, matched case-insensitively"),
    service: BookService = Depends(get_book_service),
) -> List[Book]:
    """Return books whose title contains `title`. A blank term is rejected."""
    return service.search_by_title(title)


@router_v1.get("/books/genre/{genre}", response_model=List[Book], summary="List books in a genre", responses=not_found)
def get_books_by_genre(genre: str, service: BookService = Depends(get_book_service)) -> List[Book]:
    """Return books whose genre equals `genre`, ignoring case. No match answers 404."""
    return service.filter_by_genre(genre)


@router_v1.get("/books/{book_id}", response_model=Book, summary="Get a book by id", responses=not_found)
def get_book(book_id: int, service: BookService = Depends(get_book_service)) -> Book:
    return service.get(book_id)


@router_v1.put(
    "/books/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace a book",
    responses={**not_found, status.HTTP_409_CONFLICT: {"model": Message}},
)
def update_book(book_id: int, payload: UpdateBook, service: BookService = Depends(get_book_service)) -> None:
    """Replace every field of a book.

    The body id must match the path id. Send the `version` you read to have
    the update rejected with 409 if someone else changed the book meanwhile.
    """
    service.update(book_id, payload)


@router_v1.delete(
    "/books/{book_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a book",
    responses=not_found,
)
def delete_book(book_id: int, service: BookService = Depends(get_book_service)) -> None:
    service.delete(book_id)


app.include_router(router_v1)


_ERROR_STATUS = {
    BadRequestError: status.HTTP_400_BAD_REQUEST,
    BookNotFoundError: status.HTTP_404_NOT_FOUND,
    BookConflictError: status.HTTP_409_CONFLICT,
}


@app.exception_handler(BookError)
async def book_error_handler(request: Request, exc: BookError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, BookConflictError):
        logger.warning("book.conflict", extra={"book_id": exc.book_id, "expected_version": exc.expected_version})
    return JSONResponse(status_code=status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        ctx = error.get("ctx") or {}
        # custom validators carry their message on the wrapped ValueError
        message = str(ctx["error"]) if "error" in ctx else error.get("msg", "Invalid value.")
        errors.setdefault(field, []).append(message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "One or more validation errors occurred.", "errors": errors},
    )


@app.middleware("http")
async def security_headers(request, call_next):
    if settings.require_https:
        forwarded_proto = request.headers.get("x-forwarded-proto", "")
        if forwarded_proto and forwarded_proto.lower() != "https":
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "HTTPS required"})
        if request.url.scheme != "https" and not forwarded_proto:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "HTTPS required"})

    response = await call_next(request)
    response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
    if not request.url.path.startswith(("/docs", "/redoc")):
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'; base-uri 'none'")
    return response


request_logger = logging.getLogger("bokapi.requests")


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    request_logger.info("request.start", extra={"path": request.url.path, "method": request.method})
    response = await call_next(request)
    request_logger.info(
        "request.end",
        extra={"path": request.url.path, "method": request.method, "status": response.status_code},
    )
    return response


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bokapi.app:app", host=settings.host, port=settings.port)
