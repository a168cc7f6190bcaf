"""
Book CRUD routes mounted at /api/books.
"""
import logging

from fastapi import APIRouter, status

from database import (
    create_document,
    delete_document,
    get_document,
    get_documents,
    serialize_document,
    update_document,
)
from errors import NotFoundError
from schemas import Book, BookUpdate

logger = logging.getLogger(__name__)

COLLECTION = "book"
BOOK_NOT_FOUND = "Book with the current ID is not present"

router = APIRouter(prefix="/api/books", tags=["books"])


@router.get("/get")
def get_all_books():
    books = get_documents(COLLECTION)
    if not books:
        raise NotFoundError("No books found in database")
    return [serialize_document(b) for b in books]


@router.get("/get/{book_id}")
def get_single_book_by_id(book_id: str):
    book = get_document(COLLECTION, book_id)
    if not book:
        raise NotFoundError(BOOK_NOT_FOUND)
    return serialize_document(book)


@router.post("/add", status_code=status.HTTP_201_CREATED)
def add_new_book(payload: Book):
    book_id = create_document(COLLECTION, payload)
    logger.info(f"Book added: {payload.title} ({book_id})")
    return {
        "success": True,
        "message": "Book Added Successfully",
        "data": serialize_document(get_document(COLLECTION, book_id)),
    }


@router.put("/update/{book_id}")
def update_single_book(book_id: str, payload: BookUpdate):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    updated = update_document(COLLECTION, book_id, changes)
    if not updated:
        raise NotFoundError(BOOK_NOT_FOUND)
    logger.info(f"Book updated: {book_id}")
    return {"success": True, "data": serialize_document(updated)}


@router.delete("/delete/{book_id}")
def delete_single_book(book_id: str):
    deleted = delete_document(COLLECTION, book_id)
    if not deleted:
        raise NotFoundError("Book is not present")
    logger.info(f"Book deleted: {book_id}")
    return {"success": True, "data": serialize_document(deleted)}
