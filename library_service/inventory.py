import logging

from .db import transaction
from .errors import NotFound, DuplicateEntry, InvalidQuantity, ConflictState
from .models import Book
from .repository import LibraryRepository

logger = logging.getLogger(__name__)

BOOK_FIELDS = (
    "title",
    "author",
    "isbn",
    "category",
    "publisher",
    "published_date",
    "description",
)


class BookService:
    """Catalog and copy accounting for books."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _get(self, repo, book_id, lock=False):
        book = repo.find_book_by_id(book_id, lock=lock)
        if not book:
            raise NotFound(f"Book {book_id} not found")
        return book

    def register_book(self, title, author, isbn=None, total_copies=1, **fields):
        if total_copies is None:
            total_copies = 1
        if total_copies < 0:
            raise InvalidQuantity("Total copies cannot be negative")

        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            if isbn and repo.find_book_by_isbn(isbn):
                raise DuplicateEntry(f"ISBN {isbn} is already registered")

            book = Book(
                title=title,
                author=author,
                isbn=isbn,
                total_copies=total_copies,
                available_copies=total_copies,
                **{k: v for k, v in fields.items() if k in BOOK_FIELDS},
            )
            repo.save_book(book)

        logger.info("Registered book %s isbn=%s copies=%s", book.id, isbn, total_copies)
        return book

    def get_book(self, book_id):
        with transaction(self.session_factory) as session:
            return self._get(LibraryRepository(session), book_id)

    def find_by_isbn(self, isbn):
        with transaction(self.session_factory) as session:
            book = LibraryRepository(session).find_book_by_isbn(isbn)
        if not book:
            raise NotFound(f"Book with ISBN {isbn} not found")
        return book

    def exists(self, book_id):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).find_book_by_id(book_id) is not None

    def update_book(self, book_id, **fields):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            book = self._get(repo, book_id, lock=True)

            new_isbn = fields.get("isbn")
            if new_isbn and new_isbn != book.isbn and repo.find_book_by_isbn(new_isbn):
                raise DuplicateEntry(f"ISBN {new_isbn} is already registered")

            for name in BOOK_FIELDS:
                if name in fields:
                    setattr(book, name, fields[name])

            if fields.get("total_copies") is not None:
                book.adjust_total_copies(fields["total_copies"])
            repo.save_book(book)

        logger.info("Updated book %s", book_id)
        return book

    def adjust_total_copies(self, book_id, new_total):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            book = self._get(repo, book_id, lock=True)
            book.adjust_total_copies(new_total)
            repo.save_book(book)

        logger.info(
            "Book %s copies total=%s available=%s",
            book_id,
            book.total_copies,
            book.available_copies,
        )
        return book

    def delete_book(self, book_id):
        """
        Delete a book with no copies out. Its past loans stay, with the book
        reference cleared.
        """
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            book = self._get(repo, book_id, lock=True)
            if book.loaned_count > 0:
                raise ConflictState(
                    f"Book {book_id} has {book.loaned_count} copies on loan"
                )
            detached = repo.detach_book_from_loans(book.id)
            repo.delete_book(book)

        logger.info("Deleted book %s, detached %s loans", book_id, detached)
        return detached

    # ----------------- queries -----------------

    def list_books(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).list_books()

    def search(self, keyword=None):
        if not keyword or not keyword.strip():
            return self.list_books()
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).search_books(keyword=keyword.strip())

    def search_by_title(self, title):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).search_books(title=title)

    def search_by_author(self, author):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).search_books(author=author)

    def by_category(self, category):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).books_by_category(category)

    def available_books(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).available_books()

    def out_of_stock_books(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).out_of_stock_books()

    def popular_books(self, limit=10):
        """[(book, loan_count)] most borrowed first."""
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).popular_books(limit)

    def count_books(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).count_books()
