import pytest

from library_service.errors import ConflictState, DuplicateEntry, InvalidQuantity, NotFound


def test_register_and_lookup(lib, make_book):
    book = make_book(title="Ulysses", author="James Joyce", isbn="9780199535675", total_copies=3)
    assert (book.total_copies, book.available_copies) == (3, 3)
    assert lib.books.find_by_isbn("9780199535675").id == book.id
    assert lib.books.exists(book.id)
    assert not lib.books.exists(book.id + 1)


def test_register_rejects_duplicate_isbn(lib, make_book):
    make_book(isbn="1234567890")
    with pytest.raises(DuplicateEntry):
        make_book(title="Other", isbn="1234567890")
    assert lib.books.count_books() == 1


def test_register_rejects_negative_copies(make_book):
    with pytest.raises(InvalidQuantity):
        make_book(total_copies=-1)


def test_get_missing_book(lib):
    with pytest.raises(NotFound):
        lib.books.get_book(42)
    with pytest.raises(NotFound):
        lib.books.find_by_isbn("nope")


def test_update_book_fields_and_copies(lib, make_book, make_member):
    book = make_book(total_copies=2)
    lib.ledger.issue_loan(book.id, make_member().id)

    updated = lib.books.update_book(book.id, title="Clean Code 2nd ed.", total_copies=4)
    assert updated.title == "Clean Code 2nd ed."
    assert updated.author == "Robert C. Martin"
    assert (updated.total_copies, updated.available_copies) == (4, 3)


def test_update_book_rejects_taken_isbn(lib, make_book):
    make_book(isbn="111")
    book = make_book(title="Other", isbn="222")
    with pytest.raises(DuplicateEntry):
        lib.books.update_book(book.id, isbn="111")
    assert lib.books.get_book(book.id).isbn == "222"


def test_adjust_below_loaned_count_is_rejected(lib, make_book, make_member):
    book = make_book(total_copies=2)
    lib.ledger.issue_loan(book.id, make_member().id)
    lib.ledger.issue_loan(book.id, make_member().id)

    with pytest.raises(InvalidQuantity):
        lib.books.adjust_total_copies(book.id, 1)
    current = lib.books.get_book(book.id)
    assert (current.total_copies, current.available_copies) == (2, 0)


def test_delete_blocked_while_copies_are_out(lib, make_book, make_member):
    book = make_book()
    lib.ledger.issue_loan(book.id, make_member().id)
    with pytest.raises(ConflictState):
        lib.books.delete_book(book.id)
    assert lib.books.exists(book.id)


def test_delete_detaches_historical_loans(lib, clock, make_book, make_member):
    book = make_book(total_copies=2)
    first = lib.ledger.issue_loan(book.id, make_member().id)
    second = lib.ledger.issue_loan(book.id, make_member().id)
    lib.ledger.return_loan(first.id)
    lib.ledger.return_loan(second.id)

    assert lib.books.delete_book(book.id) == 2
    assert not lib.books.exists(book.id)

    for original in (first, second):
        kept = lib.reports.get_loan(original.id)
        assert kept.book_id is None
        assert kept.member_id == original.member_id
        assert kept.status == "RETURNED"
        assert kept.loan_date == original.loan_date
        assert kept.due_date == original.due_date


def test_search_and_listing(lib, make_book, make_member):
    make_book(title="Dune", author="Frank Herbert", category="SF")
    taken = make_book(title="Neuromancer", author="William Gibson", category="SF")
    make_book(title="Emma", author="Jane Austen", category="Classic")
    lib.ledger.issue_loan(taken.id, make_member().id)

    assert [b.title for b in lib.books.search("herb")] == ["Dune"]
    assert len(lib.books.search("  ")) == 3
    assert [b.title for b in lib.books.search_by_author("austen")] == ["Emma"]
    assert [b.title for b in lib.books.search_by_title("NEURO")] == ["Neuromancer"]
    assert {b.title for b in lib.books.by_category("SF")} == {"Dune", "Neuromancer"}
    assert [b.title for b in lib.books.out_of_stock_books()] == ["Neuromancer"]
    assert len(lib.books.available_books()) == 2


def test_popular_books_ranked_by_loans(lib, make_book, make_member):
    quiet = make_book(title="Quiet")
    busy = make_book(title="Busy", total_copies=3)
    for _ in range(2):
        lib.ledger.issue_loan(busy.id, make_member().id)
    lib.ledger.issue_loan(quiet.id, make_member().id)

    ranked = lib.books.popular_books(limit=5)
    assert [(b.title, n) for b, n in ranked] == [("Busy", 2), ("Quiet", 1)]
