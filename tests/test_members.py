from datetime import date

import pytest

from library_service.errors import (
    AuthenticationFailed,
    ConflictState,
    DuplicateEntry,
    InvalidQuantity,
    NotFound,
)


def test_create_member_defaults(lib, make_member):
    member = make_member(name="Alice", email="alice@example.com")
    assert member.status == "ACTIVE"
    assert member.max_loan_count == 5
    assert member.join_date == date(2025, 9, 5)
    assert member.member_number.startswith("M20250905")
    assert lib.members.get_by_member_number(member.member_number).id == member.id
    assert lib.members.get_by_email("alice@example.com").id == member.id


def test_duplicate_email_rejected(lib, make_member):
    make_member(email="dup@example.com")
    with pytest.raises(DuplicateEntry):
        make_member(email="dup@example.com")
    assert lib.members.count_members() == 1


def test_member_numbers_are_unique(make_member):
    numbers = {make_member().member_number for _ in range(20)}
    assert len(numbers) == 20


def test_update_member(lib, make_member):
    member = make_member(email="old@example.com")
    make_member(email="taken@example.com")

    updated = lib.members.update_member(member.id, phone="555-0199", max_loan_count=2)
    assert updated.phone == "555-0199"
    assert updated.max_loan_count == 2
    assert updated.email == "old@example.com"

    with pytest.raises(DuplicateEntry):
        lib.members.update_member(member.id, email="taken@example.com")
    with pytest.raises(InvalidQuantity):
        lib.members.update_member(member.id, max_loan_count=-1)


def test_status_changes(lib, make_member):
    member = make_member()
    assert lib.members.suspend(member.id).status == "SUSPENDED"
    assert not lib.members.can_member_loan(member.id)
    assert lib.members.withdraw(member.id).status == "WITHDRAWN"
    assert lib.members.activate(member.id).status == "ACTIVE"
    assert lib.members.can_member_loan(member.id)
    assert lib.members.count_active_members() == 1


def test_delete_member_without_loans_removes_account(lib, make_member):
    member = make_member(email="reader@example.com")
    lib.auth.register("reader", "pw", "reader@example.com", "Reader")

    assert lib.members.delete_member(member.id) == 0
    with pytest.raises(NotFound):
        lib.members.get_member(member.id)
    with pytest.raises(AuthenticationFailed):
        lib.auth.authenticate("reader", "pw")


def test_delete_member_with_loans_is_blocked(lib, make_book, make_member):
    member = make_member()
    loan = lib.ledger.issue_loan(make_book().id, member.id)
    lib.ledger.return_loan(loan.id)

    with pytest.raises(ConflictState):
        lib.members.delete_member(member.id)
    assert lib.members.get_member(member.id).id == member.id


def test_force_delete_removes_loans(lib, make_book, make_member):
    member = make_member()
    book = make_book(total_copies=2)
    lib.ledger.issue_loan(book.id, member.id)

    assert lib.members.force_delete_member(member.id) == 1
    with pytest.raises(NotFound):
        lib.members.get_member(member.id)
    assert lib.reports.loan_history_by_book(book.id) == []


def test_member_queries(lib, clock, make_book, make_member):
    alice = make_member(name="Alice Smith", email="alice@example.com")
    bob = make_member(name="Bob Jones", email="bob@example.com")
    clock.set(date(2025, 10, 1))
    carol = make_member(name="Carol", email="carol@example.com")
    lib.members.suspend(carol.id)

    lib.ledger.issue_loan(make_book(title="A").id, alice.id)
    clock.set(date(2025, 10, 20))
    lib.ledger.issue_loan(make_book(title="B").id, bob.id)

    assert [m.id for m in lib.members.search("smith")] == [alice.id]
    assert [m.id for m in lib.members.search(carol.member_number)] == [carol.id]
    assert len(lib.members.search(None)) == 3
    assert [m.id for m in lib.members.by_status("SUSPENDED")] == [carol.id]
    assert [m.id for m in lib.members.active_members()] == [alice.id, bob.id]
    assert [m.id for m in lib.members.members_with_active_loans()] == [alice.id, bob.id]
    assert [m.id for m in lib.members.members_with_overdue_loans()] == [alice.id]
    assert [m.id for m in lib.members.new_members_between(date(2025, 9, 30), date(2025, 10, 31))] == [carol.id]
    assert lib.members.email_exists("bob@example.com")
    assert lib.members.member_number_exists(bob.member_number)
    assert not lib.members.member_number_exists("M000")
