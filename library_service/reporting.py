"""
Read-only views over the loan ledger: histories, overdue lists, statistics
and dashboard counters.
"""
from collections import namedtuple

from sqlalchemy import select

from .clock import SystemClock
from .db import transaction
from .errors import NotFound
from .models import Book, Loan, Member
from .repository import LibraryRepository

LoanStatistics = namedtuple(
    "LoanStatistics", ["total_loans", "active_loans", "overdue_loans", "returned_loans"]
)

DELETED_BOOK_TITLE = "(deleted book)"
DELETED_MEMBER_NAME = "(deleted member)"


def _iso(value):
    return value.isoformat() if value else None


class LoanReports:
    def __init__(self, session_factory, clock=None):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

    def _member(self, repo, member_id):
        member = repo.find_member_by_id(member_id)
        if not member:
            raise NotFound(f"Member {member_id} not found")
        return member

    def get_loan(self, loan_id):
        with transaction(self.session_factory) as session:
            loan = LibraryRepository(session).find_loan_by_id(loan_id)
        if not loan:
            raise NotFound(f"Loan {loan_id} not found")
        return loan

    def active_loans_by_member(self, member_id):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            self._member(repo, member_id)
            return repo.find_active_loans_by_member(member_id)

    def loan_history_by_member(self, member_id):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            self._member(repo, member_id)
            return repo.find_loans_by_member(member_id)

    def loan_history_by_book(self, book_id):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            if not repo.find_book_by_id(book_id):
                raise NotFound(f"Book {book_id} not found")
            return repo.find_loans_by_book(book_id)

    def overdue_loans(self):
        """ACTIVE loans already past their due date (not yet swept)."""
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).find_overdue_loans(self.clock.today())

    def due_today(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).find_loans_due_on(self.clock.today())

    def loans_by_status(self, status):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).find_loans_by_status(status)

    def loans_between(self, start, end):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).find_loans_between(start, end)

    def total_overdue_fee_by_member(self, member_id):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            self._member(repo, member_id)
            return int(repo.total_fee_by_member(member_id))

    def current_loan_count(self, member_id):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            self._member(repo, member_id)
            return repo.count_active_loans_by_member(member_id)

    def recent_loans(self, limit=10):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).recent_loans(limit)

    def statistics(self):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            return LoanStatistics(
                total_loans=repo.count_loans(),
                active_loans=repo.count_loans(Loan.status == "ACTIVE"),
                overdue_loans=repo.count_loans(Loan.status == "ACTIVE", Loan.due_date < today),
                returned_loans=repo.count_loans(Loan.status == "RETURNED"),
            )

    def dashboard_stats(self):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            return {
                "total_books": repo.count_books(),
                "total_members": repo.count_members(),
                "active_loans": repo.count_loans(Loan.status == "ACTIVE"),
                "overdue_loans": repo.count_loans(
                    Loan.status == "ACTIVE", Loan.due_date < today
                ),
            }

    def member_dashboard(self, email, limit=5):
        """
        Counters for the member linked to an account email. An account with
        no member record gets zeros.
        """
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            member = repo.find_member_by_email(email)
            if not member:
                return {
                    "active_loans": 0,
                    "overdue_loans": 0,
                    "total_loans": 0,
                    "recent_loans": [],
                }
            history = repo.find_loans_by_member(member.id)
            active = [loan for loan in history if loan.status == "ACTIVE"]
            return {
                "active_loans": len(active),
                "overdue_loans": len([loan for loan in active if loan.due_date < today]),
                "total_loans": len(history),
                "recent_loans": self._describe(session, history[:limit]),
            }

    # ----------------- serialization -----------------

    def describe(self, loans):
        """Loans as JSON-ready dicts with book and member details joined in."""
        with transaction(self.session_factory) as session:
            return self._describe(session, loans)

    def _describe(self, session, loans):
        book_ids = {loan.book_id for loan in loans if loan.book_id is not None}
        member_ids = {loan.member_id for loan in loans}
        books = {}
        members = {}
        if book_ids:
            rows = session.execute(select(Book).where(Book.id.in_(book_ids))).scalars()
            books = {b.id: b for b in rows}
        if member_ids:
            rows = session.execute(select(Member).where(Member.id.in_(member_ids))).scalars()
            members = {m.id: m for m in rows}

        today = self.clock.today()
        result = []
        for loan in loans:
            book = books.get(loan.book_id)
            member = members.get(loan.member_id)
            result.append(
                {
                    "id": loan.id,
                    "book_id": loan.book_id,
                    "book_title": book.title if book else DELETED_BOOK_TITLE,
                    "book_isbn": book.isbn if book else None,
                    "member_id": loan.member_id,
                    "member_name": member.name if member else DELETED_MEMBER_NAME,
                    "member_number": member.member_number if member else None,
                    "loan_date": _iso(loan.loan_date),
                    "due_date": _iso(loan.due_date),
                    "return_date": _iso(loan.return_date),
                    "status": loan.status,
                    "overdue_fee": loan.overdue_fee,
                    "overdue_days": loan.overdue_days(today),
                    "notes": loan.notes,
                }
            )
        return result
