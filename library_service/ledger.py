"""
Loan ledger: issues loans and drives them through their lifecycle.

    ACTIVE --return (on time)--> RETURNED
    ACTIVE --return (late)-----> OVERDUE
    ACTIVE --sweep (past due)--> OVERDUE
    ACTIVE --mark lost---------> LOST
    ACTIVE --extend------------> ACTIVE (due date pushed)

A swept OVERDUE loan (no return date yet) can still be returned or marked
lost. Once return_date is set the loan is closed.

Every public operation runs in one transaction. Book and loan rows that get
mutated are read with row locks, so two issues against the last copy of a
book cannot both succeed.
"""
import logging
from datetime import timedelta

from .clock import SystemClock
from .db import transaction
from .errors import (
    LibraryError,
    NotFound,
    OutOfStock,
    MemberNotEligible,
    LoanLimitExceeded,
    DuplicateLoan,
    AlreadyReturned,
    ExtensionNotAllowed,
)
from .models import Loan, OVERDUE_FEE_PER_DAY
from .repository import LibraryRepository

logger = logging.getLogger(__name__)

LOAN_PERIOD_DAYS = 14
EXTENSION_DAYS = 7


class LoanLedger:
    def __init__(
        self,
        session_factory,
        clock=None,
        loan_period_days=LOAN_PERIOD_DAYS,
        extension_days=EXTENSION_DAYS,
        fee_per_day=OVERDUE_FEE_PER_DAY,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.loan_period_days = loan_period_days
        self.extension_days = extension_days
        self.fee_per_day = fee_per_day

    # ----------------- helpers -----------------

    def _get_loan(self, repo, loan_id):
        loan = repo.find_loan_by_id(loan_id, lock=True)
        if not loan:
            raise NotFound(f"Loan {loan_id} not found")
        return loan

    def _validate_eligibility(self, repo, book, member):
        if not member.can_loan():
            raise MemberNotEligible(
                f"Member {member.id} cannot borrow while {member.status}"
            )

        if book.available_copies <= 0:
            raise OutOfStock(f"No copies of book {book.id} available")

        current = repo.count_active_loans_by_member(member.id)
        if current >= member.max_loan_count:
            raise LoanLimitExceeded(
                f"Loan limit reached: {current} active, {member.max_loan_count} allowed"
            )

        active = repo.find_active_loans_by_member(member.id)
        if any(loan.book_id == book.id for loan in active):
            raise DuplicateLoan(f"Member {member.id} already has book {book.id} on loan")

    # ----------------- operations -----------------

    def issue_loan(self, book_id, member_id):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)

            member = repo.find_member_by_id(member_id, lock=True)
            if not member:
                raise NotFound(f"Member {member_id} not found")
            book = repo.find_book_by_id(book_id, lock=True)
            if not book:
                raise NotFound(f"Book {book_id} not found")

            try:
                self._validate_eligibility(repo, book, member)
            except LibraryError as e:
                logger.warning(
                    "Loan refused book=%s member=%s: %s", book_id, member_id, e
                )
                raise

            loan = Loan(
                book_id=book.id,
                member_id=member.id,
                loan_date=today,
                due_date=today + timedelta(days=self.loan_period_days),
                status="ACTIVE",
                overdue_fee=0,
            )
            book.loan_book()
            repo.save_book(book)
            repo.save_loan(loan)

        logger.info(
            "Issued loan %s book=%s member=%s due=%s",
            loan.id,
            book_id,
            member_id,
            loan.due_date,
        )
        return loan

    def return_loan(self, loan_id):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            loan = self._get_loan(repo, loan_id)

            if loan.status == "RETURNED" or loan.return_date is not None:
                raise AlreadyReturned(f"Loan {loan_id} was already returned")

            loan.return_date = today
            days_late = loan.overdue_days(today)
            loan.overdue_fee = days_late * self.fee_per_day
            loan.status = "OVERDUE" if days_late > 0 else "RETURNED"

            if loan.book_id is not None:
                book = repo.find_book_by_id(loan.book_id, lock=True)
                if book:
                    book.return_book()
                    repo.save_book(book)
            repo.save_loan(loan)

        logger.info(
            "Returned loan %s status=%s days_late=%s fee=%s",
            loan_id,
            loan.status,
            days_late,
            loan.overdue_fee,
        )
        return loan

    def extend_loan(self, loan_id):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            loan = self._get_loan(repo, loan_id)

            if loan.status != "ACTIVE" or loan.is_overdue(today):
                logger.warning(
                    "Extension refused for loan %s status=%s due=%s",
                    loan_id,
                    loan.status,
                    loan.due_date,
                )
                raise ExtensionNotAllowed(
                    f"Loan {loan_id} cannot be extended (status {loan.status}, due {loan.due_date})"
                )

            loan.due_date = loan.due_date + timedelta(days=self.extension_days)
            loan.append_note(f"Extended - {today.isoformat()}")
            repo.save_loan(loan)

        logger.info("Extended loan %s to %s", loan_id, loan.due_date)
        return loan

    def mark_as_lost(self, loan_id, reason=None):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            loan = self._get_loan(repo, loan_id)

            if loan.status == "RETURNED" or loan.return_date is not None:
                raise AlreadyReturned(f"Loan {loan_id} was already returned")

            # the copy is gone, so the book is not restocked
            loan.status = "LOST"
            loan.overdue_fee = loan.calculate_overdue_fee(today, self.fee_per_day)
            loan.append_note(f"Marked lost - {today.isoformat()}")
            if reason and reason.strip():
                loan.append_note(f"Lost reason: {reason.strip()}")
            repo.save_loan(loan)

        logger.info("Loan %s marked lost, fee=%s", loan_id, loan.overdue_fee)
        return loan

    def sweep_overdue(self):
        """
        Move every ACTIVE loan past its due date to OVERDUE.
        Returns the number of loans transitioned.
        """
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            candidates = [
                loan.id for loan in LibraryRepository(session).find_overdue_loans(today)
            ]

        moved = 0
        for loan_id in candidates:
            with transaction(self.session_factory) as session:
                repo = LibraryRepository(session)
                loan = repo.find_loan_by_id(loan_id, lock=True)
                # returned or swept by someone else since the scan
                if not loan or not loan.is_overdue(today):
                    continue
                loan.status = "OVERDUE"
                loan.overdue_fee = loan.calculate_overdue_fee(today, self.fee_per_day)
                repo.save_loan(loan)
                moved += 1

        logger.info("Overdue sweep as of %s moved %s loans", today, moved)
        return moved
