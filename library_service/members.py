import logging
import random
from datetime import date

from .clock import SystemClock
from .db import transaction
from .errors import NotFound, DuplicateEntry, InvalidQuantity, ConflictState
from .models import Loan, Member
from .repository import LibraryRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOAN_COUNT = 5
UPDATABLE_FIELDS = ("name", "email", "phone", "address", "max_loan_count")


def generate_member_number(today: date) -> str:
    """M + YYYYMMDD + three digits, e.g. M20250919042."""
    return f"M{today.strftime('%Y%m%d')}{random.randint(0, 999):03d}"


class MemberService:
    """Borrower records, their status and loan quota."""

    def __init__(self, session_factory, clock=None, default_max_loan_count=DEFAULT_MAX_LOAN_COUNT):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.default_max_loan_count = default_max_loan_count

    def _get(self, repo, member_id, lock=False):
        member = repo.find_member_by_id(member_id, lock=lock)
        if not member:
            raise NotFound(f"Member {member_id} not found")
        return member

    def create_member(self, name, email, phone=None, address=None, max_loan_count=None):
        if max_loan_count is None:
            max_loan_count = self.default_max_loan_count
        if max_loan_count < 0:
            raise InvalidQuantity("max_loan_count cannot be negative")

        today = self.clock.today()
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            if repo.member_email_exists(email):
                raise DuplicateEntry(f"Email {email} is already registered")

            number = generate_member_number(today)
            while repo.member_number_exists(number):
                number = generate_member_number(today)

            member = Member(
                member_number=number,
                name=name,
                email=email,
                phone=phone,
                address=address,
                join_date=today,
                status="ACTIVE",
                max_loan_count=max_loan_count,
            )
            repo.save_member(member)

        logger.info("Created member %s number=%s", member.id, number)
        return member

    def get_member(self, member_id):
        with transaction(self.session_factory) as session:
            return self._get(LibraryRepository(session), member_id)

    def get_by_member_number(self, member_number):
        with transaction(self.session_factory) as session:
            member = LibraryRepository(session).find_member_by_number(member_number)
        if not member:
            raise NotFound(f"Member number {member_number} not found")
        return member

    def get_by_email(self, email):
        with transaction(self.session_factory) as session:
            member = LibraryRepository(session).find_member_by_email(email)
        if not member:
            raise NotFound(f"Member with email {email} not found")
        return member

    def update_member(self, member_id, **fields):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            member = self._get(repo, member_id, lock=True)

            new_email = fields.get("email")
            if new_email and new_email != member.email and repo.member_email_exists(new_email):
                raise DuplicateEntry(f"Email {new_email} is already registered")
            if fields.get("max_loan_count") is not None and fields["max_loan_count"] < 0:
                raise InvalidQuantity("max_loan_count cannot be negative")

            for name in UPDATABLE_FIELDS:
                if fields.get(name) is not None:
                    setattr(member, name, fields[name])
            repo.save_member(member)

        logger.info("Updated member %s", member_id)
        return member

    def _transition(self, member_id, action):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            member = self._get(repo, member_id, lock=True)
            getattr(member, action)()
            repo.save_member(member)

        logger.info("Member %s -> %s", member_id, member.status)
        return member

    def activate(self, member_id):
        return self._transition(member_id, "activate")

    def suspend(self, member_id):
        return self._transition(member_id, "suspend")

    def withdraw(self, member_id):
        return self._transition(member_id, "withdraw")

    def delete_member(self, member_id, force=False):
        """
        Delete a member and the login account sharing its email.

        Refused while any loan references the member, unless force is set,
        in which case those loans are deleted first.
        """
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            member = self._get(repo, member_id, lock=True)

            removed = 0
            if repo.loan_exists_for_member(member.id):
                if not force:
                    raise ConflictState(
                        f"Member {member_id} has loan records; settle or force-delete them first"
                    )
                removed = repo.delete_loans_by_member(member.id)

            account = repo.find_user_by_email(member.email)
            if account:
                repo.delete_user(account)
            repo.delete_member(member)

        logger.info("Deleted member %s (force=%s, loans removed=%s)", member_id, force, removed)
        return removed

    def force_delete_member(self, member_id):
        return self.delete_member(member_id, force=True)

    # ----------------- queries -----------------

    def list_members(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).list_members()

    def search(self, keyword=None):
        if not keyword or not keyword.strip():
            return self.list_members()
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).search_members(keyword.strip())

    def by_status(self, status):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).members_by_status(status)

    def active_members(self):
        return self.by_status("ACTIVE")

    def members_with_active_loans(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).members_with_loans_in(Loan.status == "ACTIVE")

    def members_with_overdue_loans(self):
        today = self.clock.today()
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).members_with_loans_in(
                Loan.status == "ACTIVE", Loan.due_date < today
            )

    def new_members_between(self, start, end):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).members_joined_between(start, end)

    def can_member_loan(self, member_id):
        return self.get_member(member_id).can_loan()

    def email_exists(self, email):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).member_email_exists(email)

    def member_number_exists(self, member_number):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).member_number_exists(member_number)

    def count_members(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).count_members()

    def count_active_members(self):
        with transaction(self.session_factory) as session:
            return LibraryRepository(session).count_members(status="ACTIVE")
