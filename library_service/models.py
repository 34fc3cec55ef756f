from datetime import datetime, date

from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Text,
)

from .errors import OutOfStock, InvalidQuantity

Base = declarative_base()

LOAN_STATUSES = ("ACTIVE", "RETURNED", "OVERDUE", "LOST")
MEMBER_STATUSES = ("ACTIVE", "SUSPENDED", "WITHDRAWN")
ROLES = ("ADMIN", "USER")

# Fixed late fee, currency units per day. No cap, no grace period.
OVERDUE_FEE_PER_DAY = 100


class Book(Base):
    __tablename__ = "book"

    id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(20), unique=True)
    title = Column(String(200), nullable=False)
    author = Column(String(100), nullable=False)
    category = Column(String(50))
    publisher = Column(String(100))
    published_date = Column(Date)
    description = Column(Text)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    @property
    def loaned_count(self):
        return self.total_copies - self.available_copies

    def loan_book(self):
        if self.available_copies <= 0:
            raise OutOfStock(f"No copies of book {self.id} available")
        self.available_copies -= 1

    def return_book(self):
        # guards against a double return pushing availability past the total
        if self.available_copies < self.total_copies:
            self.available_copies += 1

    def adjust_total_copies(self, new_total):
        loaned = self.loaned_count
        if new_total < 0:
            raise InvalidQuantity("Total copies cannot be negative")
        if new_total < loaned:
            raise InvalidQuantity(
                f"New total {new_total} is below the {loaned} copies currently on loan"
            )
        self.total_copies = new_total
        self.available_copies = new_total - loaned


class Member(Base):
    __tablename__ = "member"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_number = Column(String(20), unique=True, nullable=False)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(15))
    address = Column(String(200))
    join_date = Column(Date, nullable=False, default=date.today)
    status = Column(
        Enum(*MEMBER_STATUSES, name="member_status"),
        nullable=False,
        default="ACTIVE",
    )
    max_loan_count = Column(Integer, nullable=False, default=5)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def can_loan(self):
        return self.status == "ACTIVE"

    def suspend(self):
        self.status = "SUSPENDED"

    def activate(self):
        self.status = "ACTIVE"

    def withdraw(self):
        self.status = "WITHDRAWN"


class Loan(Base):
    """
    One copy of a book borrowed by one member.

    book_id is cleared (not cascaded) when the book is deleted so the
    loan history survives.
    """
    __tablename__ = "loan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("book.id"), nullable=True, index=True)
    member_id = Column(Integer, ForeignKey("member.id"), nullable=False, index=True)
    loan_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date)
    status = Column(
        Enum(*LOAN_STATUSES, name="loan_status"),
        nullable=False,
        default="ACTIVE",
    )
    overdue_fee = Column(Integer, nullable=False, default=0)
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def overdue_days(self, today):
        effective = self.return_date or today
        if effective > self.due_date:
            return (effective - self.due_date).days
        return 0

    def calculate_overdue_fee(self, today, rate=OVERDUE_FEE_PER_DAY):
        return self.overdue_days(today) * rate

    def is_overdue(self, today):
        return self.status == "ACTIVE" and today > self.due_date

    def append_note(self, text):
        self.notes = f"{self.notes} | {text}" if self.notes else text


class User(Base):
    """
    Login account. Linked to a Member by email when one exists.
    """
    __tablename__ = "user_account"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(50), nullable=False)
    role = Column(Enum(*ROLES, name="user_role"), nullable=False, default="USER")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
