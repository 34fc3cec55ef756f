from sqlalchemy import select, update, delete, func, or_

from .models import Book, Member, Loan, User


class LibraryRepository:
    """
    Id-based lookups and writes against one session.

    Passing lock=True reads the row with SELECT ... FOR UPDATE so concurrent
    writers to the same row serialize at the database.
    """

    def __init__(self, session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def _by_id(self, model, obj_id, lock=False):
        q = select(model).where(model.id == obj_id)
        if lock:
            q = q.with_for_update()
        return self.session.execute(q).scalar_one_or_none()

    # ----------------- books -----------------

    def find_book_by_id(self, book_id, lock=False):
        return self._by_id(Book, book_id, lock)

    def find_book_by_isbn(self, isbn):
        q = select(Book).where(Book.isbn == isbn)
        return self.session.execute(q).scalar_one_or_none()

    def save_book(self, book):
        return self._save(book)

    def delete_book(self, book):
        self.session.delete(book)
        self.session.flush()

    def detach_book_from_loans(self, book_id):
        """Clear book_id on every loan of the book. Returns rows touched."""
        result = self.session.execute(
            update(Loan).where(Loan.book_id == book_id).values(book_id=None)
        )
        return result.rowcount

    def list_books(self):
        return self.session.execute(select(Book).order_by(Book.id)).scalars().all()

    def search_books(self, title=None, author=None, keyword=None):
        q = select(Book)
        if keyword:
            like = f"%{keyword}%"
            q = q.where(or_(Book.title.ilike(like), Book.author.ilike(like)))
        if title:
            q = q.where(Book.title.ilike(f"%{title}%"))
        if author:
            q = q.where(Book.author.ilike(f"%{author}%"))
        return self.session.execute(q.order_by(Book.id)).scalars().all()

    def books_by_category(self, category):
        q = select(Book).where(Book.category == category).order_by(Book.id)
        return self.session.execute(q).scalars().all()

    def available_books(self):
        q = select(Book).where(Book.available_copies > 0).order_by(Book.id)
        return self.session.execute(q).scalars().all()

    def out_of_stock_books(self):
        q = select(Book).where(Book.available_copies == 0).order_by(Book.id)
        return self.session.execute(q).scalars().all()

    def popular_books(self, limit):
        loan_count = func.count(Loan.id).label("loan_count")
        q = (
            select(Book, loan_count)
            .join(Loan, Loan.book_id == Book.id)
            .group_by(Book.id)
            .order_by(loan_count.desc(), Book.id)
            .limit(limit)
        )
        return [(book, count) for book, count in self.session.execute(q).all()]

    def count_books(self):
        return self.session.execute(select(func.count(Book.id))).scalar_one()

    # ----------------- members -----------------

    def find_member_by_id(self, member_id, lock=False):
        return self._by_id(Member, member_id, lock)

    def find_member_by_number(self, member_number):
        q = select(Member).where(Member.member_number == member_number)
        return self.session.execute(q).scalar_one_or_none()

    def find_member_by_email(self, email):
        q = select(Member).where(Member.email == email)
        return self.session.execute(q).scalar_one_or_none()

    def save_member(self, member):
        return self._save(member)

    def delete_member(self, member):
        self.session.delete(member)
        self.session.flush()

    def list_members(self):
        return self.session.execute(select(Member).order_by(Member.id)).scalars().all()

    def search_members(self, keyword):
        like = f"%{keyword}%"
        q = (
            select(Member)
            .where(
                or_(
                    Member.name.ilike(like),
                    Member.email.ilike(like),
                    Member.member_number.ilike(like),
                )
            )
            .order_by(Member.id)
        )
        return self.session.execute(q).scalars().all()

    def members_by_status(self, status):
        q = select(Member).where(Member.status == status).order_by(Member.id)
        return self.session.execute(q).scalars().all()

    def members_with_loans_in(self, *conditions):
        q = (
            select(Member)
            .where(Member.id.in_(select(Loan.member_id).where(*conditions)))
            .order_by(Member.id)
        )
        return self.session.execute(q).scalars().all()

    def members_joined_between(self, start, end):
        q = (
            select(Member)
            .where(Member.join_date.between(start, end))
            .order_by(Member.join_date, Member.id)
        )
        return self.session.execute(q).scalars().all()

    def count_members(self, status=None):
        q = select(func.count(Member.id))
        if status:
            q = q.where(Member.status == status)
        return self.session.execute(q).scalar_one()

    def member_number_exists(self, member_number):
        return self.find_member_by_number(member_number) is not None

    def member_email_exists(self, email):
        return self.find_member_by_email(email) is not None

    # ----------------- loans -----------------

    def find_loan_by_id(self, loan_id, lock=False):
        return self._by_id(Loan, loan_id, lock)

    def save_loan(self, loan):
        return self._save(loan)

    def find_active_loans_by_member(self, member_id):
        q = select(Loan).where(Loan.member_id == member_id, Loan.status == "ACTIVE")
        return self.session.execute(q.order_by(Loan.id)).scalars().all()

    def count_active_loans_by_member(self, member_id):
        q = select(func.count(Loan.id)).where(
            Loan.member_id == member_id, Loan.status == "ACTIVE"
        )
        return self.session.execute(q).scalar_one()

    def find_overdue_loans(self, as_of):
        """ACTIVE loans whose due date is before as_of."""
        q = select(Loan).where(Loan.status == "ACTIVE", Loan.due_date < as_of)
        return self.session.execute(q.order_by(Loan.id)).scalars().all()

    def find_loans_by_member(self, member_id):
        q = (
            select(Loan)
            .where(Loan.member_id == member_id)
            .order_by(Loan.loan_date.desc(), Loan.id.desc())
        )
        return self.session.execute(q).scalars().all()

    def find_loans_by_book(self, book_id):
        q = (
            select(Loan)
            .where(Loan.book_id == book_id)
            .order_by(Loan.loan_date.desc(), Loan.id.desc())
        )
        return self.session.execute(q).scalars().all()

    def find_loans_by_status(self, status):
        q = select(Loan).where(Loan.status == status).order_by(Loan.id)
        return self.session.execute(q).scalars().all()

    def find_loans_due_on(self, day, status="ACTIVE"):
        q = select(Loan).where(Loan.due_date == day, Loan.status == status)
        return self.session.execute(q.order_by(Loan.id)).scalars().all()

    def find_loans_between(self, start, end):
        q = (
            select(Loan)
            .where(Loan.loan_date.between(start, end))
            .order_by(Loan.loan_date, Loan.id)
        )
        return self.session.execute(q).scalars().all()

    def recent_loans(self, limit):
        q = select(Loan).order_by(Loan.loan_date.desc(), Loan.id.desc()).limit(limit)
        return self.session.execute(q).scalars().all()

    def count_loans(self, *conditions):
        q = select(func.count(Loan.id)).where(*conditions)
        return self.session.execute(q).scalar_one()

    def total_fee_by_member(self, member_id):
        q = select(func.coalesce(func.sum(Loan.overdue_fee), 0)).where(
            Loan.member_id == member_id
        )
        return self.session.execute(q).scalar_one()

    def loan_exists_for_member(self, member_id):
        return self.count_loans(Loan.member_id == member_id) > 0

    def delete_loans_by_member(self, member_id):
        result = self.session.execute(delete(Loan).where(Loan.member_id == member_id))
        return result.rowcount

    # ----------------- users -----------------

    def find_user_by_id(self, user_id):
        return self._by_id(User, user_id)

    def find_user_by_username(self, username):
        q = select(User).where(User.username == username)
        return self.session.execute(q).scalar_one_or_none()

    def find_user_by_email(self, email):
        q = select(User).where(User.email == email)
        return self.session.execute(q).scalar_one_or_none()

    def save_user(self, user):
        return self._save(user)

    def delete_user(self, user):
        self.session.delete(user)
        self.session.flush()
