from datetime import date
from functools import wraps

from flask import Blueprint, abort, current_app, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required, verify_jwt_in_request

from .auth import issue_token, role_required
from .models import LOAN_STATUSES, MEMBER_STATUSES

api = Blueprint("api", __name__, url_prefix="/api")

ADMIN = "ADMIN"
USER = "USER"


# ----------------- helpers -----------------

def services():
    return current_app.extensions["library"]


def json_body():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        abort(400, description="JSON object body required")
    return data


def required(data, *names):
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")
    return [data[n] for n in names]


def as_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an integer")


def as_date(value, name):
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an ISO date (YYYY-MM-DD)")


def admin_or_api_key(func):
    """
    Batch endpoints are called either by an admin or by a scheduler
    holding the service API key.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("SERVICE_API_KEY")
        sent = request.headers.get("X-API-Key")
        if expected and sent == expected:
            return func(*args, **kwargs)
        verify_jwt_in_request()
        if get_jwt().get("role") != ADMIN:
            abort(403, description="Insufficient role")
        return func(*args, **kwargs)

    return wrapper


def book_to_dict(b):
    return {
        "id": b.id,
        "isbn": b.isbn,
        "title": b.title,
        "author": b.author,
        "category": b.category,
        "publisher": b.publisher,
        "published_date": b.published_date.isoformat() if b.published_date else None,
        "description": b.description,
        "total_copies": b.total_copies,
        "available_copies": b.available_copies,
    }


def member_to_dict(m):
    return {
        "id": m.id,
        "member_number": m.member_number,
        "name": m.name,
        "email": m.email,
        "phone": m.phone,
        "address": m.address,
        "join_date": m.join_date.isoformat(),
        "status": m.status,
        "max_loan_count": m.max_loan_count,
    }


def loans_response(loans):
    return jsonify(services().reports.describe(loans))


def loan_response(loan, status=200):
    return jsonify(services().reports.describe([loan])[0]), status


# ----------------- health -----------------

@api.get("/health")
def health():
    return jsonify({"status": "ok", "service": "library_service"})


# ----------------- auth -----------------

@api.post("/auth/register")
def register():
    data = json_body()
    username, password, email, name = required(data, "username", "password", "email", "name")
    user = services().auth.register(username, password, email, name)
    return jsonify({"id": user.id, "username": user.username, "role": user.role}), 201


@api.post("/auth/login")
def login():
    data = json_body()
    username, password = required(data, "username", "password")
    user = services().auth.authenticate(username, password)
    return jsonify(
        {
            "access_token": issue_token(user),
            "user": {"id": user.id, "username": user.username, "role": user.role},
        }
    )


@api.get("/auth/me")
@jwt_required()
def me():
    user = services().auth.get_user(int(get_jwt_identity()))
    return jsonify(
        {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "name": user.name,
            "role": user.role,
        }
    )


@api.post("/auth/withdraw")
@jwt_required()
def withdraw():
    data = json_body()
    (password,) = required(data, "password")
    services().auth.withdraw(get_jwt().get("username"), password)
    return jsonify({"message": "Account withdrawn"})


# ----------------- books -----------------

@api.get("/books")
@role_required(ADMIN, USER)
def list_books():
    title = request.args.get("title")
    author = request.args.get("author")
    category = request.args.get("category")
    books = services().books
    if title:
        result = books.search_by_title(title)
    elif author:
        result = books.search_by_author(author)
    elif category:
        result = books.by_category(category)
    else:
        result = books.list_books()
    return jsonify([book_to_dict(b) for b in result])


@api.post("/books")
@role_required(ADMIN)
def create_book():
    data = json_body()
    title, author = required(data, "title", "author")
    book = services().books.register_book(
        title=title,
        author=author,
        isbn=data.get("isbn"),
        total_copies=as_int(data.get("total_copies", 1), "total_copies"),
        category=data.get("category"),
        publisher=data.get("publisher"),
        published_date=as_date(data.get("published_date"), "published_date"),
        description=data.get("description"),
    )
    return jsonify(book_to_dict(book)), 201


@api.get("/books/<int:book_id>")
@role_required(ADMIN, USER)
def get_book(book_id):
    return jsonify(book_to_dict(services().books.get_book(book_id)))


@api.put("/books/<int:book_id>")
@role_required(ADMIN)
def update_book(book_id):
    data = json_body()
    null_fields = [k for k in ("title", "author") if k in data and data[k] in (None, "")]
    if null_fields:
        abort(400, description=f"{', '.join(null_fields)} cannot be empty")
    fields = {
        k: data[k]
        for k in ("title", "author", "isbn", "category", "publisher", "description")
        if k in data
    }
    if "published_date" in data:
        fields["published_date"] = as_date(data["published_date"], "published_date")
    if data.get("total_copies") is not None:
        fields["total_copies"] = as_int(data["total_copies"], "total_copies")
    book = services().books.update_book(book_id, **fields)
    return jsonify(book_to_dict(book))


@api.put("/books/<int:book_id>/copies")
@role_required(ADMIN)
def update_copies(book_id):
    data = json_body()
    (total,) = required(data, "total_copies")
    book = services().books.adjust_total_copies(book_id, as_int(total, "total_copies"))
    return jsonify(book_to_dict(book))


@api.delete("/books/<int:book_id>")
@role_required(ADMIN)
def delete_book(book_id):
    detached = services().books.delete_book(book_id)
    return jsonify({"message": "Deleted", "detached_loans": detached})


@api.get("/books/search")
@role_required(ADMIN, USER)
def search_books():
    result = services().books.search(request.args.get("keyword"))
    return jsonify([book_to_dict(b) for b in result])


@api.get("/books/isbn/<isbn>")
@role_required(ADMIN, USER)
def get_book_by_isbn(isbn):
    return jsonify(book_to_dict(services().books.find_by_isbn(isbn)))


@api.get("/books/available")
@role_required(ADMIN, USER)
def available_books():
    return jsonify([book_to_dict(b) for b in services().books.available_books()])


@api.get("/books/out-of-stock")
@role_required(ADMIN, USER)
def out_of_stock_books():
    return jsonify([book_to_dict(b) for b in services().books.out_of_stock_books()])


@api.get("/books/popular")
@role_required(ADMIN, USER)
def popular_books():
    limit = as_int(request.args.get("limit", 10), "limit")
    return jsonify(
        [
            dict(book_to_dict(b), loan_count=count)
            for b, count in services().books.popular_books(limit)
        ]
    )


@api.get("/books/count")
@role_required(ADMIN, USER)
def count_books():
    return jsonify({"count": services().books.count_books()})


# ----------------- members -----------------

@api.get("/members")
@role_required(ADMIN, USER)
def list_members():
    status = request.args.get("status")
    members = services().members
    if status:
        if status not in MEMBER_STATUSES:
            abort(400, description=f"status must be one of {', '.join(MEMBER_STATUSES)}")
        result = members.by_status(status)
    else:
        result = members.list_members()
    return jsonify([member_to_dict(m) for m in result])


@api.post("/members")
@role_required(ADMIN)
def create_member():
    data = json_body()
    name, email = required(data, "name", "email")
    max_loans = data.get("max_loan_count")
    member = services().members.create_member(
        name=name,
        email=email,
        phone=data.get("phone"),
        address=data.get("address"),
        max_loan_count=as_int(max_loans, "max_loan_count") if max_loans is not None else None,
    )
    return jsonify(member_to_dict(member)), 201


@api.get("/members/<int:member_id>")
@role_required(ADMIN)
def get_member(member_id):
    return jsonify(member_to_dict(services().members.get_member(member_id)))


@api.get("/members/number/<member_number>")
@role_required(ADMIN)
def get_member_by_number(member_number):
    return jsonify(member_to_dict(services().members.get_by_member_number(member_number)))


@api.put("/members/<int:member_id>")
@role_required(ADMIN)
def update_member(member_id):
    data = json_body()
    fields = {k: data.get(k) for k in ("name", "email", "phone", "address")}
    if data.get("max_loan_count") is not None:
        fields["max_loan_count"] = as_int(data["max_loan_count"], "max_loan_count")
    member = services().members.update_member(member_id, **fields)
    return jsonify(member_to_dict(member))


@api.put("/members/<int:member_id>/<action>")
@role_required(ADMIN)
def change_member_status(member_id, action):
    if action not in ("activate", "suspend", "withdraw"):
        abort(404)
    member = getattr(services().members, action)(member_id)
    return jsonify(member_to_dict(member))


@api.delete("/members/<int:member_id>")
@role_required(ADMIN)
def delete_member(member_id):
    force = request.args.get("force", "false").lower() in ("1", "true", "yes")
    removed = services().members.delete_member(member_id, force=force)
    return jsonify({"message": "Deleted", "loans_removed": removed})


@api.delete("/members/<int:member_id>/force")
@role_required(ADMIN)
def force_delete_member(member_id):
    removed = services().members.force_delete_member(member_id)
    return jsonify({"message": "Deleted", "loans_removed": removed})


@api.get("/members/search")
@role_required(ADMIN)
def search_members():
    result = services().members.search(request.args.get("keyword"))
    return jsonify([member_to_dict(m) for m in result])


@api.get("/members/<int:member_id>/can-loan")
@role_required(ADMIN)
def member_can_loan(member_id):
    return jsonify({"can_loan": services().members.can_member_loan(member_id)})


# ----------------- loans -----------------

@api.post("/loans")
@role_required(ADMIN)
def issue_loan():
    data = json_body()
    book_id, member_id = required(data, "book_id", "member_id")
    loan = services().ledger.issue_loan(
        as_int(book_id, "book_id"), as_int(member_id, "member_id")
    )
    return loan_response(loan, 201)


@api.put("/loans/<int:loan_id>/return")
@role_required(ADMIN)
def return_loan(loan_id):
    return loan_response(services().ledger.return_loan(loan_id))


@api.put("/loans/<int:loan_id>/extend")
@role_required(ADMIN)
def extend_loan(loan_id):
    return loan_response(services().ledger.extend_loan(loan_id))


@api.put("/loans/<int:loan_id>/lost")
@role_required(ADMIN)
def mark_loan_lost(loan_id):
    data = request.get_json(force=True, silent=True) or {}
    reason = data.get("reason") or request.args.get("reason")
    return loan_response(services().ledger.mark_as_lost(loan_id, reason))


@api.put("/loans/update-overdue-status")
@admin_or_api_key
def update_overdue_status():
    moved = services().ledger.sweep_overdue()
    return jsonify({"updated": moved})


@api.get("/loans/<int:loan_id>")
@role_required(ADMIN, USER)
def get_loan(loan_id):
    return loan_response(services().reports.get_loan(loan_id))


@api.get("/loans/member/<int:member_id>/active")
@role_required(ADMIN)
def member_active_loans(member_id):
    return loans_response(services().reports.active_loans_by_member(member_id))


@api.get("/loans/member/<int:member_id>/history")
@role_required(ADMIN)
def member_loan_history(member_id):
    return loans_response(services().reports.loan_history_by_member(member_id))


@api.get("/loans/member/<int:member_id>/overdue-fee")
@role_required(ADMIN)
def member_overdue_fee(member_id):
    fee = services().reports.total_overdue_fee_by_member(member_id)
    return jsonify({"member_id": member_id, "total_overdue_fee": fee})


@api.get("/loans/member/<int:member_id>/count")
@role_required(ADMIN)
def member_loan_count(member_id):
    count = services().reports.current_loan_count(member_id)
    return jsonify({"member_id": member_id, "active_loans": count})


@api.get("/loans/book/<int:book_id>/history")
@role_required(ADMIN)
def book_loan_history(book_id):
    return loans_response(services().reports.loan_history_by_book(book_id))


@api.get("/loans/overdue")
@role_required(ADMIN)
def overdue_loans():
    return loans_response(services().reports.overdue_loans())


@api.get("/loans/due-today")
@role_required(ADMIN)
def due_today():
    return loans_response(services().reports.due_today())


@api.get("/loans/status/<status>")
@role_required(ADMIN)
def loans_by_status(status):
    status = status.upper()
    if status not in LOAN_STATUSES:
        abort(400, description=f"status must be one of {', '.join(LOAN_STATUSES)}")
    return loans_response(services().reports.loans_by_status(status))


@api.get("/loans/date-range")
@role_required(ADMIN)
def loans_by_date_range():
    start = as_date(request.args.get("start"), "start")
    end = as_date(request.args.get("end"), "end")
    if not start or not end:
        abort(400, description="start and end required")
    return loans_response(services().reports.loans_between(start, end))


@api.get("/loans/statistics")
@role_required(ADMIN)
def loan_statistics():
    return jsonify(services().reports.statistics()._asdict())


# ----------------- dashboard -----------------

@api.get("/dashboard/stats")
@role_required(ADMIN)
def dashboard_stats():
    return jsonify(services().reports.dashboard_stats())


@api.get("/dashboard/recent-loans")
@role_required(ADMIN)
def dashboard_recent_loans():
    limit = as_int(request.args.get("limit", 10), "limit")
    return loans_response(services().reports.recent_loans(limit))


@api.get("/dashboard/my-stats")
@role_required(ADMIN, USER)
def dashboard_my_stats():
    user = services().auth.get_user(int(get_jwt_identity()))
    return jsonify(services().reports.member_dashboard(user.email))
