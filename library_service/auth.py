import logging
from functools import wraps

from flask import abort
from flask_jwt_extended import create_access_token, get_jwt, verify_jwt_in_request
from werkzeug.security import generate_password_hash, check_password_hash

from .db import transaction
from .errors import AuthenticationFailed, ConflictState, DuplicateEntry, NotFound
from .models import User
from .repository import LibraryRepository

logger = logging.getLogger(__name__)


class AuthService:
    """Login accounts. Passwords are stored as werkzeug hashes."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _create(self, username, password, email, name, role):
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            if repo.find_user_by_username(username):
                raise DuplicateEntry(f"Username {username} is taken")
            if repo.find_user_by_email(email):
                raise DuplicateEntry(f"Email {email} is already registered")

            user = User(
                username=username,
                password_hash=generate_password_hash(password),
                email=email,
                name=name,
                role=role,
            )
            repo.save_user(user)

        logger.info("Created %s account %s", role, username)
        return user

    def register(self, username, password, email, name):
        return self._create(username, password, email, name, "USER")

    def create_admin(self, username, password, email, name="Administrator"):
        return self._create(username, password, email, name, "ADMIN")

    def authenticate(self, username, password):
        with transaction(self.session_factory) as session:
            user = LibraryRepository(session).find_user_by_username(username)
        if not user or not check_password_hash(user.password_hash, password):
            logger.warning("Failed login for %s", username)
            raise AuthenticationFailed("Invalid username or password")
        return user

    def withdraw(self, username, password):
        """Delete the caller's own account after re-checking the password."""
        with transaction(self.session_factory) as session:
            repo = LibraryRepository(session)
            user = repo.find_user_by_username(username)
            if not user or not check_password_hash(user.password_hash, password):
                logger.warning("Withdrawal refused for %s: bad credentials", username)
                raise AuthenticationFailed("Invalid username or password")
            if user.role == "ADMIN":
                raise ConflictState("Admin accounts cannot be withdrawn")
            repo.delete_user(user)

        logger.info("Withdrew account %s", username)

    def get_user(self, user_id):
        with transaction(self.session_factory) as session:
            user = LibraryRepository(session).find_user_by_id(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user


def issue_token(user):
    return create_access_token(
        identity=str(user.id),
        additional_claims={"role": user.role, "username": user.username},
    )


def role_required(*roles):
    """Require a valid bearer token whose role claim is one of roles."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            role = get_jwt().get("role")
            if role not in roles:
                abort(403, description="Insufficient role")
            return func(*args, **kwargs)

        return wrapper

    return decorator
