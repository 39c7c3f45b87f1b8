# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every ledger entry is attributed to the username that wrote it, so every
request runs as an authenticated user.

Two kinds of account:
- Owners register with email + password and own stores.
- Store login accounts are generated when a store is created and are
  pinned to that store (User.staff_store_id).

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets
import string

import bcrypt

from ..extensions import db
from ..models import User
from arcade.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

STORE_USERNAME_PREFIX_LENGTH = 4
STORE_PASSWORD_LENGTH = 8


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """Raised when an account cannot be created or used."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.status = status


def validate_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise AuthError("Email is required")
    if not EMAIL_PATTERN.match(email):
        raise AuthError("Email is invalid")
    return email


def validate_password_strength(password: str | None) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not password:
        raise PasswordValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def register_owner(email: str, password: str, name: str | None = None, username: str | None = None) -> User:
    """
    Create an owner account.

    Username defaults to the email address. Email and username must be
    unique or AuthError is raised.
    """
    email = validate_email(email)
    validate_password_strength(password)
    username = (username or email).strip()

    existing = db.session.query(User).filter(
        db.or_(User.email == email, User.username == username)
    ).first()
    if existing:
        raise AuthError("An account with that email already exists", status=409)

    user = User(
        username=username,
        email=email,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        is_owner=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def _username_base(store_name: str) -> str:
    base = re.sub(r"\s+", "", store_name[:STORE_USERNAME_PREFIX_LENGTH]).lower()
    return base or "shop"


def generate_store_credentials(store_name: str) -> tuple[str, str]:
    """
    Login credentials for a new store.

    Username: first four characters of the store name (whitespace removed,
    lowercased) plus four random digits, unique across users.
    Password: eight random upper-case letters and digits.
    """
    base = _username_base(store_name)
    while True:
        username = f"{base}{secrets.randbelow(9000) + 1000}"
        if not db.session.query(User.id).filter_by(username=username).first():
            break
    alphabet = string.ascii_uppercase + string.digits
    password = "".join(secrets.choice(alphabet) for _ in range(STORE_PASSWORD_LENGTH))
    return username, password


def create_store_account(store_id: int, username: str, password: str) -> User:
    """Create the login user pinned to a store. Does not commit."""
    user = User(
        username=username,
        email=username,
        password_hash=hash_password(password),
        is_owner=False,
        staff_store_id=store_id,
    )
    db.session.add(user)
    db.session.flush()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate with username or email plus password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    identifier = (username or "").strip()
    if not identifier:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
