import logging
from datetime import datetime, timezone

from werkzeug.security import check_password_hash, generate_password_hash

from .db import DatabaseErrors, IntegrityErrors
from .errors import AuthError, ConflictError, TransientError, ValidationError


logger = logging.getLogger(__name__)

PROFILE_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "pincode": "pincode",
}

_dummy_hash = None


def _unknown_user_hash():
    # Hash checked for unknown usernames so both login failures cost the same.
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = generate_password_hash("not-a-real-password")
    return _dummy_hash


class CredentialStore:
    """Registration and login against the ``users`` table.

    ``connect`` returns an open database connection, normally the app's
    request-scoped ``get_db``.
    """

    def __init__(self, connect):
        self._connect = connect

    def register(self, profile):
        profile = profile or {}
        username = str(profile.get("username") or "").strip()
        password = str(profile.get("password") or "")
        if not username:
            raise ValidationError("Username is required.")
        if not password:
            raise ValidationError("Password is required.")

        values = {column: str(profile.get(key) or "").strip() for key, column in PROFILE_FIELDS.items()}
        db = self._connect()
        try:
            existing = db.execute("SELECT id FROM users WHERE username = ?", (username,)).fetchone()
            if existing is not None:
                raise ConflictError()
            db.execute(
                """
                INSERT INTO users (username, password_hash, first_name, last_name, email, pincode, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    username,
                    generate_password_hash(password),
                    values["first_name"],
                    values["last_name"],
                    values["email"],
                    values["pincode"],
                    datetime.now(timezone.utc).isoformat(timespec="seconds"),
                ),
            )
            db.commit()
        except IntegrityErrors as exc:
            db.rollback()
            raise ConflictError() from exc
        except DatabaseErrors as exc:
            db.rollback()
            logger.exception("Registration failed for username=%s", username)
            raise TransientError() from exc
        logger.info("Registered username=%s", username)
        return username

    def login(self, username, password):
        username = str(username or "").strip()
        password = str(password or "")
        try:
            user = self._connect().execute(
                "SELECT id, username, password_hash FROM users WHERE username = ?", (username,)
            ).fetchone()
        except DatabaseErrors as exc:
            logger.exception("Login lookup failed for username=%s", username)
            raise TransientError() from exc

        if user is None:
            check_password_hash(_unknown_user_hash(), password)
            logger.info("Rejected login for username=%s", username)
            raise AuthError()
        if not check_password_hash(user["password_hash"], password):
            logger.info("Rejected login for username=%s", username)
            raise AuthError()
        return {"id": user["id"], "username": user["username"]}
