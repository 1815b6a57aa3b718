# Overview: Service-layer helpers for committing database work.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import PersistenceError
from ..extensions import db
from ..validation import ConflictError


def commit_or_raise(message: str | None = None, conflict_message: str | None = None) -> None:
    """
    Commit current session or roll back and raise a typed error.

    IntegrityError becomes ConflictError when conflict_message is given
    (unique constraints the caller expects to hit); every other database
    failure becomes PersistenceError. No retry: the operator retries by hand.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from exc
        raise PersistenceError(message) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(message) from exc
