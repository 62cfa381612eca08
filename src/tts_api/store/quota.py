"""
Per-User Character Quota.

Every user row carries ``character_count`` (characters consumed) and
``character_limit`` (characters granted). ``use_capacity`` charges a request
with a single conditional UPDATE, so two concurrent requests can never both
pass the check and jointly overshoot the limit:

    UPDATE users
       SET character_count = character_count + :n
     WHERE id = :id AND character_count + :n <= character_limit

Consumed capacity is never refunded, even if synthesis later fails.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import literal, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tts_api.core.config import Defaults
from tts_api.core.errors import NotFoundError, QuotaExceeded, StoreError, ValidationError
from tts_api.core.logging import debug, error, get_logger, info, warn
from tts_api.store.database import dialect_insert, users

_LOG = get_logger("tts-api.quota")


@dataclass(frozen=True)
class User:
    """
    Snapshot of a user row.

    Attributes:
        id: External account id.
        account_status: Opaque status flag, 0 for a new account.
        character_count: Characters consumed so far.
        character_limit: Characters granted.
    """
    id: int
    account_status: int
    character_count: int
    character_limit: int

    @property
    def remaining(self) -> int:
        return self.character_limit - self.character_count

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_status": self.account_status,
            "character_count": self.character_count,
            "character_limit": self.character_limit,
        }


def _row_to_user(row) -> User:
    return User(
        id=int(row.id),
        account_status=int(row.account_status),
        character_count=int(row.character_count),
        character_limit=int(row.character_limit),
    )


class QuotaLedger:
    """Reads, creates and charges user quota rows."""

    def __init__(self, engine: Engine, default_limit: int = Defaults.QUOTA_DEFAULT_LIMIT):
        self._engine = engine
        self.default_limit = default_limit

    def ping(self) -> bool:
        """True if the database answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(select(literal(1)))
        except SQLAlchemyError as exc:
            warn(_LOG, "store_unreachable", error=str(exc), error_type=type(exc).__name__)
            return False
        return True

    def get(self, user_id: int) -> Optional[User]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(select(users).where(users.c.id == user_id)).first()
        except SQLAlchemyError as exc:
            error(_LOG, "user_lookup_failed", user_id=user_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to read user", {"user_id": user_id}) from exc
        return None if row is None else _row_to_user(row)

    def get_or_create(self, user_id: int) -> User:
        """
        Return the user row, creating it with the default limit if absent.

        Safe under concurrent first use: the insert ignores a conflicting
        row created in between, and the row is re-read afterwards.
        """
        user = self.get(user_id)
        if user is not None:
            return user

        values = {
            "id": user_id,
            "account_status": 0,
            "character_count": 0,
            "character_limit": self.default_limit,
        }
        stmt = dialect_insert(self._engine, users)
        try:
            with self._engine.begin() as conn:
                if stmt is not None:
                    conn.execute(stmt.values(**values).on_conflict_do_nothing(index_elements=[users.c.id]))
                else:
                    conn.execute(users.insert().values(**values))
        except IntegrityError:
            debug(_LOG, "user_create_raced", user_id=user_id)
        except SQLAlchemyError as exc:
            error(_LOG, "user_create_failed", user_id=user_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to create user", {"user_id": user_id}) from exc

        user = self.get(user_id)
        if user is None:
            raise StoreError("User row missing after insert", {"user_id": user_id})
        info(_LOG, "user_ready", user_id=user_id, character_limit=user.character_limit)
        return user

    def use_capacity(self, user_id: int, length: int) -> None:
        """
        Charge ``length`` characters to ``user_id``.

        Raises:
            ValidationError: ``length`` is negative.
            NotFoundError: No row for ``user_id``.
            QuotaExceeded: The charge would pass the limit; nothing changes.
            StoreError: Database failure.
        """
        if length < 0:
            raise ValidationError("Length must not be negative", {"length": length})

        stmt = (
            users.update()
            .where(users.c.id == user_id)
            .where(users.c.character_count + length <= users.c.character_limit)
            .values(character_count=users.c.character_count + length)
        )
        try:
            with self._engine.begin() as conn:
                updated = conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            error(_LOG, "quota_update_failed", user_id=user_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to update quota", {"user_id": user_id}) from exc

        if updated:
            debug(_LOG, "quota_consumed", user_id=user_id, chars=length)
            return

        user = self.get(user_id)
        if user is None:
            raise NotFoundError("User not found", {"user_id": user_id})

        warn(
            _LOG,
            "quota_exceeded",
            user_id=user_id,
            chars=length,
            character_count=user.character_count,
            character_limit=user.character_limit,
        )
        raise QuotaExceeded(
            "Account quota exceeded.",
            {"requested": length, "remaining": max(0, user.remaining)},
        )
