"""
Per-User Secret Tokens.

A token is 24 symbols drawn from ``ABCDEF0123456789`` with ``secrets``
(96 bits). Each user id has exactly one live token; registering a new one
overwrites the old row, which is how rotation revokes.

Storage:
    Tokens are persisted through a TokenHasher. The default BcryptHasher
    stores a one-way digest, so the clear value exists only in the
    response that issued it. PlainHasher reads databases written by the
    older clear-text scheme; the two formats cannot be mixed in one
    database.

Usage:
    store = TokenStore(engine, BcryptHasher(rounds=12))
    token = store.issue()
    store.register(42, token)
    store.verify(42, token.show())   # True
"""
from __future__ import annotations

import hmac
import secrets
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tts_api.core.config import AuthConfig
from tts_api.core.errors import NotFoundError, StoreError
from tts_api.core.logging import debug, error, get_logger, info
from tts_api.store.database import dialect_insert, user_secret

_LOG = get_logger("tts-api.tokens")

CHARSET = "ABCDEF0123456789"
DEFAULT_TOKEN_LENGTH = 24
BCRYPT_MAX_INPUT_BYTES = 72


class Token:
    """
    An opaque secret credential.

    ``repr()`` and ``str()`` are masked so a token that reaches a log line
    does not leak; ``show()`` returns the clear value.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str):
        self._value = value

    @classmethod
    def generate(cls, length: int = DEFAULT_TOKEN_LENGTH) -> "Token":
        return cls("".join(secrets.choice(CHARSET) for _ in range(length)))

    def show(self) -> str:
        return self._value

    def __len__(self) -> int:
        return len(self._value)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Token):
            return hmac.compare_digest(self._value, other._value)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return "Token(****)"

    __str__ = __repr__


class TokenHasher:
    """Transforms tokens for storage and compares supplied tokens."""

    name = "base"

    def digest(self, token: str) -> str:
        raise NotImplementedError

    def matches(self, token: str, stored: str) -> bool:
        raise NotImplementedError


class BcryptHasher(TokenHasher):
    name = "bcrypt"

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def digest(self, token: str) -> str:
        return bcrypt.hashpw(token.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("ascii")

    def matches(self, token: str, stored: str) -> bool:
        """
        Compare a supplied token with a stored digest.

        A supplied value longer than bcrypt's 72-byte input limit cannot
        be an issued token and is a mismatch.

        Raises:
            StoreError: ``stored`` is not a bcrypt digest.
        """
        if not stored.startswith("$2"):
            # e.g. a clear-text row written by PlainHasher
            raise StoreError("Stored token is not a bcrypt digest", {"hasher": self.name})

        supplied = token.encode("utf-8")
        if len(supplied) > BCRYPT_MAX_INPUT_BYTES:
            return False
        try:
            return bcrypt.checkpw(supplied, stored.encode("ascii"))
        except ValueError as exc:
            raise StoreError(
                "Stored token is not a bcrypt digest",
                {"hasher": self.name, "error": str(exc)},
            ) from exc


class PlainHasher(TokenHasher):
    """Clear-text storage for legacy databases."""

    name = "plain"

    def digest(self, token: str) -> str:
        return token

    def matches(self, token: str, stored: str) -> bool:
        return hmac.compare_digest(token.encode("utf-8"), stored.encode("utf-8"))


def make_hasher(config: AuthConfig) -> TokenHasher:
    if config.token_hashing == "plain":
        return PlainHasher()
    return BcryptHasher(rounds=config.bcrypt_rounds)


class TokenStore:
    """Issue, persist and verify per-user tokens."""

    def __init__(self, engine: Engine, hasher: Optional[TokenHasher] = None, token_length: int = DEFAULT_TOKEN_LENGTH):
        self._engine = engine
        self._hasher = hasher or BcryptHasher()
        self._token_length = token_length

    @property
    def hasher(self) -> TokenHasher:
        return self._hasher

    def issue(self, length: Optional[int] = None) -> Token:
        return Token.generate(length or self._token_length)

    def register(self, user_id: int, token: Token) -> None:
        """
        Store ``token`` for ``user_id``, replacing any previous token.

        Raises:
            StoreError: On any database failure.
        """
        stored = self._hasher.digest(token.show())
        stmt = dialect_insert(self._engine, user_secret)
        try:
            with self._engine.begin() as conn:
                if stmt is not None:
                    conn.execute(
                        stmt.values(users_id=user_id, token=stored).on_conflict_do_update(
                            index_elements=[user_secret.c.users_id],
                            set_={"token": stored},
                        )
                    )
                else:
                    updated = conn.execute(
                        user_secret.update()
                        .where(user_secret.c.users_id == user_id)
                        .values(token=stored)
                    )
                    if updated.rowcount == 0:
                        conn.execute(user_secret.insert().values(users_id=user_id, token=stored))
        except SQLAlchemyError as exc:
            error(_LOG, "token_register_failed", user_id=user_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to register token", {"user_id": user_id}) from exc

        info(_LOG, "token_registered", user_id=user_id, hasher=self._hasher.name)

    def get(self, user_id: int) -> Optional[str]:
        """
        Return the stored token value for ``user_id`` or None.

        With bcrypt hashing this is the digest, not the clear token.
        """
        try:
            with self._engine.connect() as conn:
                row = conn.execute(
                    select(user_secret.c.token).where(user_secret.c.users_id == user_id)
                ).first()
        except SQLAlchemyError as exc:
            error(_LOG, "token_lookup_failed", user_id=user_id, error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to read token", {"user_id": user_id}) from exc
        return None if row is None else row.token

    def verify(self, user_id: int, token: str | Token) -> bool:
        """
        Check ``token`` against the registered one.

        Returns:
            True on match, False on mismatch.

        Raises:
            NotFoundError: No token is registered for ``user_id``.
            StoreError: Database failure or unreadable stored value.
        """
        stored = self.get(user_id)
        if stored is None:
            debug(_LOG, "token_not_registered", user_id=user_id)
            raise NotFoundError("User not found", {"user_id": user_id})

        supplied = token.show() if isinstance(token, Token) else token
        matched = self._hasher.matches(supplied, stored)
        debug(_LOG, "token_verified", user_id=user_id, matched=matched)
        return matched
