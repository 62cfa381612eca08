"""Persistence: database engine, per-user tokens and character quotas."""
from tts_api.store.database import create_db_engine, init_db
from tts_api.store.quota import QuotaLedger, User
from tts_api.store.tokens import BcryptHasher, PlainHasher, Token, TokenHasher, TokenStore, make_hasher

__all__ = [
    "create_db_engine",
    "init_db",
    "QuotaLedger",
    "User",
    "Token",
    "TokenHasher",
    "BcryptHasher",
    "PlainHasher",
    "TokenStore",
    "make_hasher",
]
