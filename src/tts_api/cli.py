"""
Command-Line Interface for tts-api.

Operator commands against the configured database and engine, without
running the HTTP server.

Usage Examples:
    # Create missing tables
    tts-api --init-db

    # Issue (or replace) the token for account 42 and print it
    tts-api --issue-token 42

    # Show the quota record for account 42
    tts-api --show-user 42 --json

    # Synthesize locally, bypassing authentication and quota
    tts-api --text "こんにちは" --out hello.wav

Environment Variables:
    TTS_API_SETTINGS: Settings file (default config/settings.yaml)
    TTS_API_DATABASE_URL: Database URL override
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_api.core.config import ConfigValidationError, Settings, load_settings
from tts_api.core.errors import ApiError
from tts_api.core.logging import configure_logging, fail, get_logger, info, set_request_id


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tts-api", description="tts-api operator CLI")

    parser.add_argument("--settings", help="Settings file (default: $TTS_API_SETTINGS or config/settings.yaml)")

    # Store administration
    parser.add_argument("--init-db", action="store_true", help="Create missing tables")
    parser.add_argument("--issue-token", type=int, metavar="ID",
                        help="Issue and register a fresh token for account ID")
    parser.add_argument("--show-user", type=int, metavar="ID",
                        help="Print the quota record for account ID")

    # Serverless synthesis
    parser.add_argument("--text", help="Text to synthesize (no auth, no quota)")
    parser.add_argument("--out", help="Output WAV path (default: out.wav)")

    parser.add_argument("--json", action="store_true", help="Print JSON summary")

    return parser.parse_args(argv)


def _load(args: argparse.Namespace) -> Settings:
    path = args.settings or os.getenv("TTS_API_SETTINGS", "config/settings.yaml")
    if not Path(path).exists():
        if args.settings:
            raise SystemExit(f"Settings file not found: {path}")
        return Settings(raw={})
    return load_settings(path)


def _emit(payload: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for key, value in payload.items():
            print(f"{key}: {value}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code: 0 on success, 1 on a reported failure, 2 on bad usage.
    """
    args = _parse_args(argv)
    if not (args.init_db or args.issue_token is not None or args.show_user is not None or args.text):
        print("Nothing to do: pass --init-db, --issue-token, --show-user or --text.")
        return 2

    configure_logging()
    log = get_logger("tts-api.cli")
    set_request_id(str(uuid4())[:12])

    try:
        settings = _load(args)
        config = settings.get_service_config()
    except ConfigValidationError as e:
        print(f"Invalid configuration: {e}")
        return 2

    from tts_api.store.database import create_db_engine, init_db

    payload: dict = {"ok": True}
    try:
        if args.init_db or args.issue_token is not None or args.show_user is not None:
            db_engine = create_db_engine(config.database)

            if args.init_db:
                init_db(db_engine)
                payload["init_db"] = True

            if args.issue_token is not None:
                from tts_api.services.gate import RequestGate

                gate = RequestGate.from_config(config, db_engine=db_engine)
                token = gate.login(args.issue_token)
                payload["user_id"] = args.issue_token
                payload["token"] = token.show()

            if args.show_user is not None:
                from tts_api.store.quota import QuotaLedger

                ledger = QuotaLedger(db_engine, default_limit=config.quota.default_limit)
                user = ledger.get(args.show_user)
                payload["user"] = None if user is None else user.to_dict()

        if args.text:
            from tts_api.tts.engine import build_engine

            engine = build_engine(config)
            out_path = Path(args.out or "out.wav")
            out_path.parent.mkdir(parents=True, exist_ok=True)
            info(log, "synth_start", chars=len(args.text), out=str(out_path))
            wav_bytes = engine.generate(args.text)
            out_path.write_bytes(wav_bytes)
            payload["out"] = str(out_path)
            payload["bytes"] = len(wav_bytes)

    except ApiError as e:
        fail(log, "cli_failed", code=e.code, error=e.message, details=e.details)
        _emit({"ok": False, "error": e.code, "message": e.message}, args.json)
        return 1
    except ConfigValidationError as e:
        fail(log, "cli_failed", code="CONFIG_INVALID", error=str(e))
        print(f"Invalid configuration: {e}")
        return 2

    _emit(payload, args.json)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
