"""Pre-flight checks for a Spotify card deployment.

Run before (re)starting the service to catch configuration problems that
would otherwise only show up as a wall of "Something went wrong" images:

* ``check``  loads ``AppSettings`` from the ``.env`` file and validates the
  Spotify credentials and credential store URL.
* ``record`` does the same and writes a baseline of per-key digests.
* ``verify`` compares the ``.env`` file against that baseline and names the
  keys that were added, removed or edited since it was recorded.
* ``ping``   additionally opens the credential store and pings it.

Example::

    python -m scripts.check_env record --env-file /srv/spotify-card/.env \
        --hash-file /srv/spotify-card/.env.baseline
    python -m scripts.check_env verify --env-file /srv/spotify-card/.env \
        --hash-file /srv/spotify-card/.env.baseline
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import json
import sys
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values
from pydantic import ValidationError

from spotify_card.clients import StoreUnavailable
from spotify_card.core.config import AppSettings
from spotify_card.dependencies import create_credential_store

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_STORE_ERROR = 4
EXIT_RUNTIME_ERROR = 5

SUPPORTED_STORE_SCHEMES = ("sqlite:///", "redis://", "rediss://", "unix://")


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _snapshot(env_file: Path) -> Dict[str, object]:
    """Digest the whole file plus each key, so drift can be attributed."""
    values = dotenv_values(env_file)
    return {
        "file": hashlib.sha256(env_file.read_bytes()).hexdigest(),
        "keys": {key: _digest(value or "") for key, value in sorted(values.items())},
    }


def load_settings(env_file: Path) -> AppSettings:
    """Build ``AppSettings`` as the service would from ``env_file``."""
    settings = AppSettings.from_env_file(env_file)
    if not settings.store.url.startswith(SUPPORTED_STORE_SCHEMES):
        raise ValueError(f"Unsupported credential store URL: {settings.store.url}")
    return settings


def record_baseline(env_file: Path, hash_file: Path) -> int:
    snapshot = _snapshot(env_file)
    hash_file.write_text(json.dumps(snapshot, indent=2) + "\n", encoding="utf-8")
    print(f"Recorded baseline for {len(snapshot['keys'])} keys to {hash_file}")
    return EXIT_OK


def verify_baseline(env_file: Path, hash_file: Path) -> int:
    if not hash_file.exists():
        print(
            f"Baseline {hash_file} not found; run 'record' first.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        expected = json.loads(hash_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        print(f"Baseline {hash_file} is not valid JSON.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    actual = _snapshot(env_file)
    if expected.get("file") == actual["file"]:
        print("Environment matches baseline.")
        return EXIT_OK

    before: Dict[str, str] = expected.get("keys", {})
    after: Dict[str, str] = actual["keys"]  # type: ignore[assignment]
    added = sorted(after.keys() - before.keys())
    removed = sorted(before.keys() - after.keys())
    changed = sorted(key for key in after.keys() & before.keys() if after[key] != before[key])

    lines = ["Environment drifted from baseline."]
    for label, keys in (("added", added), ("removed", removed), ("changed", changed)):
        if keys:
            lines.append(f"  {label}: {', '.join(keys)}")
    if len(lines) == 1:
        lines.append("  formatting or comments changed; no key differs")
    print("\n".join(lines), file=sys.stderr)
    return EXIT_CHECKSUM_ERROR


async def _ping_store(settings: AppSettings) -> None:
    store = create_credential_store(settings.store)
    try:
        await store.ping()
    finally:
        await store.close()


def ping_store(settings: AppSettings) -> int:
    try:
        asyncio.run(_ping_store(settings))
    except StoreUnavailable as exc:
        print(f"Credential store unreachable: {exc}", file=sys.stderr)
        return EXIT_STORE_ERROR
    print(f"Credential store reachable ({settings.store.url.split(':', 1)[0]}).")
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pre-flight checks for the Spotify card service.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    commands = {
        "check": ("Validate settings only.", False),
        "record": ("Validate settings and write a per-key baseline.", True),
        "verify": ("Validate settings and report drift from the baseline.", True),
        "ping": ("Validate settings and ping the credential store.", False),
    }
    for name, (help_text, needs_baseline) in commands.items():
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--env-file", default=Path(".env"), type=Path)
        if needs_baseline:
            sub.add_argument("--hash-file", required=True, type=Path)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(f"Environment file {env_file} does not exist.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    try:
        settings = load_settings(env_file)
    except ValidationError as exc:
        missing = sorted(
            {str(error["loc"][-1]) for error in exc.errors() if error.get("loc")}
        )
        print(
            f"Settings validation failed for: {', '.join(missing) or 'unknown fields'}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ValueError as exc:
        print(f"Settings validation failed: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    if args.command == "record":
        return record_baseline(env_file, args.hash_file)
    if args.command == "verify":
        return verify_baseline(env_file, args.hash_file)
    if args.command == "ping":
        return ping_store(settings)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
