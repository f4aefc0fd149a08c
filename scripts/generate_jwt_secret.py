#!/usr/bin/env python3
"""Generate a high-entropy signing key for Sky Talk access tokens."""

from __future__ import annotations

import argparse
import os
import re
import secrets
import sys
from pathlib import Path

DEFAULT_BYTE_LENGTH = 48
MIN_BYTE_LENGTH = 32
ENV_VAR_NAME = "JWT_SECRET_KEY"


def generate_secret(byte_length: int) -> str:
    """Return a URL-safe secret with ~1.33 * byte_length characters."""
    if byte_length < MIN_BYTE_LENGTH:
        msg = f"byte length must be at least {MIN_BYTE_LENGTH} for HMAC signing (got {byte_length})"
        raise ValueError(msg)
    return secrets.token_urlsafe(byte_length)


def update_env_file(path: Path, secret: str) -> bool:
    """Insert or replace the signing key in an env-style file.

    Returns ``True`` when an existing key was rotated.
    """
    pattern = re.compile(rf"^{re.escape(ENV_VAR_NAME)}=")
    lines: list[str] = []
    replaced = False
    if path.exists():
        for line in path.read_text(encoding="utf-8").splitlines():
            if pattern.match(line):
                lines.append(f"{ENV_VAR_NAME}={secret}")
                replaced = True
            else:
                lines.append(line)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
    if not replaced:
        lines.append(f"{ENV_VAR_NAME}={secret}")

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        # chmod is a no-op on some platforms
        pass
    return replaced


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--bytes",
        type=int,
        default=DEFAULT_BYTE_LENGTH,
        help="Number of random bytes fed into token_urlsafe.",
    )
    parser.add_argument(
        "--update-env",
        type=Path,
        metavar="PATH",
        help="Update or create the specified env file with the generated key.",
    )
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Do not print the key to stdout.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        secret = generate_secret(args.bytes)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    if args.update_env:
        rotated = update_env_file(args.update_env, secret)
        action = "Rotated" if rotated else "Added"
        print(
            f"{action} {ENV_VAR_NAME} in {args.update_env}; existing access tokens are now invalid.",
            file=sys.stderr,
        )

    if not args.silent:
        print(secret)

    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
