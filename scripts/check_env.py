"""Verify the orchestrator's environment configuration before starting it.

The tool performs these checks:

1. It instantiates ``AppSettings`` from the provided ``.env`` file so a missing
   backend URL or malformed timeout is reported before the API starts.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.
3. With ``--probe`` it also runs one health check against the configured
   analytics backend and fails when the service is not online.

Example usages::

    # Validate settings and record the expected checksum.
    python -m scripts.check_env record --env-file /srv/analytics/.env \
        --hash-file /srv/analytics/.env.sha256

    # Later, from cron/systemd, alert on drift.
    python -m scripts.check_env verify --env-file /srv/analytics/.env \
        --hash-file /srv/analytics/.env.sha256

    # Validate settings and confirm the backend answers its health check.
    python -m scripts.check_env check --probe
"""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from ai_analytics.clients import AnalyticsApiClient
from ai_analytics.core.config import AppSettings, _load_env_file
from ai_analytics.schemas import ServiceStatus
from ai_analytics.services import ServiceAvailabilityProbe

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_SERVICE_UNAVAILABLE = 4
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    """Return the SHA256 checksum for the target environment file."""
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _validate_settings(env_file: Path) -> AppSettings:
    """Load settings using the supplied env file."""
    _load_env_file(str(env_file))
    return AppSettings()  # type: ignore[call-arg]


async def _probe_backend(settings: AppSettings) -> ServiceStatus:
    client = AnalyticsApiClient(settings.api)
    try:
        probe = ServiceAvailabilityProbe(client, settings.probe)
        return await probe.check_availability()
    finally:
        await client.aclose()


def _report_probe(settings: AppSettings) -> int:
    status = asyncio.run(_probe_backend(settings))
    if status.available:
        print(f"Analytics backend online at {settings.api.base_url}: {status.message}")
        return EXIT_OK
    print(
        f"Analytics backend at {settings.api.base_url} is {status.status}: {status.message}",
        file=sys.stderr,
    )
    return EXIT_SERVICE_UNAVAILABLE


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    """Persist the current checksum to ``hash_file``."""
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Review the change before restarting the orchestrator.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate orchestrator settings, detect .env drift and probe the backend."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        subparser.add_argument(
            "--probe",
            action="store_true",
            help="Also run a health check against the analytics backend.",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_common_arguments(subparser)
        subparser.add_argument(
            "--hash-file",
            required=True,
            type=Path,
            help="Location of the checksum baseline.",
        )

    check_parser = subparsers.add_parser(
        "check",
        help="Validate settings without touching any checksum files.",
    )
    add_common_arguments(check_parser)

    return parser


def _ensure_env_file(env_file: Path) -> None:
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file

    try:
        _ensure_env_file(env_file)
        settings = _validate_settings(env_file)
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    command: str = args.command
    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    result = handlers[command]()
    if result == EXIT_OK and args.probe:
        return _report_probe(settings)
    return result


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
