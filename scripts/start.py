#!/usr/bin/env python3
"""
Container entry point: release phase, then exec gunicorn.

Tunables (env): PORT (default 8080), WEB_CONCURRENCY (workers, default 2),
GUNICORN_TIMEOUT (seconds, default 60).

Usage:
    python scripts/start.py [--skip-release]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _env_int(name: str, default: int, *, low: int = 1, high: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise SystemExit(f"ERROR: {name} must be an integer (got {raw!r}).")
    if value < low or (high is not None and value > high):
        raise SystemExit(f"ERROR: {name}={value} is out of range.")
    return value


def gunicorn_argv(port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        # create_app() runs once in the master; workers dispose the inherited engine
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Release and serve the forum API.")
    parser.add_argument("--skip-release", action="store_true", help="Serve without migrating or seeding.")
    args = parser.parse_args(argv)

    port = _env_int("PORT", 8080, high=65535)
    workers = _env_int("WEB_CONCURRENCY", 2)
    timeout = _env_int("GUNICORN_TIMEOUT", 60)

    if not args.skip_release:
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:
            print(f"Release failed: {e}", flush=True)
            sys.exit(1)

    cmd = gunicorn_argv(port, workers, timeout)
    print("exec " + " ".join(cmd), flush=True)
    # exec keeps gunicorn as PID 1 so it receives signals directly
    os.execvp(cmd[0], cmd)


if __name__ == "__main__":
    main()
