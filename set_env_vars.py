""".env loader for the ReanSQL server.

Usage:
  - From Python: `from set_env_vars import load; load()`
  - Check which settings are present:
      python set_env_vars.py
  - Run a command with .env and .env.local loaded:
      python set_env_vars.py --exec python main.py
"""
from __future__ import annotations

import json
import os
import pathlib
import subprocess
from typing import Dict


def _parse_dotenv(content: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip()
        if not key:
            continue
        if len(val) >= 2 and ((val[0] == val[-1] == '"') or (val[0] == val[-1] == "'")):
            val = val[1:-1]
        pairs[key] = val
    return pairs


def _read_dotenv(path: pathlib.Path) -> Dict[str, str]:
    try:
        return _parse_dotenv(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}


def load(path: str = ".env", override: bool = False) -> None:
    """Load key=value pairs from `path` into os.environ.

    Args:
        path: path to .env file (default: .env)
        override: if True, overwrite existing environment variables
    """
    for k, v in _read_dotenv(pathlib.Path(path)).items():
        if override or k not in os.environ:
            os.environ[k] = v


def initialize_env_vars(root: str | None = None, override: bool = False) -> Dict[str, bool]:
    base = pathlib.Path(root) if root else pathlib.Path(__file__).resolve().parent
    # .env.local wins over .env, both lose to the real environment unless override is set.
    merged: Dict[str, str] = {}
    for name in (".env", ".env.local"):
        merged.update(_read_dotenv(base / name))
    for k, v in merged.items():
        if override or not os.environ.get(k):
            os.environ[k] = v

    return {
        "gemini_api_keys_set": bool(os.environ.get("GEMINI_API_KEYS") or os.environ.get("GEMINI_API_KEY")),
        "mongo_uri_set": bool(os.environ.get("MONGO_URI")),
        "mongo_db_set": bool(os.environ.get("MONGO_DB")),
    }


def run_command_with_env(cmd: list[str]) -> int:
    """Run a command (list form) with the current process environment and return exit code."""
    return subprocess.run(cmd, env=os.environ).returncode


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Load .env and optionally run a command with it.")
    parser.add_argument("--env-file", "-e", default=None, help="Path to a single .env file")
    parser.add_argument("--override", action="store_true", help="Override existing env vars")
    parser.add_argument("--exec", "-x", nargs=argparse.REMAINDER, help="Command to run with env loaded")
    args = parser.parse_args()

    if args.env_file:
        load(args.env_file, override=args.override)
    status = initialize_env_vars(override=args.override)

    if args.exec:
        rc = run_command_with_env(args.exec)
        raise SystemExit(rc)
    print(json.dumps(status, indent=2))
