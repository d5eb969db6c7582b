"""Provider API key loading.

Keys are read from the environment, with this priority:
  1. Environment variables (highest, already set in shell)
  2. ~/.tinman/keys.env
  3. .env in current directory (project-level)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Directory for user-level tinman files
TINMAN_HOME = Path.home() / ".tinman"
KEYS_FILE = TINMAN_HOME / "keys.env"

# Provider definitions: (env_var, display_name)
PROVIDERS = [
    ("ANTHROPIC_API_KEY", "Anthropic (Claude)"),
    ("OPENAI_API_KEY", "OpenAI (GPT-4o, o3, gpt-image)"),
]


def load_keys_env(files: list[Path] | None = None) -> None:
    """Load API keys from ~/.tinman/keys.env and .env into os.environ.

    Existing env vars are NOT overwritten, and earlier files win over
    later ones.
    """
    for env_file in files if files is not None else [KEYS_FILE, Path.cwd() / ".env"]:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Could not read %s", path)
        return

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip().strip("'\"")
        if key and not os.environ.get(key):
            os.environ[key] = value
            logger.debug("Loaded %s from %s", key, path)


def has_key(env_var: str) -> bool:
    """Whether the named key is set after loading the env files."""
    return bool(os.environ.get(env_var))
