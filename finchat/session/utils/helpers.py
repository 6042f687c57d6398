"""Path helpers for FinChat."""

from pathlib import Path


def get_project_root() -> Path:
    """Return absolute project root path."""
    return Path(__file__).resolve().parents[3]


def get_config_dir() -> Path:
    """Return absolute path to the config/ directory."""
    return get_project_root() / "config"


def get_system_instructions_path() -> str:
    """Return absolute path to config/system.md."""
    return str(get_config_dir() / "system.md")
