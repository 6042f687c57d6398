"""Load the system directive from markdown files."""

from __future__ import annotations

from pathlib import Path

from finchat.session.utils.logging import get_logger


logger = get_logger("finchat")

FALLBACK_DIRECTIVE = (
    "You are an AI Financial Advisory Assistant. Provide structured, educational, "
    "principle-based guidance, never guarantee returns, and end every response with "
    "a professional risk disclaimer."
)


def load_directive(instructions_path: Path | str) -> str:
    """Load the system directive from markdown files with fallback.

    Attempts to load from the override file first, then default_system.md beside it,
    then returns a built-in fallback if neither exists.

    Args:
        instructions_path: Path to the override system.md file.

    Returns:
        str: The directive prepended to every outbound request.
    """
    instructions_path = Path(instructions_path)
    default_instructions_path = instructions_path.with_name("default_system.md")

    override = _read_nonempty(instructions_path)
    if override is not None:
        logger.debug(f"Loaded directive from: {instructions_path}")
        return override

    default = _read_nonempty(default_instructions_path)
    if default is not None:
        logger.debug(f"Loaded default directive from: {default_instructions_path}")
        return default

    logger.debug("No directive files found; using built-in fallback")
    return FALLBACK_DIRECTIVE


def _read_nonempty(path: Path) -> str | None:
    """Read file content and return stripped text when non-empty."""
    if not path.exists():
        return None
    content = path.read_text(encoding="utf-8").strip()
    return content or None
