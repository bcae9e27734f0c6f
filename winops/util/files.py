"""
File utility functions.
"""

from pathlib import Path


def ensure_dir(path: str | Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def write_text(path: str | Path, content: str) -> None:
    """Write UTF-8 text to file, creating parent directories if needed."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")


def is_within(path: Path, directory: Path) -> bool:
    """Return True if path is directory itself or located below it."""
    try:
        path.resolve().relative_to(directory.resolve())
        return True
    except ValueError:
        return False
