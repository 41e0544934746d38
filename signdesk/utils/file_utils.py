import json
import re
from pathlib import Path
from typing import Iterable, List

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")


def safe_filename(name: str | None, fallback: str = "document.pdf") -> str:
    """Keep only ``[A-Za-z0-9_.-]`` from the base name, replacing the rest with ``_``."""
    base = Path(str(name or "")).name or fallback
    return _UNSAFE_CHARS.sub("_", base)


def parse_signer_names(raw: str | None) -> List[str]:
    """
    Read the signer list of a multi-signer form.

    Accepts a JSON array (``["Alice", "Bob"]``) or a comma separated list
    (``Alice, Bob``). Items are trimmed and blanks dropped. JSON that is not
    an array yields no names.
    """
    text = str(raw or "").strip()
    if not text:
        return []

    try:
        parsed = json.loads(text)
    except ValueError:
        items: Iterable = text.split(",")
    else:
        if not isinstance(parsed, list):
            return []
        items = parsed

    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def file_size(path: Path) -> int:
    """Size in bytes, 0 when the file is missing."""
    return path.stat().st_size if path.exists() else 0
