"""
Folder Sync - shared name, ordering and id helpers.
"""
import secrets
import string
import time
import unicodedata
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, TypeVar

from loguru import logger

# Depth walks stop here so a corrupted parent chain cannot loop forever
MAX_DEPTH_WALK = 10

_BASE36 = string.digits + string.ascii_lowercase

# Display order groups; ASCII punctuation and symbols use root collation order
_GROUP_SPACE, _GROUP_PUNCTUATION, _GROUP_SYMBOL, _GROUP_CURRENCY, _GROUP_DIGIT, _GROUP_LETTER = range(6)
_ASCII_PUNCTUATION = "_-,;:!?.'\"()[]{}@*/\\&#%"
_ASCII_SYMBOLS = "`^+<=>|~"


class _HasParent(Protocol):
    parent_id: Optional[str]


class _Named(Protocol):
    name: str


N = TypeVar("N", bound=_Named)


def now_ms() -> float:
    """Wall clock in milliseconds."""
    return time.time() * 1000


def normalize_name(name: str) -> str:
    """Matching form of a folder name: surrounding whitespace dropped, case folded."""
    return name.strip().casefold()


def _primary_weight(char: str) -> tuple:
    """Weight of one case-folded, unaccented character, by character class."""
    category = unicodedata.category(char)
    if char.isspace() or category[0] in ("Z", "C"):
        return (_GROUP_SPACE, ord(char))
    if char in _ASCII_PUNCTUATION:
        return (_GROUP_PUNCTUATION, _ASCII_PUNCTUATION.index(char))
    if char in _ASCII_SYMBOLS:
        return (_GROUP_SYMBOL, _ASCII_SYMBOLS.index(char))
    if category[0] == "P":
        return (_GROUP_PUNCTUATION, 0x100 + ord(char))
    if category == "Sc":
        return (_GROUP_CURRENCY, ord(char))
    if category[0] == "S":
        return (_GROUP_SYMBOL, 0x100 + ord(char))
    digit = unicodedata.decimal(char, None)
    if digit is not None:
        return (_GROUP_DIGIT, digit)
    return (_GROUP_LETTER, ord(char))


def display_sort_key(name: str) -> tuple:
    """
    Locale-style ordering key (root collation order, as ``localeCompare``).

    Primary: whitespace, then punctuation, symbols, currency, digits, and
    letters last; letters compared without accents or case. Secondary: the
    unaccented spelling first. Tertiary: lowercase before uppercase.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    base = ""
    accents: List[str] = []
    for char in decomposed:
        if unicodedata.combining(char) and accents:
            accents[-1] += char
        else:
            base += char
            accents.append("")
    primary = tuple(_primary_weight(char) for char in base.casefold())
    return (primary, tuple(accents), base.swapcase(), name)


def sort_by_name(items: Iterable[N]) -> List[N]:
    return sorted(items, key=lambda item: display_sort_key(item.name))


def folder_depth(folder_id: Optional[str], lookup: Callable[[str], Optional[_HasParent]]) -> int:
    """
    Number of folders on the path from the root down to ``folder_id``.

    The root level (``None``) is depth 0 and a root folder is depth 1. Unknown
    ids end the walk.
    """
    depth = 0
    current = folder_id
    while current:
        folder = lookup(current)
        if folder is None:
            break
        depth += 1
        current = folder.parent_id
        if depth > MAX_DEPTH_WALK:
            logger.warning(f"Folder depth walk exceeded {MAX_DEPTH_WALK} levels from {folder_id}, possible cycle")
            break
    return depth


def index_by_id(folders: Iterable[Any]) -> Dict[str, Any]:
    return {folder.id: folder for folder in folders}


def _base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def generate_folder_id() -> str:
    """Persisted folder id: ``<epoch ms>_<random base36>``."""
    return f"{int(now_ms())}_{_base36(13)}"


def generate_temp_id(prefix: str = "tmp-") -> str:
    """Optimistic entry id; the prefix never appears on persisted ids."""
    return f"{prefix}{int(now_ms())}-{_base36(13)}"


def is_temp_id(value: str, prefix: str = "tmp-") -> bool:
    return value.startswith(prefix)
