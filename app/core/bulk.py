"""
Helpers for bulk lifecycle operations (delete / restore / force delete)

Bulk endpoints accept either a list of ids or a comma separated string.
Everything is normalised here once, before any service logic runs.
"""

import uuid
from typing import Any, Callable, Iterable, List, Optional, Tuple


def as_int_id(value: Any) -> int:
    """Coerce a bigint primary key; raises ValueError for anything else"""
    if isinstance(value, bool):
        raise ValueError(f"invalid id: {value!r}")
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError(f"invalid id: {value!r}")
    return int(text)


def as_uuid_id(value: Any) -> str:
    """Coerce a uuid primary key to its canonical text form; raises ValueError otherwise"""
    return str(uuid.UUID(str(value).strip()))


def parse_ids(ids: Any, coerce: Optional[Callable[[Any], Any]] = None) -> List[Any]:
    """
    Normalise "1,2,3" / [1, "2", None, ""] into ["1", "2", "3"]; blanks and None are dropped.
    With coerce (as_int_id / as_uuid_id), entries it rejects are dropped too, so
    malformed ids are skipped instead of reaching the database.
    """
    if ids is None:
        return []
    if isinstance(ids, str):
        raw = ids.split(",")
    elif isinstance(ids, (list, tuple, set)):
        raw = list(ids)
    else:
        raw = [ids]

    parsed = []
    for value in raw:
        if value is None:
            continue
        value = str(value).strip()
        if not value:
            continue
        if coerce is not None:
            try:
                value = coerce(value)
            except ValueError:
                continue
        if value not in parsed:
            parsed.append(value)
    return parsed


def partition_protected(
    rows: Iterable[dict],
    is_protected: Callable[[dict], bool]
) -> Tuple[List[dict], List[dict]]:
    """Split rows into (deletable, protected)"""
    deletable, protected = [], []
    for row in rows:
        (protected if is_protected(row) else deletable).append(row)
    return deletable, protected


def result(success: bool, message: str) -> dict:
    return {"success": success, "message": message}


def count_message(count: int, singular: str, plural_noun: str, action: str) -> str:
    """
    Exactly one affected entity gets its own sentence; anything else is counted.
    count_message(1, "Role deleted successfully.", "roles", "deleted") -> "Role deleted successfully."
    count_message(3, ..., "roles", "deleted") -> "3 roles deleted successfully."
    """
    if count == 1:
        return singular
    return f"{count} {plural_noun} {action} successfully."


def protected_message(names: List[str], single: Callable[[str], str], many_prefix: str) -> Optional[str]:
    if not names:
        return None
    if len(names) == 1:
        return single(names[0])
    return f"{many_prefix}: {', '.join(names)}."
