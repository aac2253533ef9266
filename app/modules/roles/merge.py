"""
Guard merge projection

Roles and permissions are stored once per guard. Rows sharing a name across
guards are presented as a single logical entity; this module builds that
read model from raw rows and never writes anything.
"""

from typing import Dict, Iterable, List


def group_by_name(rows: Iterable[dict]) -> Dict[str, List[dict]]:
    """Group rows by name, keeping first-seen order for groups and rows."""
    groups: Dict[str, List[dict]] = {}
    for row in rows:
        groups.setdefault(row["name"], []).append(row)
    return groups


def union_by_id(children: Iterable[Iterable[dict]]) -> List[dict]:
    seen = set()
    merged = []
    for items in children:
        for item in items:
            if item["id"] in seen:
                continue
            seen.add(item["id"])
            merged.append(item)
    return merged


def merge_group(rows: List[dict], children_key: str) -> dict:
    """Fold same-named rows into one record based on the first row."""
    base = rows[0]
    return {
        "id": base["id"],
        "name": base["name"],
        "guards": [row["guard"] for row in rows],
        children_key: union_by_id(row.get(children_key) or [] for row in rows),
        "created_at": base.get("created_at"),
        "updated_at": base.get("updated_at"),
    }


def merge_rows(rows: Iterable[dict], children_key: str) -> List[dict]:
    return [merge_group(group, children_key) for group in group_by_name(rows).values()]


def names_by_guard(items: Iterable[dict]) -> Dict[str, List[str]]:
    """{"web": ["view tokens", ...], "api": [...]} for pre-filling edit forms"""
    grouped: Dict[str, List[str]] = {}
    for item in items:
        grouped.setdefault(item["guard"], []).append(item["name"])
    return grouped
