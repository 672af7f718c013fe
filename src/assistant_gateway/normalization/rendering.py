"""Markdown rendering for normalized tool data."""

import re
from typing import Any, Dict, List, Sequence

import orjson

MAX_TABLE_ROWS = 50
MAX_TABLE_COLUMNS = 6
MAX_PAYLOAD_BYTES = 100_000
MAX_SUMMARY_KEYS = 20
MAX_CELL_CHARS = 50

COLUMN_PRIORITY: Dict[str, int] = {
    "displayName": 100,
    "name": 95,
    "appDisplayName": 90,
    "applicationName": 90,
    "id": 85,
    "appId": 80,
    "clientId": 80,
    "objectId": 75,
    "createdDateTime": 70,
    "created": 70,
    "publisherDomain": 65,
    "signInAudience": 60,
    "description": 55,
    "groupTypes": 50,
    "securityEnabled": 45,
    "mailEnabled": 40,
    "visibility": 35,
    "membershipRule": 30,
    "membershipRuleProcessingState": 25,
    "mail": 20,
    "mailNickname": 15,
    "proxyAddresses": 10,
}
DEFAULT_COLUMN_PRIORITY = 5
ODATA_COLUMN_PRIORITY = 1

SPECIAL_HEADERS = {
    "appId": "App ID",
    "objectId": "Object ID",
    "clientId": "Client ID",
    "createdDateTime": "Created Date",
    "signInAudience": "Sign-In Audience",
    "id": "ID",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def to_json(value: Any, indent: bool = True) -> str:
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(value, option=option | orjson.OPT_NON_STR_KEYS, default=str).decode()


def payload_size(value: Any) -> int:
    return len(orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS, default=str))


def fenced_json(value: Any) -> str:
    return f"```json\n{to_json(value)}\n```"


def render_count(value: Any) -> str:
    return f"Count: {value}"


def column_priority(key: str) -> int:
    if key.startswith("@odata."):
        return ODATA_COLUMN_PRIORITY
    return COLUMN_PRIORITY.get(key, DEFAULT_COLUMN_PRIORITY)


def select_columns(keys: Sequence[str]) -> List[str]:
    ranked = sorted(keys, key=lambda key: (-column_priority(key), key))
    return ranked[:MAX_TABLE_COLUMNS]


def format_header(key: str) -> str:
    if key in SPECIAL_HEADERS:
        return SPECIAL_HEADERS[key]
    words = _CAMEL_BOUNDARY.sub(" ", key.lstrip("@")).replace("_", " ")
    return words[:1].upper() + words[1:]


def format_cell(value: Any) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        if not value:
            return "None"
        if len(value) == 1:
            return format_cell(value[0])
        return f"{len(value)} items"
    if isinstance(value, dict):
        return "Complex Object"
    text = str(value).replace("|", "\\|").replace("\n", " ")
    if len(text) > MAX_CELL_CHARS:
        return text[: MAX_CELL_CHARS - 3] + "..."
    return text


def is_uniform_records(items: Sequence[Any]) -> bool:
    """True when every item is an object with the same key set."""
    if not items or not all(isinstance(item, dict) for item in items):
        return False
    first = set(items[0])
    return bool(first) and all(set(item) == first for item in items[1:])


def render_table(items: Sequence[Dict[str, Any]]) -> str:
    columns = select_columns(list(items[0]))
    shown = items[:MAX_TABLE_ROWS]
    lines = [
        "| " + " | ".join(format_header(column) for column in columns) + " |",
        "| " + " | ".join("---" for _ in columns) + " |",
    ]
    for item in shown:
        lines.append("| " + " | ".join(format_cell(item.get(column)) for column in columns) + " |")
    return "\n".join(lines)


def render_collection(items: Sequence[Any]) -> str:
    total = len(items)
    if total == 0:
        return "No items found."

    if is_uniform_records(items):
        if total > MAX_TABLE_ROWS:
            heading = f"Dataset ({total} items, showing first {MAX_TABLE_ROWS}):"
            note = f"\n\nNote: {total - MAX_TABLE_ROWS} additional items not shown."
        else:
            heading = f"Dataset ({total} items):"
            note = ""
        return f"{heading}\n\n{render_table(items)}{note}"

    if payload_size(items) > MAX_PAYLOAD_BYTES:
        return render_summary(items)
    return f"Dataset ({total} items):\n\n{fenced_json(list(items))}"


def render_object(value: Dict[str, Any]) -> str:
    if payload_size(value) > MAX_PAYLOAD_BYTES:
        return render_summary(value)
    return f"Object Data:\n\n{fenced_json(value)}"


def render_summary(value: Any) -> str:
    """Summary for payloads too large to include in a prompt."""
    if isinstance(value, dict):
        keys = list(value)
        heading = f"Object Summary ({len(keys)} keys, payload too large to show in full):"
    else:
        sample = next((item for item in value if isinstance(item, dict)), {})
        keys = list(sample)
        heading = f"Collection Summary ({len(value)} items, payload too large to show in full):"
    shown = keys[:MAX_SUMMARY_KEYS]
    key_list = ", ".join(shown)
    if len(keys) > MAX_SUMMARY_KEYS:
        key_list += f", ... ({len(keys) - MAX_SUMMARY_KEYS} more)"
    return f"{heading}\nKeys: {key_list}" if shown else heading


def is_documentation_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(item, dict) and "title" in item and "content" in item for item in value)
    )


def render_documentation(entries: Sequence[Dict[str, Any]]) -> str:
    sections = []
    for entry in entries:
        section = f"## {entry.get('title', 'Untitled')}\n\n{entry.get('content', '')}"
        url = entry.get("contentUrl")
        if url:
            section += f"\n\n**Source**: [{url}]({url})"
        sections.append(section)
    return "\n\n---\n\n".join(sections)
