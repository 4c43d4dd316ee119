# utils/json_extraction.py
import re
from typing import Optional

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def _extract_balanced(text: str, open_char: str, close_char: str) -> Optional[str]:
    start = text.find(open_char)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i, char in enumerate(text[start:], start):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_text(text: str) -> Optional[str]:
    """
    Pull the JSON payload out of a model reply: a fenced ```json block if
    present, otherwise the first balanced object or array.
    """
    if not text:
        return None

    fenced = FENCED_BLOCK.search(text)
    if fenced:
        text = fenced.group(1).strip()

    stripped = text.strip()
    if stripped.startswith("[") or stripped.startswith("{"):
        first = stripped[0]
        return _extract_balanced(stripped, first, "]" if first == "[" else "}")

    obj_at = stripped.find("{")
    arr_at = stripped.find("[")
    if arr_at != -1 and (obj_at == -1 or arr_at < obj_at):
        return _extract_balanced(stripped, "[", "]")
    return _extract_balanced(stripped, "{", "}")
