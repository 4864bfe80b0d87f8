"""
Shape checks for JSON returned by the RxNav and openFDA APIs.

Both services occasionally answer 200 with a body that does not match their
documented schema (maintenance notices, truncated proxies). Missing fields
read as empty; a field of the wrong type raises ``ValueError`` so the caller
can record the lookup as malformed.
"""


def nested_field(data, *keys: str, kind: type = dict):
    """Walk ``keys`` through nested objects and return the value, which must be a ``kind``."""
    value = data
    path = []
    for key in keys:
        if not isinstance(value, dict):
            where = ".".join(path) or "response"
            raise ValueError(f"expected an object at '{where}', got {type(value).__name__}")
        path.append(key)
        value = value.get(key)
        if value is None:
            return kind()

    if not isinstance(value, kind):
        raise ValueError(
            f"expected {kind.__name__} at '{'.'.join(path)}', got {type(value).__name__}"
        )
    return value


def text_value(data: dict, key: str) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def text_list(data: dict, key: str) -> list[str]:
    """String items of a list field. openFDA label sections are lists of paragraphs."""
    value = data.get(key)
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]
