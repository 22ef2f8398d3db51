from typing import Any, Iterable


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def query_params(params: dict, names: Iterable[str]) -> dict[str, str]:
    """Copy the provided ``names`` from a tool body into upstream query params."""
    query: dict[str, str] = {}
    for name in names:
        value = params.get(name)
        if value is None or value == "":
            continue
        query[name] = _stringify(value)
    return query
