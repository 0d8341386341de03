"""
Invocation parameters built from an HTTP request.

Precedence, lowest first: the synthetic `__ow_*` fields, query string
pairs, the action's declared inputs, and the JSON body (only when the
request is JSON and its body is an object).
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .config import FORWARDED_FOR


def is_json_content_type(content_type: Optional[str]) -> bool:
    """application/json, with or without parameters such as charset."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json"


def query_to_dict(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Repeated keys collect into a list, single keys stay scalar."""
    query: Dict[str, Any] = {}
    for key, value in pairs:
        if key in query:
            existing = query[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                query[key] = [existing, value]
        else:
            query[key] = value
    return query


def synthesize(
    method: str,
    headers: Mapping[str, Any],
    query: Mapping[str, Any],
    body: Any = "",
    is_json: bool = False,
    path: str = "",
    action_inputs: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the parameters passed to an action's main.

    Args:
        method: HTTP method of the request
        headers: Request headers
        query: Parsed query string
        body: Parsed JSON body when `is_json`, otherwise the raw body text
        is_json: Whether the request content type is JSON
        path: The path remainder after `<package>/<item>`
        action_inputs: The action's declared default inputs

    Returns:
        A new parameters dict
    """
    ow_headers = {k: v for k, v in headers.items() if k.lower() != "x-forwarded-for"}
    ow_headers["x-forwarded-for"] = FORWARDED_FOR

    params: Dict[str, Any] = {
        "__ow_body": body,
        "__ow_headers": ow_headers,
        "__ow_path": path,
        "__ow_query": dict(query),
        "__ow_method": method.lower(),
    }
    params.update(query)
    params.update(action_inputs or {})
    if is_json and isinstance(body, dict):
        params.update(body)
    return params
