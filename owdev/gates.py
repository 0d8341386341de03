"""
Gate evaluation module for owdev.

Gates decide whether a request may reach an action: whether the item is
exposed on the web route, whether it asked for raw handling, and whether
its authentication annotation is satisfied by the request headers.
"""

from typing import Any, Dict, Optional

from .models import ManifestItem, WebExport

# checked in this order; the first one missing is reported
REQUIRED_AUTH_HEADERS = ("authorization", "x-gw-ims-org-id")


def gate_web_exposed(item: ManifestItem) -> bool:
    """
    Evaluate the web exposure gate.

    Args:
        item: The action or sequence being requested

    Returns:
        True if the item may be called through the web route
    """
    return item.web_export is not WebExport.DISABLED


def gate_raw(item: ManifestItem) -> bool:
    """True if the item asked for raw HTTP handling."""
    return item.web_export is WebExport.RAW


def lower_header_keys(headers: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def missing_auth_header(headers: Optional[Dict[str, Any]]) -> Optional[str]:
    """Return the first required auth header that is absent or empty."""
    present = lower_header_keys(headers)
    for header in REQUIRED_AUTH_HEADERS:
        if not present.get(header):
            return header
    return None


def gate_require_auth(item: ManifestItem, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Evaluate the authentication annotation gate.

    Header names are case-insensitive, so the request headers in
    `params['__ow_headers']` are compared lower-cased.

    Args:
        item: The action being invoked
        params: The invocation parameters

    Returns:
        None if the request passes, otherwise the 401 result to return
    """
    if not item.require_auth:
        return None

    header = missing_auth_header(params.get("__ow_headers"))
    if header is None:
        return None

    return {
        "statusCode": 401,
        "body": {"error": f"cannot authorize request, reason: missing {header} header"},
    }
