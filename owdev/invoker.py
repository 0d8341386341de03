"""
Action invocation.

Runs a single action: auth gate, fresh code load, call of `main(params)`,
and normalization of whatever `main` returned into the canonical
`{statusCode, headers, body}` result. Failures never escape as exceptions;
they come back as results.
"""

import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from starlette.concurrency import run_in_threadpool

from .activation import activation_scope, new_activation
from .gates import gate_require_auth, missing_auth_header
from .loader import ActionLoadError, CodeLoader
from .logging_config import invocation_log
from .models import Action

logger = logging.getLogger(__name__)

INVALID_RESPONSE_ERROR = "Response is not valid 'message/http'."

# keys of the canonical result, never forwarded as extra fields
RESULT_KEYS = ("statusCode", "headers", "body")

default_loader = CodeLoader()


# ============================================================
# Return value decoding
# ============================================================

@dataclass(frozen=True)
class NoResult:
    """main returned nothing."""


@dataclass(frozen=True)
class ErrorResult:
    """main returned `{error: {statusCode, body}}`."""
    status_code: int
    body: Any


@dataclass(frozen=True)
class NormalResult:
    status_code: int
    headers: Optional[Dict[str, Any]]
    body: Any
    extra: Dict[str, Any] = field(default_factory=dict)


ActionResponse = Union[NoResult, ErrorResult, NormalResult]


def invalid_response() -> Dict[str, Any]:
    return {"statusCode": 400, "body": {"error": INVALID_RESPONSE_ERROR}}


def _status_code(value: Any) -> int:
    # a missing or zero status means 200, as on the platform
    if value is None or value == "" or value == 0:
        return 200
    if isinstance(value, bool):
        raise ValueError(f"invalid statusCode {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid statusCode {value!r}") from None


def _is_falsy_scalar(value: Any) -> bool:
    return value is None or (not isinstance(value, (dict, list, tuple)) and not value)


def _body(value: Any) -> Any:
    # empty lists and dicts are real bodies, 0 and False are not
    return "" if _is_falsy_scalar(value) else value


def _headers(value: Any) -> Optional[Dict[str, Any]]:
    if value is None or isinstance(value, dict):
        return value
    raise ValueError(f"invalid headers {value!r}")


def decode_response(value: Any) -> ActionResponse:
    """
    Classify the raw return value of an action's main.

    Raises:
        ValueError: If the status code is not an integer or the headers
            are not a mapping
    """
    if _is_falsy_scalar(value):
        return NoResult()

    if not isinstance(value, dict):
        return NormalResult(status_code=200, headers=None, body="")

    error = value.get("error")
    if error:
        if isinstance(error, dict):
            return ErrorResult(_status_code(error.get("statusCode")), _body(error.get("body")))
        return ErrorResult(200, "")

    status_code = _status_code(value.get("statusCode"))
    extra = {}
    if status_code < 400:
        extra = {k: v for k, v in value.items() if k not in RESULT_KEYS}
    return NormalResult(
        status_code=status_code,
        headers=_headers(value.get("headers")),
        body=_body(value.get("body")),
        extra=extra,
    )


def render_response(decoded: ActionResponse) -> Dict[str, Any]:
    """Turn a decoded action response into the canonical result dict."""
    if isinstance(decoded, NoResult):
        return {"statusCode": 204, "body": ""}
    if isinstance(decoded, ErrorResult):
        return {"statusCode": decoded.status_code, "body": decoded.body}

    result = dict(decoded.extra)
    if decoded.headers is not None:
        result["headers"] = decoded.headers
    result["statusCode"] = decoded.status_code
    result["body"] = decoded.body
    return result


def normalize_response(value: Any) -> Dict[str, Any]:
    """
    Normalize whatever an action returned.

    - None: 204 with an empty body
    - `{error: {...}}`: the error's statusCode/body, everything else dropped
    - otherwise statusCode (default 200), headers, body (default ''), and
      for non-error statuses every other top-level field of the response
    """
    return render_response(decode_response(value))


# ============================================================
# Invocation
# ============================================================

async def _call_main(main: Callable[..., Any], params: Dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(main):
        value = await main(params)
    else:
        # sync actions must not block the event loop
        value = await run_in_threadpool(main, params)
    if inspect.isawaitable(value):
        value = await value
    return value


async def invoke_action(
    action_name: str,
    action: Action,
    params: Dict[str, Any],
    loader: Optional[CodeLoader] = None,
) -> Dict[str, Any]:
    """
    Invoke one action and return its normalized result.

    Args:
        action_name: Name of the action, used for the activation and logs
        action: The manifest entry of the action
        params: Invocation parameters passed to main
        loader: Code loader, defaults to a module-level loader

    Returns:
        The result dict with statusCode and body (and headers, extras)
    """
    rejection = gate_require_auth(action, params)
    if rejection is not None:
        invocation_log.auth_rejected(action_name, missing_auth_header(params.get("__ow_headers")))
        return rejection

    loader = loader or default_loader
    activation = new_activation(action_name)

    with activation_scope(activation):
        invocation_log.invocation_start(action_name, activation.activation_id)
        started = time.perf_counter()

        try:
            main = await run_in_threadpool(loader.load_main, action.function)
        except ActionLoadError:
            logger.error("%s action not found, or does not export main", action_name, exc_info=True)
            result = invalid_response()
        except Exception:
            logger.exception("could not load action %s", action_name)
            result = invalid_response()
        else:
            try:
                result = normalize_response(await _call_main(main, params))
            except Exception:
                logger.exception("action %s failed", action_name)
                result = invalid_response()

        invocation_log.invocation_result(
            action_name,
            activation.activation_id,
            result["statusCode"],
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    return result
