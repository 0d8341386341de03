import json
import logging
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response

from .config import DEV_API_PREFIX, DEV_API_WEB_PREFIX
from .gates import gate_raw, gate_web_exposed
from .invoker import invoke_action
from .loader import CodeLoader
from .manifest import KIND_NONE, KIND_SEQUENCE, ManifestIndex
from .models import Manifest
from .params import is_json_content_type, query_to_dict, synthesize
from .sequence import invoke_sequence

logger = logging.getLogger(__name__)

HTTP_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

NOT_FOUND_ERROR = "The requested resource does not exist."
AUTH_REQUIRED_ERROR = "The resource requires authentication, which was not supplied with the request"
MALFORMED_ERROR = "The request content was malformed."

_NO_BODY_STATUSES = (204, 304)


def status_code_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""


def _render_body(body: Any):
    if body is None or body == "":
        return b"", None
    if isinstance(body, bytes):
        return body, "application/octet-stream"
    if isinstance(body, str):
        return body, "text/html"
    return json.dumps(body, default=str), "application/json"


def http_status_response(result: Dict[str, Any]) -> Response:
    """
    Write an invocation result as an HTTP response.

    dict, list and scalar bodies are sent as JSON, strings as text/html
    unless the result's headers name a content type.
    """
    status_code = result["statusCode"]
    log_message = f"{status_code} {status_code_message(status_code)}".rstrip()
    if status_code >= 400:
        logger.error(log_message)
    else:
        logger.info(log_message)

    headers = {str(k): str(v) for k, v in (result.get("headers") or {}).items()}
    content, media_type = _render_body(result.get("body"))
    if status_code in _NO_BODY_STATUSES or status_code < 200:
        content, media_type = b"", None

    return Response(content=content, status_code=status_code, headers=headers, media_type=media_type)


def error_response(status_code: int, message: str) -> Response:
    return http_status_response({"statusCode": status_code, "body": {"error": message}})


async def _request_body(request: Request):
    """Parsed JSON body for JSON requests, decoded text otherwise."""
    raw = await request.body()
    if is_json_content_type(request.headers.get("content-type")):
        if not raw.strip():
            return {}, True
        return json.loads(raw), True
    return raw.decode("utf-8", errors="replace"), False


def create_app(
    manifest: Manifest,
    loader: Optional[CodeLoader] = None,
    web_prefix: str = DEV_API_WEB_PREFIX,
    api_prefix: str = DEV_API_PREFIX,
) -> FastAPI:
    app = FastAPI(title="owdev")
    app.state.index = ManifestIndex(manifest)
    app.state.loader = loader or CodeLoader()

    web_prefix = web_prefix.strip("/")
    api_prefix = api_prefix.strip("/")

    # registered first: the web prefix normally sits under the API prefix
    @app.api_route(f"/{web_prefix}/{{path:path}}", methods=HTTP_METHODS)
    async def serve_web_action(path: str, request: Request):
        package_name, _, remainder = path.partition("/")
        item_name, _, rest_of_path = remainder.partition("/")

        resolution = app.state.index.resolve(package_name, item_name)
        if resolution.kind == KIND_NONE or not gate_web_exposed(resolution.item):
            return error_response(404, NOT_FOUND_ERROR)
        if gate_raw(resolution.item):
            logger.warning("raw handling is not implemented yet (%s/%s)", package_name, item_name)

        try:
            body, is_json = await _request_body(request)
        except ValueError:
            logger.warning("malformed JSON body for %s/%s", package_name, item_name)
            return error_response(400, MALFORMED_ERROR)

        is_sequence = resolution.kind == KIND_SEQUENCE
        params = synthesize(
            method=request.method,
            headers=dict(request.headers),
            query=query_to_dict(request.query_params.multi_items()),
            body=body,
            is_json=is_json,
            path=rest_of_path,
            action_inputs=None if is_sequence else resolution.item.inputs,
        )
        logger.debug("params for %s: %s", item_name, params)

        if is_sequence:
            result = await invoke_sequence(
                item_name, resolution.item, resolution.package, params, loader=app.state.loader
            )
        else:
            result = await invoke_action(item_name, resolution.item, params, loader=app.state.loader)

        logger.debug("response for %s: %s", item_name, result)
        return http_status_response(result)

    # the platform rejects every non-web invocation over plain HTTP
    @app.api_route(f"/{api_prefix}/{{path:path}}", methods=HTTP_METHODS)
    async def serve_non_web_action(path: str):
        return error_response(401, AUTH_REQUIRED_ERROR)

    return app
