import asyncio
import json
import logging

import pytest

from owdev.activation import current_activation
from owdev.invoker import (
    INVALID_RESPONSE_ERROR,
    ErrorResult,
    NoResult,
    NormalResult,
    decode_response,
    invoke_action,
    normalize_response,
)
from owdev.models import Action

INVALID = {"statusCode": 400, "body": {"error": INVALID_RESPONSE_ERROR}}


def run(coro):
    return asyncio.run(coro)


# ------------------------------------------------------------
# normalization
# ------------------------------------------------------------

def test_none_is_no_content():
    assert decode_response(None) == NoResult()
    assert normalize_response(None) == {"statusCode": 204, "body": ""}


def test_error_field_short_circuits():
    value = {
        "statusCode": 200,
        "headers": {"a": "b"},
        "payload": 1,
        "error": {"statusCode": 403, "body": {"error": "nope"}},
    }
    assert decode_response(value) == ErrorResult(403, {"error": "nope"})
    assert normalize_response(value) == {"statusCode": 403, "body": {"error": "nope"}}


def test_defaults():
    assert normalize_response({}) == {"statusCode": 200, "body": ""}
    assert normalize_response({"body": None, "statusCode": 0}) == {"statusCode": 200, "body": ""}


def test_extra_fields_are_forwarded_on_success():
    value = {"payload": 10, "body": {"payload": 10}, "headers": {"x": "1"}}
    assert normalize_response(value) == {
        "payload": 10,
        "headers": {"x": "1"},
        "statusCode": 200,
        "body": {"payload": 10},
    }


def test_extra_fields_are_dropped_on_error_status():
    value = {"statusCode": 404, "body": "missing", "payload": 10}
    assert normalize_response(value) == {"statusCode": 404, "body": "missing"}


def test_list_response_has_no_extras():
    assert decode_response([1, 2]) == NormalResult(200, None, "")
    assert normalize_response([1, 2]) == {"statusCode": 200, "body": ""}


def test_string_status_code_is_coerced():
    assert normalize_response({"statusCode": "201", "body": "ok"}) == {"statusCode": 201, "body": "ok"}


def test_invalid_status_code_raises():
    with pytest.raises(ValueError):
        normalize_response({"statusCode": "teapot"})


def test_headers_must_be_a_mapping():
    with pytest.raises(ValueError):
        decode_response({"headers": ["x"], "body": "ok"})
    assert normalize_response({"headers": None, "body": "ok"}) == {"statusCode": 200, "body": "ok"}


@pytest.mark.parametrize("body", [0, False, "", None])
def test_falsy_scalar_body_becomes_empty(body):
    assert normalize_response({"body": body}) == {"statusCode": 200, "body": ""}
    assert normalize_response({"error": {"statusCode": 400, "body": body}}) == {"statusCode": 400, "body": ""}


@pytest.mark.parametrize("body", [[], {}])
def test_empty_container_body_is_kept(body):
    assert normalize_response({"body": body}) == {"statusCode": 200, "body": body}


# ------------------------------------------------------------
# invocation
# ------------------------------------------------------------

def test_invoke_success(demo_package, loader):
    action = demo_package.actions["addNumbers"]
    result = run(invoke_action("addNumbers", action, {"payload": "1,2,3,4"}, loader=loader))
    assert result == {"payload": 10, "statusCode": 200, "body": {"payload": 10}}


def test_invoke_async_main(demo_package, loader):
    action = demo_package.actions["asyncEcho"]
    result = run(invoke_action("asyncEcho", action, {"__ow_method": "get"}, loader=loader))
    assert result["body"] == {"method": "get", "async": True}


def test_invoke_upstream_error(demo_package, loader):
    result = run(invoke_action("teapot", demo_package.actions["teapot"], {}, loader=loader))
    assert result == {"statusCode": 418, "body": {"error": "I'm a teapot"}}


def test_invoke_returns_nothing(demo_package, loader):
    result = run(invoke_action("nothing", demo_package.actions["nothing"], {}, loader=loader))
    assert result == {"statusCode": 204, "body": ""}


def test_invoke_exception_is_logged_and_converted(demo_package, loader, caplog):
    with caplog.at_level(logging.ERROR, logger="owdev.invoker"):
        result = run(invoke_action("throws", demo_package.actions["throws"], {}, loader=loader))
    assert result == INVALID
    assert any(r.exc_info and "something went wrong" in str(r.exc_info[1]) for r in caplog.records)


@pytest.mark.parametrize("name", ["noMain", "missingFile"])
def test_invoke_unloadable_action(demo_package, loader, name):
    result = run(invoke_action(name, demo_package.actions[name], {}, loader=loader))
    assert result == INVALID


def test_invoke_syntax_error(write_action, loader):
    action = Action(function=write_action("broken", "def main(params)\n    return {}\n"))
    assert run(invoke_action("broken", action, {}, loader=loader)) == INVALID


def test_auth_rejection_skips_code_loading(demo_package):
    class FailingLoader:
        def load_main(self, path):
            raise AssertionError("code must not be loaded")

    action = demo_package.actions["secured"]
    result = run(invoke_action("secured", action, {"__ow_headers": {}}, loader=FailingLoader()))
    assert result == {
        "statusCode": 401,
        "body": {"error": "cannot authorize request, reason: missing authorization header"},
    }


def test_auth_passes_with_headers(demo_package, loader):
    headers = {"Authorization": "Bearer token", "x-gw-ims-org-id": "org@AdobeOrg"}
    result = run(invoke_action("secured", demo_package.actions["secured"], {"__ow_headers": headers}, loader=loader))
    assert result["statusCode"] == 200


def test_activation_identity(demo_package, loader):
    action = demo_package.actions["whoami"]
    first = run(invoke_action("whoami", action, {}, loader=loader))
    second = run(invoke_action("whoami", action, {}, loader=loader))

    assert first["body"]["action_name"] == "whoami"
    assert len(first["body"]["activation_id"]) == 32
    assert first["body"]["activation_id"] == first["body"]["env_activation_id"]
    assert first["body"]["activation_id"] != second["body"]["activation_id"]
    assert current_activation() is None


def test_concurrent_activations_do_not_leak(demo_package, loader):
    action = demo_package.actions["whoami"]

    async def many():
        return await asyncio.gather(*(invoke_action("whoami", action, {}, loader=loader) for _ in range(10)))

    results = run(many())
    ids = [r["body"]["activation_id"] for r in results]
    assert len(set(ids)) == 10
    assert all(r["body"]["activation_id"] == r["body"]["env_activation_id"] for r in results)


def test_code_changes_are_picked_up(write_action, loader):
    path = write_action("counter", "def main(params):\n    return {'body': {'version': 1}}\n")
    action = Action(function=path)
    assert run(invoke_action("counter", action, {}, loader=loader))["body"] == {"version": 1}

    with open(path, "w", encoding="utf-8") as f:
        f.write("def main(params):\n    return {'body': {'version': 2}}\n")
    assert run(invoke_action("counter", action, {}, loader=loader))["body"] == {"version": 2}


def test_repeated_invocation_is_idempotent(demo_package, loader):
    action = demo_package.actions["squareNumber"]
    params = {"payload": 7}
    results = [run(invoke_action("squareNumber", action, dict(params), loader=loader)) for _ in range(3)]
    assert all(r == results[0] for r in results)
    assert json.loads(json.dumps(results[0]))["body"] == {"payload": 49}
