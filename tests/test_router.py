import logging

import pytest

WEB = "/api/v1/web/demo"
NOT_FOUND = {"error": "The requested resource does not exist."}
AUTH_REQUIRED = {"error": "The resource requires authentication, which was not supplied with the request"}


def test_web_action_round_trip(client):
    r = client.get(f"{WEB}/squareNumber", params={"payload": "10"})
    assert r.status_code == 200
    assert r.json() == {"payload": 100}
    assert r.headers["content-type"].startswith("application/json")


@pytest.mark.parametrize("payload,expected", [("1,2,3,4", 100), ("9,5,2,7", 529)])
def test_sequence_through_web_route(client, payload, expected):
    r = client.get(f"{WEB}/addNumbersThenSquareIt", params={"payload": payload})
    assert r.status_code == 200
    assert r.json() == {"payload": expected}


def test_sequence_with_json_body(client):
    r = client.post(f"{WEB}/addNumbersThenSquareIt", json={"payload": "1,2,3,4"})
    assert r.status_code == 200
    assert r.json() == {"payload": 100}


def test_sequence_error_is_returned(client):
    r = client.get(f"{WEB}/addThenThrow", params={"payload": "1,2"})
    assert r.status_code == 400
    assert r.json() == {"error": "Response is not valid 'message/http'."}


def test_sequence_missing_component(client):
    r = client.get(f"{WEB}/addThenMissing", params={"payload": "1,2"})
    assert r.status_code == 400
    assert r.json() == {"error": "Sequence component does not exist."}


@pytest.mark.parametrize("path", [
    f"{WEB}/doesNotExist",
    "/api/v1/web/noPackage/addNumbers",
    f"{WEB}/notWeb",
    f"{WEB}/hiddenSequence",
    "/api/v1/web/demo",
])
def test_not_found(client, path):
    r = client.get(path)
    assert r.status_code == 404
    assert r.json() == NOT_FOUND


@pytest.mark.parametrize("path", [
    "/api/v1/demo/addNumbers",
    "/api/v1/demo/notWeb",
    "/api/v1/demo/doesNotExist",
    "/api/v1/demo/addNumbersThenSquareIt",
])
@pytest.mark.parametrize("method", ["get", "post", "delete"])
def test_non_web_route_always_requires_auth(client, path, method):
    r = client.request(method.upper(), path)
    assert r.status_code == 401
    assert r.json() == AUTH_REQUIRED


def test_params_reach_the_action(client):
    r = client.post(
        f"{WEB}/echo/some/path",
        params={"name": "query", "q": "1"},
        json={"name": "body"},
        headers={"X-Forwarded-For": "8.8.8.8", "X-Custom": "abc"},
    )
    assert r.status_code == 200
    params = r.json()
    assert params["__ow_method"] == "post"
    assert params["__ow_path"] == "some/path"
    assert params["__ow_query"] == {"name": "query", "q": "1"}
    assert params["__ow_body"] == {"name": "body"}
    assert params["__ow_headers"]["x-forwarded-for"] == "127.0.0.1"
    assert params["__ow_headers"]["x-custom"] == "abc"
    assert params["name"] == "body"
    assert params["greeting"] == "hello"
    assert params["q"] == "1"


def test_plain_body_is_passed_raw(client):
    r = client.post(f"{WEB}/echo", content=b"hello there", headers={"content-type": "text/plain"})
    params = r.json()
    assert params["__ow_body"] == "hello there"
    assert params["name"] == "default"


def test_malformed_json_body(client):
    r = client.post(f"{WEB}/echo", content=b"{not json", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "The request content was malformed."}


def test_auth_required_action(client):
    r = client.get(f"{WEB}/secured")
    assert r.status_code == 401
    assert r.json() == {"error": "cannot authorize request, reason: missing authorization header"}

    r = client.get(f"{WEB}/secured", headers={"Authorization": "Bearer token"})
    assert r.status_code == 401
    assert r.json() == {"error": "cannot authorize request, reason: missing x-gw-ims-org-id header"}

    r = client.get(f"{WEB}/secured", headers={"Authorization": "Bearer token", "x-gw-ims-org-id": "org"})
    assert r.status_code == 200


def test_no_content(client):
    r = client.get(f"{WEB}/nothing")
    assert r.status_code == 204
    assert r.content == b""


def test_upstream_error_passes_through(client):
    r = client.get(f"{WEB}/teapot")
    assert r.status_code == 418
    assert r.json() == {"error": "I'm a teapot"}
    assert "x-ignored" not in r.headers


def test_custom_headers_and_text_body(client):
    r = client.put(f"{WEB}/custom")
    assert r.status_code == 201
    assert r.text == "created"
    assert r.headers["content-type"].startswith("text/plain")
    assert r.headers["x-custom"] == "1"


def test_async_action(client):
    r = client.delete(f"{WEB}/asyncEcho")
    assert r.json() == {"method": "delete", "async": True}


@pytest.mark.parametrize("name", ["throws", "noMain", "missingFile", "badHeaders"])
def test_invalid_response(client, name):
    r = client.get(f"{WEB}/{name}")
    assert r.status_code == 400
    assert r.json() == {"error": "Response is not valid 'message/http'."}


def test_raw_action_warns_and_runs(client, caplog):
    with caplog.at_level(logging.WARNING, logger="owdev.main"):
        r = client.get(f"{WEB}/rawEcho")
    assert r.status_code == 200
    assert any("raw handling is not implemented yet" in rec.getMessage() for rec in caplog.records)


def test_custom_prefixes(manifest, loader):
    from fastapi.testclient import TestClient

    from owdev.main import create_app

    client = TestClient(create_app(manifest, loader=loader, web_prefix="/web/", api_prefix="api"))
    assert client.get("/web/demo/squareNumber", params={"payload": "3"}).json() == {"payload": 9}
    assert client.get("/api/demo/squareNumber").status_code == 401
