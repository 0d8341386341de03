from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from owdev.loader import CodeLoader
from owdev.main import create_app
from owdev.manifest import manifest_from_dict

ACTIONS_DIR = Path(__file__).parent / "fixtures" / "actions"


def _action(module: str, **fields):
    return {"function": str(ACTIONS_DIR / f"{module}.py"), **fields}


PACKAGES = {
    "demo": {
        "actions": {
            "addNumbers": _action("add_numbers", web="yes"),
            "squareNumber": _action("square_number", annotations={"web-export": True}),
            "echo": _action("echo_params", web=True, inputs={"greeting": "hello", "name": "default"}),
            "secured": _action("echo_params", web="yes", annotations={"require-adobe-auth": True}),
            "asyncEcho": _action("async_echo", web="yes"),
            "throws": _action("throws", web="yes"),
            "noMain": _action("no_main", web="yes"),
            "missingFile": _action("does_not_exist", web="yes"),
            "nothing": _action("returns_none", web="yes"),
            "teapot": _action("error_result", web="yes"),
            "custom": _action("custom_response", web="yes"),
            "whoami": _action("activation_info", web="yes"),
            "badHeaders": _action("bad_headers", web="yes"),
            "notWeb": _action("echo_params", web="no"),
            "rawEcho": _action("echo_params", annotations={"web-export": "raw"}),
        },
        "sequences": {
            "addNumbersThenSquareIt": {"actions": "addNumbers, squareNumber", "web": "yes"},
            "addThenThrow": {"actions": "addNumbers,throws", "web": "yes"},
            "addThenMissing": {"actions": "addNumbers, missing, squareNumber", "web": "yes"},
            "hiddenSequence": {"actions": "addNumbers"},
        },
    }
}


@pytest.fixture
def manifest():
    return manifest_from_dict(PACKAGES)


@pytest.fixture
def demo_package(manifest):
    return manifest.packages["demo"]


@pytest.fixture
def loader():
    return CodeLoader()


@pytest.fixture
def client(manifest, loader):
    return TestClient(create_app(manifest, loader=loader))


@pytest.fixture
def write_action(tmp_path):
    """Write an action module into tmp_path and return its path."""
    def _write(name: str, source: str) -> str:
        path = tmp_path / f"{name}.py"
        path.write_text(source, encoding="utf-8")
        return str(path)
    return _write
