"""
Per-activation identity.

Every action invocation gets its own activation id, like the platform does.
The current activation lives in a ContextVar so that concurrent requests,
and sync actions running in worker threads, each see their own.
"""

import os
import secrets
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Dict, Iterator, Optional


@dataclass(frozen=True)
class Activation:
    activation_id: str
    action_name: str


_activation_var: ContextVar[Optional[Activation]] = ContextVar("activation", default=None)


def generate_activation_id() -> str:
    """32 hex characters, the same shape as platform activation ids."""
    return secrets.token_hex(16)


def new_activation(action_name: str) -> Activation:
    return Activation(activation_id=generate_activation_id(), action_name=action_name)


def current_activation() -> Optional[Activation]:
    """The activation of the action running in this context, if any."""
    return _activation_var.get()


@contextmanager
def activation_scope(activation: Activation) -> Iterator[Activation]:
    token = _activation_var.set(activation)
    try:
        yield activation
    finally:
        _activation_var.reset(token)


def activation_environ() -> Dict[str, str]:
    """
    Platform variables as an action would see them.

    Returns the `__OW_*` values for the current activation plus the
    credentials mirrored from the AIO_RUNTIME_* environment.
    """
    env = {
        "__OW_API_KEY": os.getenv("AIO_RUNTIME_AUTH", ""),
        "__OW_NAMESPACE": os.getenv("AIO_RUNTIME_NAMESPACE", ""),
        "__OW_API_HOST": os.getenv("AIO_RUNTIME_APIHOST", ""),
    }
    activation = current_activation()
    if activation is not None:
        env["__OW_ACTIVATION_ID"] = activation.activation_id
        env["__OW_ACTION_NAME"] = activation.action_name
    return env
