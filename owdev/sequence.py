"""
Sequence invocation.

A sequence runs its actions in order. The first action gets the request
parameters; each later action gets the request headers and method, its own
inputs, and the whole result of the previous action on top. The first
result with an error status ends the sequence.
"""

import logging
from typing import Any, Dict, Optional

from .invoker import invoke_action
from .loader import CodeLoader
from .logging_config import invocation_log
from .models import Package, Sequence

logger = logging.getLogger(__name__)

SEQUENCE_COMPONENT_ERROR = "Sequence component does not exist."


def sequence_component_missing() -> Dict[str, Any]:
    return {"statusCode": 400, "body": {"error": SEQUENCE_COMPONENT_ERROR}}


def empty_sequence_result() -> Dict[str, Any]:
    return {"statusCode": 204, "body": ""}


def step_params(
    initial_params: Dict[str, Any],
    action_inputs: Dict[str, Any],
    previous_result: Dict[str, Any],
) -> Dict[str, Any]:
    """Parameters of a sequence step after the first."""
    params = {
        "__ow_headers": initial_params.get("__ow_headers"),
        "__ow_method": initial_params.get("__ow_method"),
    }
    params.update(action_inputs)
    params.update(previous_result)
    return params


async def invoke_sequence(
    sequence_name: str,
    sequence: Sequence,
    package: Package,
    params: Dict[str, Any],
    loader: Optional[CodeLoader] = None,
) -> Dict[str, Any]:
    """
    Invoke every action of a sequence, in order.

    Args:
        sequence_name: Name of the sequence (for logs)
        sequence: The sequence manifest entry
        package: Package the sequence's actions are looked up in
        params: Parameters built from the request, given to the first action
        loader: Code loader passed on to each action invocation

    Returns:
        The result of the last action run
    """
    logger.info("actions to call: %s", ",".join(sequence.actions))
    if not sequence.actions:
        logger.warning("sequence %s has no actions", sequence_name)
        return empty_sequence_result()

    result: Dict[str, Any] = {}
    for index, action_name in enumerate(sequence.actions):
        action = package.actions.get(action_name)
        if action is None:
            logger.error("Sequence component %s does not exist.", action_name)
            return sequence_component_missing()

        if index == 0:
            action_params = params
        else:
            action_params = step_params(params, action.inputs, result)

        invocation_log.sequence_step(sequence_name, index, action_name)
        result = await invoke_action(action_name, action, action_params, loader=loader)
        logger.debug("action response for %s: %s", action_name, result)

        if result["statusCode"] >= 400:
            break

    return result
