"""Problem codes and the stage-problem injection overlay"""

from enum import Enum
from typing import List

from sandbox_bank.domain.models import AccessDetails, JobStage, Problem, TransferState

# Resource absence
UNKNOWN_PROVIDER = "unknown_provider"
RESOURCE_NOT_FOUND = "resource_not_found"

# Credential mismatch
USER_WRONG_PIN = "user_wrong_pin"
CONNECTOR_FIELD_RESET = "connector_field_reset"
FI_INVALID_LOGINNAME_PIN = "fi_invalid_loginname_pin"

# Terminal authorization failure
FI_ACCOUNT_BLOCKED = "fi_account_blocked"

# Validation/consistency
VERSIONS_MISMATCH = "versions_mismatch"
INTENTS_MISMATCH = "intents_mismatch"


def state_unprocessable(state: TransferState) -> str:
    """Code reported when a transfer is no longer ongoing"""
    return f"state_{state.value}_unprocessable"


def wrong_pin_problems(field_key: str) -> List[Problem]:
    """Wrong-PIN problem paired with the machine-readable field reset hint"""
    return [
        Problem(code=USER_WRONG_PIN),
        Problem(code=CONNECTOR_FIELD_RESET, payload={"field_key": field_key}),
    ]


class OverlayMode(str, Enum):
    """How injected stage problems combine with computed ones"""

    REPLACE = "replace"
    APPEND = "append"


def overlay_stage_problems(
    details: AccessDetails | None,
    stage: JobStage,
    problems: List[Problem],
    mode: OverlayMode,
) -> List[Problem]:
    """
    Layer canned problems configured for the current stage onto the computed ones.

    Never mutates the job; returns a new list. With REPLACE the injected list
    wins whenever it is non-empty.
    """
    injected = list(details.stage_problems.get(stage, [])) if details else []
    if not injected:
        return list(problems)
    if mode == OverlayMode.REPLACE:
        return injected
    return list(problems) + injected
