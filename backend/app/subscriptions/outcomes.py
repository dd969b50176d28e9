"""Three-way result type returned by every orchestrator operation."""
from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


class FailureKind(str, Enum):
    """Why an operation failed."""

    VALIDATION = "validation"
    PRECONDITION = "precondition"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    REMOTE = "remote"


class Success(BaseModel):
    status: Literal["success"] = "success"
    payload: Any = None
    message: Optional[str] = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def ok(self) -> bool:
        return True


class ActionRequired(BaseModel):
    """The processor suspended the operation pending customer action.

    ``reference`` identifies the payment intent the caller must confirm
    out-of-band (for example with the processor's client SDK).
    """

    status: Literal["action_required"] = "action_required"
    reference: str
    reason: str
    message: str
    subscription_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return False


class Failure(BaseModel):
    """Terminal failure. ``detail`` is for logs and never shown to end users."""

    status: Literal["failure"] = "failure"
    kind: FailureKind
    message: str
    detail: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def ok(self) -> bool:
        return False


OperationOutcome = Union[Success, ActionRequired, Failure]


__all__ = [
    "ActionRequired",
    "Failure",
    "FailureKind",
    "OperationOutcome",
    "Success",
]
