"""Request payload validation with strong typing."""

from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import msgspec
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from returns.result import Failure, Result, Success

from ..protocol.tree import UINode, check_tree

MAX_HANDLER_ARGS = 64

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class ValidationResult:
    """Validation error with details (for Result pattern)."""

    message: str
    field: str | None = None
    value: Any | None = None


class RequestValidator(BaseModel):
    """Base validator with strict configuration."""

    model_config = ConfigDict(
        strict=True, extra="forbid", frozen=True, populate_by_name=True
    )


class InitializeRequest(RequestValidator):
    """Payload of `initialize`."""

    protocol_version: int = Field(alias="protocolVersion", gt=0)
    props: dict[str, Any] = Field(default_factory=dict)


class ExecuteHandlerRequest(RequestValidator):
    """Arguments of `executeHandler`."""

    handler_id: str = Field(min_length=1)
    args: list[Any] = Field(default_factory=list, max_length=MAX_HANDLER_ARGS)

    @field_validator("handler_id")
    @classmethod
    def validate_handler_id(cls, v: str) -> str:
        """Ensure handler id is non-empty after stripping."""
        if not v.strip():
            raise ValueError("Handler id cannot be blank")
        return v


class LogRequest(RequestValidator):
    """Arguments of `log`."""

    level: Literal["log", "info", "warn", "error"]
    args: list[Any] = Field(default_factory=list)


class ReportErrorRequest(RequestValidator):
    """Payload of `reportError`."""

    name: str = "Error"
    message: str
    stack: str | None = None


def validate_request(model: type[T], data: Any) -> Result[T, ValidationResult]:
    """
    Validate an RPC payload against a request model.

    Args:
        model: Request model class
        data: Decoded payload

    Returns:
        Success(model instance) or Failure(ValidationResult)
    """
    try:
        return Success(model.model_validate(data))
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(part) for part in first.get("loc", ()))
        return Failure(
            ValidationResult(
                message=first.get("msg", str(e)),
                field=loc or None,
                value=first.get("input"),
            )
        )


def parse_tree(data: Any) -> Result[UINode | None, ValidationResult]:
    """
    Validate a full tree payload (Result pattern).

    `None` is a valid tree (empty UI).
    """
    if data is None:
        return Success(None)

    try:
        root = msgspec.convert(data, type=UINode)
    except msgspec.ValidationError as e:
        return Failure(ValidationResult(message=f"Invalid tree: {e}", field="tree"))

    try:
        check_tree(root)
    except ValueError as e:
        return Failure(ValidationResult(message=str(e), field="tree"))

    return Success(root)
