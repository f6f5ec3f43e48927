from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict

from storefront.domain.enums import ErrorKind


class OperationOk(BaseModel):
    ok: Literal[True] = True
    data: Any = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class OperationFailed(BaseModel):
    ok: Literal[False] = False
    error_kind: ErrorKind
    message: str

    model_config = ConfigDict(frozen=True)


OperationResult = Union[OperationOk, OperationFailed]


def succeeded(data: Any = None) -> OperationOk:
    return OperationOk(data=data)


def failed(error_kind: ErrorKind, message: str) -> OperationFailed:
    return OperationFailed(error_kind=error_kind, message=message)
