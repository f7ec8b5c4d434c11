# saludlibre/results.py
"""Success/error values returned by service wrappers and platform calls.

Routers call ``unwrap`` to turn an ``Err`` into an ``HTTPException``; other
callers (emails, background notifications) branch on ``isinstance``.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from fastapi import HTTPException

T = TypeVar("T")

DB_ERROR = "Error al acceder a la base de datos"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    message: str
    status_code: int = 500

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def unwrap(result: "Result[T]") -> T:
    if isinstance(result, Err):
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return result.value
