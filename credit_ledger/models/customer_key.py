from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, model_validator


class KeyKind(str, Enum):
    PHONE = "phone"
    NAME = "name"
    UNKNOWN = "unknown"


class CustomerKey(BaseModel):
    """
    Display-time grouping key for credit sales. Never persisted.

    Tagged rather than concatenated, so a ':' inside a name or phone can
    never make two different customers compare equal. str() gives the
    "kind:value" form used in URLs and logs.
    """
    model_config = ConfigDict(frozen=True)

    kind: KeyKind
    value: str

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return cls._split(data)
        return data

    @staticmethod
    def _split(text: str) -> dict:
        kind, sep, value = text.partition(":")
        if not sep:
            raise ValueError(f"Customer key must look like 'kind:value', got {text!r}")
        return {"kind": kind, "value": value}

    @classmethod
    def parse(cls, text: str) -> "CustomerKey":
        return cls(**cls._split(text))

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"
