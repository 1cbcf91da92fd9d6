"""Core data types shared across the pact tooling."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional


class SpecificationVersion(str, Enum):
    """Pact specification versions."""

    V2 = "2.0.0"
    V3 = "3.0.0"
    V4 = "4.0.0"

    def __str__(self) -> str:
        return self.value


@dataclass
class ProviderState:
    """A named provider state with optional parameters."""

    name: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON form; empty parameters are omitted."""
        data: Dict[str, Any] = {"name": self.name}
        if self.parameters:
            data["params"] = dict(self.parameters)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderState":
        """Build a provider state from its JSON form."""
        if not isinstance(data, Mapping):
            raise TypeError(f"provider state must be a mapping, got {type(data).__name__}")
        params = data.get("params") or {}
        if not isinstance(params, Mapping):
            raise TypeError("provider state 'params' must be a mapping")
        return cls(name=str(data.get("name", "")), parameters=dict(params))


# Values a state handler may hand back for "value from provider state" generators.
ProviderStateResponse = Dict[str, Any]

# Called with (setup, state) before/after an interaction is verified.
StateHandler = Callable[[bool, ProviderState], Optional[ProviderStateResponse]]

StateHandlers = Dict[str, StateHandler]