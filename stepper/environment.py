"""The live variable frame of a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import RuntimeStepFailure
from .values import UNDEFINED


@dataclass
class Environment:
    """Flat name → Value mapping for the single active frame.

    There is no parent chain: function entry swaps in a fresh Environment and
    function exit swaps the caller's back.
    """

    bindings: dict[str, Any] = field(default_factory=dict)
    constants: set[str] = field(default_factory=set)

    def has(self, name: str) -> bool:
        return name in self.bindings

    def lookup(self, name: str, default: Any = UNDEFINED) -> Any:
        return self.bindings.get(name, default)

    def declare(self, name: str, value: Any, constant: bool = False):
        self.bindings[name] = value
        if constant:
            self.constants.add(name)
        else:
            self.constants.discard(name)

    def assign(self, name: str, value: Any, line: int | None = None):
        if name in self.constants:
            raise RuntimeStepFailure(
                "TypeError: Assignment to constant variable.", line=line
            )
        self.bindings[name] = value

    def __len__(self) -> int:
        return len(self.bindings)
