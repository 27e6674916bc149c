from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class AbstractInstruction:
    position: int
    opcode: int
    mnemonic: str
    operand: Optional[str] = None
    line_no: int = 0


@dataclass(frozen=True)
class SymbolTable:
    labels: Mapping[str, int] = field(default_factory=dict)
    variables: Mapping[str, int] = field(default_factory=dict)
    variable_positions: Mapping[str, int] = field(default_factory=dict)

    @classmethod
    def freeze(
        cls,
        labels: Dict[str, int],
        variables: Dict[str, int],
        variable_positions: Dict[str, int],
    ) -> "SymbolTable":
        return cls(
            labels=MappingProxyType(dict(labels)),
            variables=MappingProxyType(dict(variables)),
            variable_positions=MappingProxyType(dict(variable_positions)),
        )

    def get_label(self, name: str) -> Optional[int]:
        return self.labels.get(name)

    def get_variable_position(self, name: str) -> Optional[int]:
        return self.variable_positions.get(name)

    def labels_at(self, position: int) -> Tuple[str, ...]:
        return tuple(name for name, pos in self.labels.items() if pos == position)


@dataclass(frozen=True)
class Program:
    instructions: Tuple[AbstractInstruction, ...]
    symbols: SymbolTable

    @property
    def instruction_count(self) -> int:
        return len(self.instructions)

    @property
    def variable_count(self) -> int:
        return len(self.symbols.variables)

    def variable_address(self, name: str) -> Optional[int]:
        """Absolute word address of a variable stored after the code."""
        ordinal = self.symbols.get_variable_position(name)
        if ordinal is None:
            return None
        return self.instruction_count + ordinal - 1
