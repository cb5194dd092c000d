from __future__ import annotations
from dataclasses import dataclass
from typing import List, Union


@dataclass(frozen=True)
class NumberNode:
    value: float


@dataclass(frozen=True)
class IdentifierNode:
    name: str        # 점 표기 그대로 (예: "enemy.hpPercent")


@dataclass(frozen=True)
class BinaryOpNode:
    operator: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class UnaryOpNode:
    operator: str    # "-" | "!"
    operand: "Node"


@dataclass(frozen=True)
class TernaryNode:
    condition: "Node"
    if_true: "Node"
    if_false: "Node"


@dataclass(frozen=True)
class FunctionCallNode:
    name: str
    args: List["Node"]


Node = Union[NumberNode, IdentifierNode, BinaryOpNode, UnaryOpNode, TernaryNode, FunctionCallNode]
