from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Union

from rpg_engine.formula.ast import (
    BinaryOpNode,
    FunctionCallNode,
    IdentifierNode,
    Node,
    NumberNode,
    TernaryNode,
    UnaryOpNode,
)
from rpg_engine.formula.errors import (
    FormulaError,
    FormulaEvalError,
    FormulaSyntaxError,
    UnknownFunctionError,
    UnknownVariableError,
)
from rpg_engine.formula.tokenizer import Token, TokenKind, tokenize

# 변수 context: 이름 -> 숫자 | 중첩 context (점 표기로 조회)
FormulaValue = Union[float, int, bool, "FormulaContext"]
FormulaContext = Mapping[str, FormulaValue]


def _round_half_up(x: float) -> float:
    return float(math.floor(x + 0.5))


def _clamp(value: float, lo: float, hi: float) -> float:
    return min(max(value, lo), hi)


BUILTIN_FUNCTIONS: Dict[str, Callable[..., float]] = {
    "min": min,
    "max": max,
    "floor": math.floor,
    "ceil": math.ceil,
    "round": _round_half_up,
    "abs": abs,
    "sqrt": math.sqrt,
    "pow": math.pow,
    "clamp": _clamp,
}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def resolve_path(context: FormulaContext, name: str) -> float:
    """
    점 표기 이름을 중첩 context에서 찾아 숫자로 돌려준다.
    - 중간 경로가 mapping이 아니거나, 마지막 값이 숫자가 아니면 UnknownVariableError
    - bool은 1/0
    """
    value: object = context
    for part in name.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            raise UnknownVariableError(name)
    if isinstance(value, (int, float)):
        return float(value)
    raise UnknownVariableError(name)


class FormulaParser:
    """
    재귀 하강 수식 파서 + 평가기.

    우선순위(낮음 -> 높음):
      ternary(?:, 우결합) -> || -> && -> 비교(< > <= >= == !=) -> + - -> * / % -> 단항(- !) -> primary

    ✅ 호출 간 상태를 보관하지 않는다 (토큰/위치는 호출마다 새로 만든다).
       단일 스레드 재진입은 안전. 스레드 간 공유가 필요하면 스레드마다 인스턴스를 만든다.
    """

    def __init__(self, functions: Optional[Mapping[str, Callable[..., float]]] = None) -> None:
        self.functions: Dict[str, Callable[..., float]] = dict(BUILTIN_FUNCTIONS)
        if functions:
            self.functions.update(functions)

    def parse(self, formula: str) -> Node:
        cursor = _Cursor(tokenize(formula))
        node = cursor.parse_ternary()
        cursor.expect("EOF")
        return node

    def compute(self, formula: str, context: Optional[FormulaContext] = None) -> float:
        return self.evaluate(self.parse(formula), context or {})

    def validate(self, formula: str) -> ValidationResult:
        """파싱만 해본다. 변수 존재 여부는 확인하지 않는다."""
        try:
            self.parse(formula)
        except FormulaError as e:
            return ValidationResult(valid=False, error=str(e))
        return ValidationResult(valid=True)

    def get_variables(self, formula: str) -> List[str]:
        """식별자 노드 이름을 등장 순서대로(중복 제거) 모은다. 함수 이름은 제외."""
        found: Dict[str, None] = {}
        self._collect_variables(self.parse(formula), found)
        return list(found)

    def evaluate(self, node: Node, context: FormulaContext) -> float:
        if isinstance(node, NumberNode):
            return node.value

        if isinstance(node, IdentifierNode):
            return resolve_path(context, node.name)

        if isinstance(node, BinaryOpNode):
            # 단락 평가 없음: 양쪽 모두 평가
            left = self.evaluate(node.left, context)
            right = self.evaluate(node.right, context)
            return _apply_binary(node.operator, left, right)

        if isinstance(node, UnaryOpNode):
            operand = self.evaluate(node.operand, context)
            if node.operator == "-":
                return -operand
            if node.operator == "!":
                return 0.0 if operand else 1.0
            raise FormulaEvalError(f"Unknown unary operator: {node.operator}")

        if isinstance(node, TernaryNode):
            if self.evaluate(node.condition, context):
                return self.evaluate(node.if_true, context)
            return self.evaluate(node.if_false, context)

        if isinstance(node, FunctionCallNode):
            func = self.functions.get(node.name)
            if func is None:
                raise UnknownFunctionError(node.name)
            args = [self.evaluate(a, context) for a in node.args]
            try:
                return float(func(*args))
            except (TypeError, ValueError, OverflowError) as e:
                raise FormulaEvalError(f"Invalid arguments for {node.name}(): {e}") from e

        raise FormulaEvalError(f"Unknown node: {node!r}")

    # ----------------- internal -----------------

    def _collect_variables(self, node: Node, found: Dict[str, None]) -> None:
        if isinstance(node, IdentifierNode):
            found.setdefault(node.name, None)
        elif isinstance(node, BinaryOpNode):
            self._collect_variables(node.left, found)
            self._collect_variables(node.right, found)
        elif isinstance(node, UnaryOpNode):
            self._collect_variables(node.operand, found)
        elif isinstance(node, TernaryNode):
            self._collect_variables(node.condition, found)
            self._collect_variables(node.if_true, found)
            self._collect_variables(node.if_false, found)
        elif isinstance(node, FunctionCallNode):
            for a in node.args:
                self._collect_variables(a, found)


def _apply_binary(op: str, left: float, right: float) -> float:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        if right == 0:
            raise FormulaEvalError("Division by zero")
        return left / right
    if op == "%":
        if right == 0:
            raise FormulaEvalError("Modulo by zero")
        return math.fmod(left, right)
    if op == "<":
        return 1.0 if left < right else 0.0
    if op == ">":
        return 1.0 if left > right else 0.0
    if op == "<=":
        return 1.0 if left <= right else 0.0
    if op == ">=":
        return 1.0 if left >= right else 0.0
    if op == "==":
        return 1.0 if left == right else 0.0
    if op == "!=":
        return 1.0 if left != right else 0.0
    if op == "&&":
        return 1.0 if (left and right) else 0.0
    if op == "||":
        return 1.0 if (left or right) else 0.0
    raise FormulaEvalError(f"Unknown operator: {op}")


class _Cursor:
    """한 번의 parse 호출 동안만 사는 토큰 커서."""

    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def match(self, kind: TokenKind, *values: str) -> bool:
        tok = self.current()
        if tok.kind != kind:
            return False
        return not values or tok.value in values

    def expect(self, kind: TokenKind) -> Token:
        tok = self.current()
        if tok.kind != kind:
            raise FormulaSyntaxError(
                f"Expected {kind} but got {tok.kind} at position {tok.position}", tok.position
            )
        return self.advance()

    # grammar

    def parse_ternary(self) -> Node:
        node = self.parse_logical_or()
        if self.match("TERNARY_Q"):
            self.advance()
            if_true = self.parse_ternary()
            self.expect("TERNARY_COLON")
            if_false = self.parse_ternary()
            node = TernaryNode(condition=node, if_true=if_true, if_false=if_false)
        return node

    def parse_logical_or(self) -> Node:
        node = self.parse_logical_and()
        while self.match("LOGIC", "||"):
            op = str(self.advance().value)
            node = BinaryOpNode(op, node, self.parse_logical_and())
        return node

    def parse_logical_and(self) -> Node:
        node = self.parse_comparison()
        while self.match("LOGIC", "&&"):
            op = str(self.advance().value)
            node = BinaryOpNode(op, node, self.parse_comparison())
        return node

    def parse_comparison(self) -> Node:
        node = self.parse_additive()
        while self.match("COMPARATOR"):
            op = str(self.advance().value)
            node = BinaryOpNode(op, node, self.parse_additive())
        return node

    def parse_additive(self) -> Node:
        node = self.parse_multiplicative()
        while self.match("OPERATOR", "+", "-"):
            op = str(self.advance().value)
            node = BinaryOpNode(op, node, self.parse_multiplicative())
        return node

    def parse_multiplicative(self) -> Node:
        node = self.parse_unary()
        while self.match("OPERATOR", "*", "/", "%"):
            op = str(self.advance().value)
            node = BinaryOpNode(op, node, self.parse_unary())
        return node

    def parse_unary(self) -> Node:
        if self.match("OPERATOR", "-") or self.match("LOGIC", "!"):
            op = str(self.advance().value)
            return UnaryOpNode(op, self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Node:
        tok = self.current()

        if tok.kind == "NUMBER":
            self.advance()
            return NumberNode(float(tok.value))

        if tok.kind == "IDENTIFIER":
            self.advance()
            if self.match("LPAREN"):
                return self.parse_function_call(str(tok.value))
            return IdentifierNode(str(tok.value))

        if tok.kind == "LPAREN":
            self.advance()
            node = self.parse_ternary()
            self.expect("RPAREN")
            return node

        raise FormulaSyntaxError(f"Unexpected token {tok.kind} at position {tok.position}", tok.position)

    def parse_function_call(self, name: str) -> Node:
        self.expect("LPAREN")
        args: List[Node] = []
        if not self.match("RPAREN"):
            args.append(self.parse_ternary())
            while self.match("COMMA"):
                self.advance()
                args.append(self.parse_ternary())
        self.expect("RPAREN")
        return FunctionCallNode(name=name, args=args)
