from __future__ import annotations
from dataclasses import dataclass
from typing import List, Literal, Union

from rpg_engine.formula.errors import FormulaSyntaxError

TokenKind = Literal[
    "NUMBER",
    "IDENTIFIER",
    "OPERATOR",
    "COMPARATOR",
    "LOGIC",
    "LPAREN",
    "RPAREN",
    "COMMA",
    "TERNARY_Q",
    "TERNARY_COLON",
    "EOF",
]

OPERATORS = ("+", "-", "*", "/", "%")
TWO_CHAR_COMPARATORS = ("<=", ">=", "==", "!=")
TWO_CHAR_LOGIC = ("&&", "||")

_SINGLE_CHAR_KINDS = {
    "<": "COMPARATOR",
    ">": "COMPARATOR",
    "!": "LOGIC",
    "(": "LPAREN",
    ")": "RPAREN",
    ",": "COMMA",
    "?": "TERNARY_Q",
    ":": "TERNARY_COLON",
}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: Union[float, str]
    position: int


def tokenize(formula: str) -> List[Token]:
    """
    수식 문자열 -> 토큰 리스트 (항상 EOF로 끝남)

    규칙:
      - 공백은 건너뛴다.
      - 숫자: 10진수(소수 허용). "1.2.3" 같은 형태는 오류.
      - 식별자: [A-Za-z_][A-Za-z0-9_.]*  (점 표기로 중첩 context 조회: enemy.hpPercent)
      - 2글자 연산자(<= >= == != && ||)를 1글자보다 먼저 본다.
      - 문자열/불리언 리터럴은 없다. 불리언은 1/0.

    주의:
      - 그 외 문자는 FormulaSyntaxError (문자와 위치를 함께 보고)
    """
    tokens: List[Token] = []
    pos = 0
    n = len(formula)

    while pos < n:
        ch = formula[pos]

        if ch.isspace():
            pos += 1
            continue

        # numbers
        if _is_digit(ch) or (ch == "." and pos + 1 < n and _is_digit(formula[pos + 1])):
            start = pos
            while pos < n and (_is_digit(formula[pos]) or formula[pos] == "."):
                pos += 1
            text = formula[start:pos]
            if text.count(".") > 1:
                raise FormulaSyntaxError(f"Malformed number '{text}' at position {start}", start)
            tokens.append(Token("NUMBER", float(text), start))
            continue

        # identifiers
        if _is_ident_start(ch):
            start = pos
            while pos < n and (_is_ident_start(formula[pos]) or _is_digit(formula[pos]) or formula[pos] == "."):
                pos += 1
            tokens.append(Token("IDENTIFIER", formula[start:pos], start))
            continue

        two = formula[pos:pos + 2]
        if two in TWO_CHAR_COMPARATORS:
            tokens.append(Token("COMPARATOR", two, pos))
            pos += 2
            continue
        if two in TWO_CHAR_LOGIC:
            tokens.append(Token("LOGIC", two, pos))
            pos += 2
            continue

        if ch in OPERATORS:
            tokens.append(Token("OPERATOR", ch, pos))
            pos += 1
            continue

        kind = _SINGLE_CHAR_KINDS.get(ch)
        if kind is not None:
            tokens.append(Token(kind, ch, pos))  # type: ignore[arg-type]
            pos += 1
            continue

        raise FormulaSyntaxError(f"Unexpected character '{ch}' at position {pos}", pos)

    tokens.append(Token("EOF", "", pos))
    return tokens


# ----------------- internal -----------------

def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ident_start(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_"
