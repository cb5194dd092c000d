from __future__ import annotations

from rpg_engine.formula.errors import (
    FormulaError,
    FormulaEvalError,
    FormulaSyntaxError,
    UnknownFunctionError,
    UnknownVariableError,
)
from rpg_engine.formula.parser import (
    BUILTIN_FUNCTIONS,
    FormulaContext,
    FormulaParser,
    ValidationResult,
    resolve_path,
)
from rpg_engine.formula.tokenizer import Token, tokenize

# 단일 스레드 호출자용 공유 인스턴스
formula_parser = FormulaParser()

__all__ = [
    "BUILTIN_FUNCTIONS",
    "FormulaContext",
    "FormulaError",
    "FormulaEvalError",
    "FormulaParser",
    "FormulaSyntaxError",
    "Token",
    "UnknownFunctionError",
    "UnknownVariableError",
    "ValidationResult",
    "formula_parser",
    "resolve_path",
    "tokenize",
]
