from __future__ import annotations


class FormulaError(ValueError):
    """수식 처리 중 발생하는 모든 오류의 루트."""


class FormulaSyntaxError(FormulaError):
    """토큰화/파싱 실패 (알 수 없는 문자, 예상치 못한 토큰, 잘못된 숫자)."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message)
        self.position = position


class FormulaEvalError(FormulaError):
    """평가 실패 (0으로 나누기, 잘못된 함수 인자 등)."""


class UnknownVariableError(FormulaEvalError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown variable: {name}")
        self.name = name


class UnknownFunctionError(FormulaEvalError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown function: {name}")
        self.name = name
