from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from rpg_engine.core.models import CharacterDef, Choice, ChoiceRequirements, GameDefinition
from rpg_engine.formula import FormulaError, FormulaParser

logger = logging.getLogger(__name__)

HIDDEN = "hidden"
CONDITION_NOT_MET = "condition not met"


@dataclass(frozen=True)
class EvaluatedChoice:
    choice: Choice
    available: bool
    reason: Optional[str] = None


class ChoiceEvaluator:
    """
    장면 선택지의 노출/선택 가능 여부 판정.

    순서:
      1) show_if 수식이 거짓이면 숨김 (결과 목록에서 제외)
      2) requires: 최소 스탯 -> 소지 아이템 -> 스토리 플래그 -> 습득 스킬
      3) legacy condition "var op value"

    ✅ show_if 수식 오류는 "보임"으로 취급한다.
    ✅ 스토리 변수는 호출자가 mapping으로 넘긴다 (수식에서는 var_<name>, bool은 1/0).
    """

    def __init__(self, game: GameDefinition, parser: Optional[FormulaParser] = None) -> None:
        self.game = game
        self.parser = parser or FormulaParser()

    def evaluate_choices(
        self,
        choices: Sequence[Choice],
        character: CharacterDef,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> List[EvaluatedChoice]:
        variables = variables or {}
        evaluated = [self.evaluate_choice(c, character, variables) for c in choices]
        return [e for e in evaluated if e.reason != HIDDEN]

    def evaluate_choice(
        self,
        choice: Choice,
        character: CharacterDef,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> EvaluatedChoice:
        variables = variables or {}

        if choice.show_if and not self._is_visible(choice.show_if, character, variables):
            return EvaluatedChoice(choice, False, HIDDEN)

        if choice.requires is not None:
            reason = self._unmet_requirement(choice.requires, character, variables)
            if reason is not None:
                return EvaluatedChoice(choice, False, reason)

        if choice.condition and not _simple_condition(choice.condition, variables):
            return EvaluatedChoice(choice, False, CONDITION_NOT_MET)

        return EvaluatedChoice(choice, True)

    # ----------------- internal -----------------

    def _is_visible(self, formula: str, character: CharacterDef, variables: Mapping[str, Any]) -> bool:
        try:
            return bool(self.parser.compute(formula, build_choice_context(character, variables)))
        except FormulaError as e:
            logger.warning("Failed to evaluate condition: %s (%s)", formula, e)
            return True

    def _unmet_requirement(
        self, requires: ChoiceRequirements, character: CharacterDef, variables: Mapping[str, Any]
    ) -> Optional[str]:
        stats = character.current_stats or {}
        for stat_id, minimum in requires.stats.items():
            current = stats.get(stat_id, character.base_stats.get(stat_id, 0))
            if current < minimum:
                return f"Requires {self._stat_name(stat_id)} {minimum:g} (current: {current:g})"

        for need in requires.items:
            if character.inventory.get(need.id, 0) < need.count:
                item = self.game.find_item(need.id)
                return f"Requires {need.count}x {item.name if item else need.id}"

        for flag, expected in requires.flags.items():
            if variables.get(flag) != expected:
                return f"Requires {flag}"

        for skill_id in requires.skills:
            if skill_id not in character.skills:
                skill = self.game.find_skill(skill_id)
                return f"Requires skill: {skill.name if skill else skill_id}"

        return None

    def _stat_name(self, stat_id: str) -> str:
        stat = next((s for s in self.game.stats.primary if s.id == stat_id), None)
        return stat.name if stat else stat_id


def build_choice_context(character: CharacterDef, variables: Mapping[str, Any]) -> Dict[str, float]:
    """base -> current(덮어씀) -> hp/mp/level -> var_<name>"""
    ctx: Dict[str, float] = dict(character.base_stats)
    ctx.update(character.current_stats or {})

    max_hp = ctx.get("maxHp", ctx.get("MaxHP", 100))
    max_mp = ctx.get("maxMp", ctx.get("MaxMP", 50))
    ctx["hp"] = character.current_hp if character.current_hp is not None else max_hp
    ctx["maxHp"] = max_hp
    ctx["mp"] = character.current_mp if character.current_mp is not None else max_mp
    ctx["maxMp"] = max_mp
    ctx["level"] = character.level

    for key, value in variables.items():
        if isinstance(value, bool):
            ctx[f"var_{key}"] = 1 if value else 0
        elif isinstance(value, (int, float)):
            ctx[f"var_{key}"] = value
    return ctx


def _simple_condition(condition: str, variables: Mapping[str, Any]) -> bool:
    """
    legacy 형식 "hasKey == true".
    세 토큰이 아니거나 모르는 연산자면 통과.
    """
    parts = condition.split()
    if len(parts) != 3:
        return True
    name, op, expected = parts
    actual = variables.get(name)

    if op == "==":
        return _as_text(actual) == expected
    if op == "!=":
        return _as_text(actual) != expected

    a, b = _as_number(actual), _as_number(expected)
    if op == ">":
        return a > b
    if op == "<":
        return a < b
    if op == ">=":
        return a >= b
    if op == "<=":
        return a <= b
    return True


def _as_text(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_number(value: Any) -> float:
    """숫자로 못 바꾸면 nan (모든 비교가 거짓)"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan
