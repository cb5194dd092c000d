from __future__ import annotations
import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, Optional

from rpg_engine.core.models import CombatFormulas, GameDefinition
from rpg_engine.core.state import Combatant
from rpg_engine.core.types import DamageType
from rpg_engine.formula import FormulaError, FormulaParser, formula_parser
from rpg_engine.rules.checks import roll_percent, roll_unit, roll_variance

logger = logging.getLogger(__name__)

DEFAULT_PHYSICAL_FORMULA = "Attack * SkillPower / 100 * (100 / (100 + EnemyDef)) * (1 + Variance * 0.1)"
DEFAULT_MAGIC_FORMULA = "MagicPower * SkillPower / 100 * (100 / (100 + EnemyRes)) * (1 + Variance * 0.1)"
DEFAULT_CRIT_FORMULA = "CritRate"

# 공격자 스탯이 없을 때 쓰는 기본값 (canonical 키)
ATTACKER_DEFAULTS: Dict[str, float] = {
    "Attack": 10,
    "MagicPower": 10,
    "Strength": 10,
    "Intelligence": 10,
    "Dexterity": 10,
    "Luck": 10,
    "CritRate": 5,
    "CritDamage": 150,
    "Speed": 10,
}
DEFENDER_DEFAULT = 10


@dataclass(frozen=True)
class DamageResult:
    damage: int
    is_critical: bool
    raw_damage: int
    mitigated_by: int


@dataclass(frozen=True)
class DamagePreview:
    min: int
    max: int
    avg_crit: int


class DamageCalculator:
    """
    두 전투원의 current_stats로 수식 context를 만들고 데미지/치명/회복을 계산한다.

    ✅ calculate는 절대 예외를 던지지 않는다.
       - 데미지 수식 실패 -> 고정 단순식으로 대체 (경고 로그)
       - 최종 데미지는 floor 후 최소 1
    """

    def __init__(
        self,
        game: Optional[GameDefinition] = None,
        *,
        formulas: Optional[CombatFormulas] = None,
        parser: Optional[FormulaParser] = None,
        rng: random.Random | None = None,
    ) -> None:
        if formulas is None and game is not None:
            formulas = game.stats.combat_formulas
        self.physical_formula = formulas.physical_damage if formulas else DEFAULT_PHYSICAL_FORMULA
        self.magic_formula = formulas.magic_damage if formulas else DEFAULT_MAGIC_FORMULA
        self.crit_formula = formulas.critical_check if formulas else DEFAULT_CRIT_FORMULA
        self.parser = parser or formula_parser
        self.rng = rng

    def calculate(
        self,
        attacker: Combatant,
        defender: Combatant,
        damage_type: DamageType,
        skill_power: float = 100,
    ) -> DamageResult:
        variance = roll_variance(self.rng)
        crit_roll = roll_percent(self.rng)
        context = self.build_context(attacker, defender, skill_power, variance, roll_unit(self.rng))

        is_critical = self._check_critical(context, crit_roll)
        context["IsCritical"] = 1 if is_critical else 0

        formula = self.physical_formula if damage_type == "physical" else self.magic_formula
        try:
            raw = self.parser.compute(formula, context)
        except FormulaError as e:
            logger.warning("Damage formula failed (%s), using fallback: %s", formula, e)
            raw = self._fallback(context, damage_type, skill_power)
        if not math.isfinite(raw):
            logger.warning("Damage formula produced %r (%s), using fallback", raw, formula)
            raw = self._fallback(context, damage_type, skill_power)

        if is_critical:
            raw *= (context["CritDamage"] or 150) / 100

        damage = max(1, math.floor(raw))
        base_attack = context["Attack"] if damage_type == "physical" else context["MagicPower"]
        mitigated = max(0, math.floor(base_attack * skill_power / 100) - damage)
        return DamageResult(damage=damage, is_critical=is_critical, raw_damage=math.floor(raw), mitigated_by=mitigated)

    def calculate_healing(self, healer: Combatant, base_power: float) -> int:
        """floor((base_power + magic_power * 0.5) * [0.9, 1.1])"""
        stats = healer.current_stats
        magic = stats.get("MagicPower", stats.get("Intelligence", 10))
        variance = 0.9 + roll_unit(self.rng) * 0.2
        return math.floor((base_power + magic * 0.5) * variance)

    def preview_damage(
        self,
        attacker: Combatant,
        defender: Combatant,
        damage_type: DamageType,
        skill_power: float = 100,
    ) -> DamagePreview:
        """UI 표시용 min/max/치명 기대값. 난수를 쓰지 않는다."""
        formula = self.physical_formula if damage_type == "physical" else self.magic_formula
        ctx_min = self.build_context(attacker, defender, skill_power, -1, 0)
        ctx_max = self.build_context(attacker, defender, skill_power, 1, 0)
        try:
            lo = max(1, math.floor(self.parser.compute(formula, ctx_min)))
            hi = max(1, math.floor(self.parser.compute(formula, ctx_max)))
        except (FormulaError, OverflowError):
            base = self._fallback(ctx_min, damage_type, skill_power)
            lo = max(1, math.floor(base * 0.9))
            hi = max(1, math.floor(base * 1.1))

        avg = (lo + hi) / 2
        crit_rate = (ctx_min["CritRate"] or 5) / 100
        crit_mult = (ctx_min["CritDamage"] or 150) / 100
        avg_crit = math.floor(avg * (1 - crit_rate) + avg * crit_mult * crit_rate)
        return DamagePreview(min=lo, max=hi, avg_crit=avg_crit)

    def build_context(
        self,
        attacker: Combatant,
        defender: Combatant,
        skill_power: float,
        variance: float,
        random_value: float,
    ) -> Dict[str, float]:
        """
        공격자 스탯 전체 + 기본값, 방어자 값은 Enemy* 접두로.
        stat 블록은 이미 canonical 키로 정규화되어 있다.
        """
        a = attacker.current_stats
        d = defender.current_stats
        context: Dict[str, float] = dict(ATTACKER_DEFAULTS)
        context.update(a)
        context["Level"] = attacker.level
        context["EnemyDef"] = d.get("Defense", DEFENDER_DEFAULT)
        context["EnemyRes"] = d.get("MagicResist", DEFENDER_DEFAULT)
        context["EnemyDefense"] = context["EnemyDef"]
        context["EnemyMagicResist"] = context["EnemyRes"]
        context["EnemySpeed"] = d.get("Speed", 0)
        context["EnemyEvasion"] = d.get("Evasion", 0)
        context["SkillPower"] = skill_power
        context["Variance"] = variance
        context["IsCritical"] = 0
        context["Random"] = random_value
        return context

    # ----------------- internal -----------------

    def _check_critical(self, context: Dict[str, float], crit_roll: float) -> bool:
        try:
            rate = self.parser.compute(self.crit_formula, context)
        except FormulaError as e:
            logger.warning("Crit formula failed (%s): %s", self.crit_formula, e)
            rate = context["CritRate"] or 5
        return crit_roll < rate

    def _fallback(self, context: Dict[str, float], damage_type: DamageType, skill_power: float) -> float:
        if damage_type == "physical":
            attack, defense = context["Attack"], context["EnemyDef"]
        else:
            attack, defense = context["MagicPower"], context["EnemyRes"]
        raw = attack * (100 / max(1, 100 + defense)) * skill_power / 100
        return raw if math.isfinite(raw) else 1.0
