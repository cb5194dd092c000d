from __future__ import annotations
import math
from typing import Dict, List, Mapping, Optional, Sequence

from rpg_engine.core.models import (
    CombatFormulas,
    DerivedStatDefinition,
    StatBlock,
    StatDefinition,
    StatsConfig,
)
from rpg_engine.formula import FormulaParser, formula_parser

DEFAULT_COMBAT_FORMULAS = CombatFormulas(
    physical_damage="Attack * (100 / (100 + EnemyDef))",
    magic_damage="MagicPower * (100 / (100 + EnemyRes))",
    critical_check="CritRate",
    turn_order="Speed + Dexterity * 0.5",
)

# 전투 수식에서만 추가로 쓸 수 있는 이름
COMBAT_SPECIAL_VARIABLES = ("EnemyDef", "EnemyRes", "EnemySpeed", "EnemyEvasion", "Level")


class StatConfigError(ValueError):
    """스탯 선언/수식이 잘못됨 (게임 로드 시점에 실패시킨다)."""


class StatEngine:
    """
    1차/파생 스탯 선언과 전투 수식을 소유하고 계산한다.

    - 파생 스탯은 선언 순서대로 계산(앞의 파생 스탯을 참조 가능), 결과는 floor.
    - 생성 시점에 모든 수식을 검증한다. 잘못된 수식은 전투까지 가지 않는다.
    """

    def __init__(
        self,
        primary: Sequence[StatDefinition],
        derived: Sequence[DerivedStatDefinition],
        combat_formulas: Optional[CombatFormulas] = None,
        *,
        parser: Optional[FormulaParser] = None,
    ) -> None:
        self.parser = parser or formula_parser
        self._primary: List[StatDefinition] = list(primary)
        self._derived: List[DerivedStatDefinition] = list(derived)
        self.combat_formulas = combat_formulas or DEFAULT_COMBAT_FORMULAS
        self._validate_config()

    @classmethod
    def from_stats_config(cls, config: StatsConfig, *, parser: Optional[FormulaParser] = None) -> "StatEngine":
        return cls(config.primary, config.derived, config.combat_formulas, parser=parser)

    @property
    def primary_stats(self) -> List[StatDefinition]:
        return list(self._primary)

    @property
    def derived_stats(self) -> List[DerivedStatDefinition]:
        return list(self._derived)

    def create_default_stat_block(self) -> StatBlock:
        return {s.id: s.default_value for s in self._primary}

    def calculate_derived_stats(self, primary: Mapping[str, float], level: int = 1) -> StatBlock:
        context: Dict[str, float] = dict(primary)
        context["Level"] = level
        derived: StatBlock = {}
        for stat in self._derived:
            value = self.parser.compute(stat.formula, context)
            derived[stat.id] = math.floor(value)
            context[stat.id] = derived[stat.id]
        return derived

    def get_complete_stats(self, primary: Mapping[str, float], level: int = 1) -> StatBlock:
        """primary ∪ {Level} ∪ derived"""
        block: StatBlock = dict(primary)
        block["Level"] = level
        block.update(self.calculate_derived_stats(primary, level))
        return block

    def calculate_physical_damage(self, attacker: Mapping[str, float], defender: Mapping[str, float]) -> int:
        value = self.parser.compute(self.combat_formulas.physical_damage, self._damage_context(attacker, defender))
        return max(1, math.floor(value))

    def calculate_magic_damage(self, attacker: Mapping[str, float], defender: Mapping[str, float]) -> int:
        value = self.parser.compute(self.combat_formulas.magic_damage, self._damage_context(attacker, defender))
        return max(1, math.floor(value))

    def calculate_crit_chance(self, attacker: Mapping[str, float]) -> float:
        chance = self.parser.compute(self.combat_formulas.critical_check, attacker)
        return min(100.0, max(0.0, chance))

    def calculate_turn_order(self, stats: Mapping[str, float]) -> float:
        return self.parser.compute(self.combat_formulas.turn_order, stats)

    def get_stat_definition(self, stat_id: str) -> Optional[StatDefinition]:
        return next((s for s in self._primary if s.id == stat_id), None)

    def get_derived_stat_definition(self, stat_id: str) -> Optional[DerivedStatDefinition]:
        return next((s for s in self._derived if s.id == stat_id), None)

    def is_valid_stat_value(self, stat_id: str, value: float) -> bool:
        d = self.get_stat_definition(stat_id)
        if d is None:
            return True
        return d.min_value <= value <= d.max_value

    def clamp_stat_value(self, stat_id: str, value: float) -> float:
        d = self.get_stat_definition(stat_id)
        if d is None:
            return value
        return min(d.max_value, max(d.min_value, value))

    # ----------------- internal -----------------

    def _damage_context(self, attacker: Mapping[str, float], defender: Mapping[str, float]) -> Dict[str, float]:
        context: Dict[str, float] = dict(attacker)
        context["EnemyDef"] = defender.get("Defense", 0)
        context["EnemyRes"] = defender.get("MagicResist", 0)
        context["EnemySpeed"] = defender.get("Speed", 0)
        context["EnemyEvasion"] = defender.get("Evasion", 0)
        return context

    def _validate_config(self) -> None:
        available = {s.id for s in self._primary}
        available.add("Level")

        for d in self._derived:
            self._check_formula(f"derived stat '{d.id}'", d.formula, available)
            # 이후 파생 스탯부터 참조 가능
            available.add(d.id)

        combat_vars = available | set(COMBAT_SPECIAL_VARIABLES)
        for name in ("physical_damage", "magic_damage", "critical_check", "turn_order"):
            self._check_formula(f"combat formula '{name}'", getattr(self.combat_formulas, name), combat_vars)

    def _check_formula(self, label: str, formula: str, available: set[str]) -> None:
        result = self.parser.validate(formula)
        if not result.valid:
            raise StatConfigError(f"Invalid formula for {label}: {result.error}")
        for name in self.parser.get_variables(formula):
            if name not in available:
                raise StatConfigError(f"{label} references unknown stat '{name}'")


DEFAULT_STAT_CONFIG = StatsConfig(
    primary=[
        StatDefinition("Strength", "Strength", "STR", "Physical power"),
        StatDefinition("Dexterity", "Dexterity", "DEX", "Agility and precision"),
        StatDefinition("Constitution", "Constitution", "CON", "Health and stamina"),
        StatDefinition("Intelligence", "Intelligence", "INT", "Magic power"),
        StatDefinition("Wisdom", "Wisdom", "WIS", "Magic resistance"),
        StatDefinition("Luck", "Luck", "LCK", "Fortune and criticals"),
    ],
    derived=[
        DerivedStatDefinition("MaxHP", "Max HP", "Constitution * 10 + Level * 5"),
        DerivedStatDefinition("MaxMP", "Max MP", "Intelligence * 5 + Wisdom * 3"),
        DerivedStatDefinition("Attack", "Attack", "Strength * 2 + Dexterity * 0.5"),
        DerivedStatDefinition("Defense", "Defense", "Constitution * 1.5 + Strength * 0.5"),
        DerivedStatDefinition("MagicPower", "Magic Power", "Intelligence * 3"),
        DerivedStatDefinition("MagicResist", "Magic Resist", "Wisdom * 2 + Constitution * 0.5"),
        DerivedStatDefinition("Speed", "Speed", "Dexterity * 2 + Intelligence * 0.5"),
        DerivedStatDefinition("Evasion", "Evasion", "Dexterity + Luck * 0.5"),
        DerivedStatDefinition("CritRate", "Crit Rate", "5 + Luck * 0.3 + Dexterity * 0.1"),
    ],
    combat_formulas=DEFAULT_COMBAT_FORMULAS,
)
