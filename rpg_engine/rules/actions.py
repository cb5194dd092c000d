from __future__ import annotations
import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, get_args

from rpg_engine.core.models import GameDefinition, Item, Skill, SkillEffect
from rpg_engine.core.state import Combatant
from rpg_engine.core.types import CombatantID, EffectType, ItemEffect, ModifierSource, SkillType
from rpg_engine.formula import FormulaParser
from rpg_engine.rules.damage import DamageCalculator
from rpg_engine.stats.modifier_utils import create_timed_modifier

logger = logging.getLogger(__name__)

SKILL_TYPES = get_args(SkillType)
ITEM_EFFECTS = get_args(ItemEffect)

DEFEND_DAMAGE_FACTOR = 0.5
DEFAULT_ITEM_BUFF_DURATION = 3


@dataclass(frozen=True)
class ActionEffect:
    """대상 1명에게 실제로 일어난 일 (로그/표시용)"""
    target_id: CombatantID
    type: EffectType
    value: float
    is_critical: bool = False
    stat_affected: Optional[str] = None


@dataclass(frozen=True)
class ActionResult:
    success: bool
    message: str
    effects: List[ActionEffect] = field(default_factory=list)
    killed_targets: List[CombatantID] = field(default_factory=list)


class ActionExecutor:
    """
    스킬/아이템의 선언된 효과를 대상에게 적용한다.
    - 비용 부족, 모르는 스킬 type/아이템 효과는 예외가 아니라 success=False 결과 (상태 변화 없음)
    - UI 문구는 요약 message 하나만 만든다 (세부는 effects)
    """

    def __init__(
        self,
        game: GameDefinition,
        *,
        damage_calculator: Optional[DamageCalculator] = None,
        parser: Optional[FormulaParser] = None,
        rng: random.Random | None = None,
        defend_damage_factor: float = DEFEND_DAMAGE_FACTOR,
    ) -> None:
        self.game = game
        self.damage_calculator = damage_calculator or DamageCalculator(game, parser=parser, rng=rng)
        self.defend_damage_factor = defend_damage_factor

    def get_skill_by_id(self, skill_id: str) -> Optional[Skill]:
        return self.game.find_skill(skill_id)

    def get_item_by_id(self, item_id: str) -> Optional[Item]:
        return self.game.find_item(item_id)

    def execute_skill(self, actor: Combatant, skill: Skill, targets: Sequence[Combatant]) -> ActionResult:
        """
        1) type/비용 확인 (실패 시 아무것도 바꾸지 않음)
           - MP: current_mp >= mp_cost
           - HP: current_hp > hp_cost (HP 비용 스킬은 비용보다 HP가 많아야 함)
        2) 비용 차감
        3) skill.type 별 분기
        """
        if skill.type not in SKILL_TYPES:
            logger.warning("Skill %s has unknown type %r, nothing happens", skill.id, skill.type)
            return ActionResult(success=False, message=f"{skill.name} has no effect!")
        if skill.mp_cost > actor.current_mp:
            return ActionResult(
                success=False,
                message=f"Not enough MP! (Need {skill.mp_cost:g}, have {actor.current_mp:g})",
            )
        if skill.hp_cost and skill.hp_cost >= actor.current_hp:
            return ActionResult(
                success=False,
                message=f"Not enough HP! (Need {skill.hp_cost:g}, have {actor.current_hp:g})",
            )

        actor.current_mp -= skill.mp_cost
        if skill.hp_cost:
            actor.current_hp -= skill.hp_cost

        effects: List[ActionEffect] = []
        killed: List[CombatantID] = []

        if skill.type in ("physical", "magic"):
            effects.extend(self._attack(actor, skill, targets, killed))
        elif skill.type == "healing":
            effects.extend(self._heal(actor, skill, targets))
        elif skill.type == "buff":
            effects.extend(self._buff(skill, targets))
        elif skill.type == "debuff":
            effects.extend(self._debuff(skill, targets))
        elif skill.type == "defense":
            effects.extend(self._defense(actor, skill))
        elif skill.type == "special":
            # buff/debuff/공격을 선언된 만큼 조합
            if skill.buff_effect:
                effects.extend(self._buff(skill, targets))
            if skill.debuff_effect:
                effects.extend(self._debuff(skill, targets))
            if skill.power and skill.power > 0:
                effects.extend(self._attack(actor, skill, targets, killed))

        return ActionResult(
            success=True,
            message=f"{actor.name} uses {skill.name}!",
            effects=effects,
            killed_targets=killed,
        )

    def execute_item(self, actor: Combatant, item: Item, targets: Sequence[Combatant]) -> ActionResult:
        if item.effect not in ITEM_EFFECTS:
            logger.warning("Item %s has unknown effect %r, nothing happens", item.id, item.effect)
            return ActionResult(success=False, message=f"{item.name} has no effect!")

        effects: List[ActionEffect] = []
        killed: List[CombatantID] = []

        if item.effect == "healHp":
            for t in _alive(targets):
                effects.append(ActionEffect(t.id, "heal", t.restore_hp(item.value)))

        elif item.effect == "healMp":
            for t in _alive(targets):
                effects.append(ActionEffect(t.id, "healMp", t.restore_mp(item.value), stat_affected="MP"))

        elif item.effect == "revive":
            # 이미 쓰러진 대상만
            for t in targets:
                if t.is_alive:
                    continue
                t.is_alive = True
                t.current_hp = int(t.max_hp * item.value / 100)
                effects.append(ActionEffect(t.id, "revive", t.current_hp))

        elif item.effect == "buff":
            if item.buff_stat and item.buff_value:
                mod = create_timed_modifier(
                    f"item_{item.id}",
                    item.name,
                    item.buff_stat,
                    item.buff_value,
                    item.buff_duration if item.buff_duration is not None else DEFAULT_ITEM_BUFF_DURATION,
                    description=item.description,
                )
                for t in _alive(targets):
                    t.modifiers.add_modifier(mod, "item")
                    effects.append(ActionEffect(t.id, "buff", item.buff_value, stat_affected=item.buff_stat))

        elif item.effect == "damage":
            for t in _alive(targets):
                if t.take_damage(item.value):
                    killed.append(t.id)
                effects.append(ActionEffect(t.id, "damage", item.value))

        elif item.effect == "cure":
            for t in _alive(targets):
                t.modifiers.clear_by_source("debuff")
                effects.append(ActionEffect(t.id, "buff", 0, stat_affected="status"))

        elif item.effect == "none":
            pass

        return ActionResult(
            success=True,
            message=f"{actor.name} uses {item.name}!",
            effects=effects,
            killed_targets=killed,
        )

    # ----------------- internal -----------------

    def _attack(
        self, actor: Combatant, skill: Skill, targets: Sequence[Combatant], killed: List[CombatantID]
    ) -> List[ActionEffect]:
        damage_type = "magic" if skill.type == "magic" else "physical"
        power = skill.power if skill.power is not None else 100
        out: List[ActionEffect] = []
        for t in _alive(targets):
            r = self.damage_calculator.calculate(actor, t, damage_type, power)
            dmg = r.damage
            if t.is_defending:
                dmg = int(dmg * self.defend_damage_factor)
            if t.take_damage(dmg):
                killed.append(t.id)
            out.append(ActionEffect(t.id, "damage", dmg, is_critical=r.is_critical))
        return out

    def _heal(self, actor: Combatant, skill: Skill, targets: Sequence[Combatant]) -> List[ActionEffect]:
        base = skill.power if skill.power is not None else 50
        out: List[ActionEffect] = []
        for t in _alive(targets):
            amount = self.damage_calculator.calculate_healing(actor, base)
            out.append(ActionEffect(t.id, "heal", t.restore_hp(amount)))
        return out

    def _buff(self, skill: Skill, targets: Sequence[Combatant]) -> List[ActionEffect]:
        eff = skill.buff_effect
        if eff is None:
            return []
        return self._apply_skill_effect(skill, eff, targets, f"buff_{skill.id}", "buff", eff.value)

    def _debuff(self, skill: Skill, targets: Sequence[Combatant]) -> List[ActionEffect]:
        eff = skill.debuff_effect
        if eff is None:
            return []
        # 선언 부호와 무관하게 항상 음수
        return self._apply_skill_effect(skill, eff, targets, f"debuff_{skill.id}", "debuff", -abs(eff.value))

    def _apply_skill_effect(
        self,
        skill: Skill,
        eff: SkillEffect,
        targets: Sequence[Combatant],
        mid: str,
        source: ModifierSource,
        value: float,
    ) -> List[ActionEffect]:
        mod = create_timed_modifier(
            mid, skill.name, eff.stat, value, eff.duration, value_type=eff.type, description=skill.description
        )
        out: List[ActionEffect] = []
        for t in _alive(targets):
            t.modifiers.add_modifier(mod, source)
            out.append(ActionEffect(t.id, source, value, stat_affected=eff.stat))  # type: ignore[arg-type]
        return out

    def _defense(self, actor: Combatant, skill: Skill) -> List[ActionEffect]:
        actor.is_defending = True
        eff = skill.buff_effect
        if eff is not None:
            # 방어 스킬 버프는 1턴
            mod = create_timed_modifier(
                f"defense_{skill.id}", skill.name, eff.stat, eff.value, 1,
                value_type=eff.type, description=skill.description,
            )
            actor.modifiers.add_modifier(mod, "buff")
        value = skill.value if skill.value is not None else 50
        return [ActionEffect(actor.id, "buff", value, stat_affected="Defense")]


def _alive(targets: Sequence[Combatant]) -> List[Combatant]:
    return [t for t in targets if t.is_alive]
