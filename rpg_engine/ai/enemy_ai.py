from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from rpg_engine.core.commands import CombatAction
from rpg_engine.core.models import EnemyAIConfig, GameDefinition, Skill
from rpg_engine.core.state import Combatant, CombatSnapshot
from rpg_engine.core.types import AIBehavior, CombatantID, TargetPreference
from rpg_engine.rules.checks import pick, roll_unit

logger = logging.getLogger(__name__)

BASIC_ATTACK_ID = "basic_attack"

BUFF_CHANCE = 0.3
DEBUFF_CHANCE = 0.2
SCRIPTED_BUFF_PERIOD = 3


@dataclass(frozen=True)
class ResolvedAIConfig:
    behavior: AIBehavior = "balanced"
    heal_threshold: float = 30
    defend_threshold: float = 20
    prefer_targets: TargetPreference = "random"
    skill_priority: tuple[str, ...] = ()


def resolve_ai_config(config: Optional[EnemyAIConfig]) -> ResolvedAIConfig:
    """적별 선언을 기본값 위에 덮어쓴다 (None 필드는 기본값 유지)."""
    base = ResolvedAIConfig()
    if config is None:
        return base
    return ResolvedAIConfig(
        behavior=config.behavior or base.behavior,
        heal_threshold=base.heal_threshold if config.heal_threshold is None else config.heal_threshold,
        defend_threshold=base.defend_threshold if config.defend_threshold is None else config.defend_threshold,
        prefer_targets=config.prefer_targets or base.prefer_targets,
        skill_priority=tuple(config.skill_priority or ()),
    )


class EnemyAI:
    """
    비플레이어 전투원의 행동 선택.

    behavior:
      - aggressive : 감당 가능한 최고 위력 공격 (없으면 기본 공격)
      - defensive  : 저체력 회복 -> 방어 -> 최저 위력 공격(MP 절약)
      - balanced   : 회복 -> 30% 자기 버프 -> 20% 최강 대상 디버프 -> 무작위 공격
      - random     : 감당 가능한 스킬/대상 균등 선택
      - scripted   : skill_priority 순환 -> 3턴 주기 버프 -> balanced

    ✅ 살아있는 플레이어가 없으면 항상 방어.
    ✅ weakest/strongest 동률은 (current_hp, id) 순으로 결정 (map 순회 순서와 무관).
    """

    def __init__(self, game: GameDefinition, *, rng: random.Random | None = None) -> None:
        self.game = game
        self.rng = rng

    def select_action(
        self,
        enemy: Combatant,
        snapshot: CombatSnapshot,
        ai_config: Optional[EnemyAIConfig] = None,
    ) -> CombatAction:
        config = resolve_ai_config(ai_config)
        players = [c for c in snapshot.combatants.values() if c.is_player and c.is_alive]
        if not players:
            return self._defend(enemy)

        skills = self._available_skills(enemy)
        behavior = config.behavior
        if behavior == "aggressive":
            return self._aggressive(enemy, skills, players, config)
        if behavior == "defensive":
            return self._defensive(enemy, skills, players, config)
        if behavior == "balanced":
            return self._balanced(enemy, skills, players, config)
        if behavior == "scripted":
            return self._scripted(enemy, skills, players, snapshot, config)
        if behavior != "random":
            logger.warning("Unknown AI behavior %r for %s, acting randomly", behavior, enemy.id)
        return self._random(enemy, skills, players)

    # ----------------- behaviors -----------------

    def _aggressive(
        self, enemy: Combatant, skills: List[Skill], players: List[Combatant], config: ResolvedAIConfig
    ) -> CombatAction:
        attacks = sorted(
            (s for s in skills if _is_attack(s) and _affordable(enemy, s)),
            key=lambda s: -(s.power or 0),
        )
        preference: TargetPreference = "weakest" if config.prefer_targets == "random" else config.prefer_targets
        target = self._select_target(players, preference)
        if not attacks:
            return self._skill(enemy, BASIC_ATTACK_ID, [target.id])
        return self._skill(enemy, attacks[0].id, self._target_ids(attacks[0], enemy, target, players))

    def _defensive(
        self, enemy: Combatant, skills: List[Skill], players: List[Combatant], config: ResolvedAIConfig
    ) -> CombatAction:
        hp = enemy.hp_percent
        if hp <= config.heal_threshold:
            heal = self._first(skills, enemy, "healing")
            if heal is not None:
                return self._skill(enemy, heal.id, [enemy.id])

        if hp <= config.defend_threshold:
            return self._defend(enemy)

        attacks = sorted(
            (s for s in skills if _is_attack(s) and _affordable(enemy, s)),
            key=lambda s: s.power or 0,
        )
        if attacks:
            target = self._select_target(players, config.prefer_targets)
            return self._skill(enemy, attacks[0].id, self._target_ids(attacks[0], enemy, target, players))
        return self._defend(enemy)

    def _balanced(
        self, enemy: Combatant, skills: List[Skill], players: List[Combatant], config: ResolvedAIConfig
    ) -> CombatAction:
        if enemy.hp_percent <= config.heal_threshold:
            heal = self._first(skills, enemy, "healing")
            if heal is not None:
                return self._skill(enemy, heal.id, [enemy.id])

        buff = self._first(skills, enemy, "buff")
        if buff is not None and roll_unit(self.rng) < BUFF_CHANCE:
            return self._skill(enemy, buff.id, [enemy.id])

        debuff = self._first(skills, enemy, "debuff")
        if debuff is not None and roll_unit(self.rng) < DEBUFF_CHANCE:
            target = self._select_target(players, "strongest")
            return self._skill(enemy, debuff.id, [target.id])

        attacks = [s for s in skills if _is_attack(s) and _affordable(enemy, s)]
        if attacks:
            skill = pick(attacks, self.rng)
            target = self._select_target(players, config.prefer_targets)
            return self._skill(enemy, skill.id, self._target_ids(skill, enemy, target, players))
        return self._defend(enemy)

    def _random(self, enemy: Combatant, skills: List[Skill], players: List[Combatant]) -> CombatAction:
        usable = [s for s in skills if _affordable(enemy, s)]
        if not usable:
            return self._defend(enemy)
        skill = pick(usable, self.rng)
        target = self._select_target(players, "random")
        return self._skill(enemy, skill.id, self._target_ids(skill, enemy, target, players))

    def _scripted(
        self,
        enemy: Combatant,
        skills: List[Skill],
        players: List[Combatant],
        snapshot: CombatSnapshot,
        config: ResolvedAIConfig,
    ) -> CombatAction:
        if config.skill_priority:
            wanted = config.skill_priority[snapshot.turn_number % len(config.skill_priority)]
            skill = next((s for s in skills if s.id == wanted and _affordable(enemy, s)), None)
            if skill is not None:
                target = self._select_target(players, config.prefer_targets)
                return self._skill(enemy, skill.id, self._target_ids(skill, enemy, target, players))

        if snapshot.turn_number % SCRIPTED_BUFF_PERIOD == 0:
            buff = self._first(skills, enemy, "buff")
            if buff is not None:
                return self._skill(enemy, buff.id, [enemy.id])

        return self._balanced(enemy, skills, players, config)

    # ----------------- internal -----------------

    def _available_skills(self, enemy: Combatant) -> List[Skill]:
        out: List[Skill] = []
        for sid in enemy.skills:
            skill = self.game.find_skill(sid)
            if skill is None:
                logger.debug("Enemy %s knows unknown skill %r", enemy.id, sid)
                continue
            out.append(skill)
        return out

    def _first(self, skills: List[Skill], enemy: Combatant, skill_type: str) -> Optional[Skill]:
        return next((s for s in skills if s.type == skill_type and _affordable(enemy, s)), None)

    def _select_target(self, targets: List[Combatant], preference: TargetPreference) -> Combatant:
        if not targets:
            raise ValueError("No valid targets")
        if preference == "weakest":
            return min(targets, key=lambda c: (c.current_hp, c.id))
        if preference == "strongest":
            return min(targets, key=lambda c: (-c.current_hp, c.id))
        return pick(targets, self.rng)

    def _target_ids(
        self,
        skill: Skill,
        enemy: Combatant,
        primary: Combatant,
        players: List[Combatant],
    ) -> List[CombatantID]:
        """
        - 회복/버프/방어/self 스킬: 시전자 자신
        - target == "all": 살아있는 플레이어 전원
        - 그 외: primary 한 명
        """
        if skill.type in ("healing", "buff", "defense") or skill.target == "self":
            return [enemy.id]
        if skill.target == "all":
            return [p.id for p in players]
        return [primary.id]

    def _skill(self, enemy: Combatant, skill_id: str, target_ids: List[CombatantID]) -> CombatAction:
        return CombatAction(kind="skill", actor_id=enemy.id, skill_id=skill_id, target_ids=list(target_ids))

    def _defend(self, enemy: Combatant) -> CombatAction:
        return CombatAction(kind="defend", actor_id=enemy.id)


def _is_attack(skill: Skill) -> bool:
    return skill.type in ("physical", "magic")


def _affordable(enemy: Combatant, skill: Skill) -> bool:
    if skill.mp_cost > enemy.current_mp:
        return False
    return not (skill.hp_cost and skill.hp_cost >= enemy.current_hp)
