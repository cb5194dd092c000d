# rpg_engine/engine/engine.py

from __future__ import annotations
import copy
import itertools
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union

from rpg_engine.ai.enemy_ai import EnemyAI
from rpg_engine.content.stat_keys import with_canonical_keys
from rpg_engine.core.commands import (
    BuffAction,
    CombatAction,
    DamageAction,
    DialogAction,
    DialogChoice,
    FleeAction,
    HealAction,
    MultiAction,
    SpawnAction,
    TransformAction,
    TriggerAction,
)
from rpg_engine.core.models import CharacterDef, EnemyDef, GameDefinition, Scene
from rpg_engine.core.state import (
    BattleResult,
    BattleRewards,
    Combatant,
    CombatSnapshot,
    DialogEntry,
    DroppedItem,
    SurvivorData,
    TurnQueueEntry,
)
from rpg_engine.core.types import TERMINAL_PHASES, CombatantID, CombatPhase
from rpg_engine.formula import FormulaParser
from rpg_engine.initiative.ordering import compute_turn_order
from rpg_engine.rules.actions import ActionEffect, ActionExecutor, ActionResult
from rpg_engine.rules.checks import roll_chance
from rpg_engine.stats.modifier_utils import create_timed_modifier, modifier_for_equipment
from rpg_engine.stats.modifiers import ModifierStack
from rpg_engine.stats.stat_engine import StatEngine
from rpg_engine.triggers.trigger_engine import BattleTriggerEngine

logger = logging.getLogger(__name__)

Listener = Callable[[], None]

# 행동 선택을 기다리는 phase (여기서 턴 진행 루프가 멈춘다)
_WAITING_PHASES = ("action_select", "target_select", "dialog")


@dataclass(frozen=True)
class BattleConfig:
    flee_chance: float = 0.5             # 도주 성공 확률 (0..1)
    initiative_variance: int = 10        # 선공값 = Speed + [0, variance)
    defend_damage_factor: float = 0.5    # 방어 중 받는 피해 배율
    basic_attack_defense: float = 5      # 기본 공격 fallback에서 Defense가 없을 때
    default_max_hp: float = 100
    default_max_mp: float = 50
    trigger_buff_duration: int = 3       # "턴" 단위
    narrator_name: str = "Narrator"
    max_phase_depth: int = 4             # dialog 중첩 복귀 스택 상한


class CombatStateMachine:
    """
    턴제 전투 상태 머신.

    start -> turn_start -> (action_select -> target_select ->) action_execute -> turn_end -> turn_start ...
                   \\-> dialog (복귀 가능)
    종료: victory | defeat | fled

    - 적 턴은 action_select/target_select 없이 AI가 고른 행동을 바로 실행한다.
    - 플레이어 입력이 필요하거나(dialog 포함) 전투가 끝날 때까지 턴을 동기적으로 진행한다.
    - 관찰자는 subscribe로 변경 알림을 받고 get_snapshot()으로 복사본을 읽는다.
    """

    def __init__(
        self,
        stat_engine: StatEngine,
        game: GameDefinition,
        scene: Optional[Scene] = None,
        *,
        config: BattleConfig | None = None,
        rng: random.Random | None = None,
        parser: Optional[FormulaParser] = None,
    ) -> None:
        self.config = config or BattleConfig()
        self.stat_engine = stat_engine
        self.game = game
        self.rng = rng
        self._scene = scene

        self.action_executor = ActionExecutor(
            game, parser=parser, rng=rng, defend_damage_factor=self.config.defend_damage_factor
        )
        self.enemy_ai = EnemyAI(game, rng=rng)
        self.trigger_engine = BattleTriggerEngine()
        if scene is not None and scene.triggers:
            self.trigger_engine.set_triggers(scene.triggers)

        self._phase: CombatPhase = "start"
        self._phase_stack: List[CombatPhase] = []
        self._turn_number = 0
        self._turn_index = 0
        self._turn_queue: List[TurnQueueEntry] = []
        self._combatants: Dict[CombatantID, Combatant] = {}
        self._enemy_defs: Dict[CombatantID, EnemyDef] = {}
        self._pending: Optional[CombatAction] = None
        self._battle_log: List[str] = []
        self._dialog_queue: List[DialogEntry] = []
        self._result: Optional[BattleResult] = None
        self._listeners: List[Listener] = []
        self._trigger_buff_ids = itertools.count(1)

    # ----------------- lifecycle -----------------

    def initialize(
        self,
        player: Optional[CharacterDef] = None,
        enemies: Optional[Sequence[EnemyDef]] = None,
    ) -> None:
        """
        전투원 생성 + 상태 초기화.
        - player 생략 시 game.player, enemies 생략 시 scene.enemies
        - 같은 id의 적이 앞에 이미 있으면 id에 _<index>를 붙인다
        """
        player = player or self.game.player
        if enemies is None:
            enemies = self._scene_enemies()

        self._combatants.clear()
        self._enemy_defs.clear()
        self._battle_log = []
        self._dialog_queue = []
        self._phase_stack = []
        self._pending = None
        self._result = None
        self._turn_queue = []
        self._turn_index = 0

        p = self._create_combatant(player, CombatantID(player.id), is_player=True)
        self._combatants[p.id] = p

        for index, enemy in enumerate(enemies):
            duplicate = any(e.id == enemy.id for e in enemies[:index])
            eid = CombatantID(f"{enemy.id}_{index}" if duplicate else enemy.id)
            self._combatants[eid] = self._create_combatant(enemy, eid, is_player=False)
            self._enemy_defs[eid] = enemy

        if self._scene is not None:
            self.trigger_engine.set_triggers(self._scene.triggers)

        self._phase = "start"
        self._turn_number = 0
        self._log("Battle Start!")
        self._emit()

    def start(self) -> None:
        """첫 턴 순서를 정하고 진행을 시작한다."""
        self._turn_queue = self._roll_turn_order()
        self._turn_number = 1
        self._turn_index = 0
        self._phase = "turn_start"
        self._run_turns()

    def handle_battle_end(self, victory: bool) -> Optional[str]:
        """다음 장면 id (scene의 victory_scene / defeat_scene)"""
        if self._scene is None:
            return None
        return self._scene.victory_scene if victory else self._scene.defeat_scene

    def end_battle(self) -> Optional[BattleResult]:
        """
        전투 정리:
        - 전원의 buff/debuff modifier 제거 (장비 등은 유지)
        - 리스너/트리거 해제
        """
        for c in self._combatants.values():
            c.modifiers.clear_by_source("buff")
            c.modifiers.clear_by_source("debuff")
            self._recalculate_stats(c)
        self._listeners.clear()
        self.trigger_engine.clear()
        return self._result

    # ----------------- player commands -----------------

    def select_action(self, action: CombatAction) -> None:
        if self._phase != "action_select":
            logger.debug("select_action ignored in phase %s", self._phase)
            return
        if action.kind not in ("skill", "item", "defend", "flee"):
            raise ValueError(f"Unknown action kind: {action.kind}")
        current = self.current_combatant()
        if current is None or action.actor_id != current.id:
            logger.warning("select_action ignored: %s is not the acting combatant", action.actor_id)
            return

        self._pending = copy.deepcopy(action)
        if action.kind == "defend":
            self._execute_pending()
            self._run_turns()
        elif action.kind == "flee":
            self._attempt_flee()
        else:
            self._phase = "target_select"
            self._emit()

    def select_targets(self, target_ids: Sequence[str]) -> None:
        if self._phase != "target_select" or self._pending is None:
            logger.debug("select_targets ignored in phase %s", self._phase)
            return
        self._pending.target_ids = [CombatantID(t) for t in target_ids]
        self._execute_pending()
        self._run_turns()

    def cancel_target_selection(self) -> None:
        """유일한 역방향 전이: target_select -> action_select"""
        if self._phase != "target_select":
            return
        self._pending = None
        self._phase = "action_select"
        self._emit()

    # ----------------- dialog -----------------

    def queue_dialog(self, speaker: str, text: str, choices: Optional[Sequence[DialogChoice]] = None) -> None:
        self._dialog_queue.append(DialogEntry(speaker=speaker, text=text, choices=list(choices or [])))
        if self._phase == "dialog":
            return
        if self.is_battle_over():
            # 종료 후 대사는 큐에만 쌓는다
            self._emit()
            return
        if len(self._phase_stack) >= self.config.max_phase_depth:
            logger.error("Phase stack overflow (depth %d), dialog will resume to %s",
                         len(self._phase_stack), self._phase_stack[-1])
        else:
            self._phase_stack.append(self._phase)
        self._phase = "dialog"
        self._emit()

    def dismiss_dialog(self) -> None:
        """선택지가 있는 대사는 닫을 수 없다 (select_dialog_choice 사용)."""
        if not self._dialog_queue:
            return
        if self._dialog_queue[0].choices:
            return
        self._dialog_queue.pop(0)
        self._after_dialog()

    def select_dialog_choice(self, choice_id: str) -> None:
        if not self._dialog_queue:
            return
        current = self._dialog_queue[0]
        choice = next((c for c in current.choices if c.id == choice_id), None)
        if choice is None:
            logger.debug("Unknown dialog choice %r", choice_id)
            return

        self._dialog_queue.pop(0)
        if choice.action is not None:
            self.handle_trigger_action(choice.action)
            self._check_battle_end()
        self._after_dialog()

    # ----------------- trigger actions -----------------

    def handle_trigger_action(self, action: TriggerAction) -> None:
        """
        트리거/대사 선택지의 행동 실행.
        target 생략 시 현재 턴 전투원(flee 제외). 대상을 못 찾으면 경고 후 no-op.
        """
        if isinstance(action, DialogAction):
            self.queue_dialog(action.speaker or self.config.narrator_name, action.text, action.choices)

        elif isinstance(action, SpawnAction):
            enemy = self.game.find_enemy(action.enemy_id)
            if enemy is None:
                logger.warning("Spawn: unknown enemy %r", action.enemy_id)
                return
            self._spawn_enemy(enemy)

        elif isinstance(action, BuffAction):
            target = self._resolve_target(action.target)
            if target is None:
                return
            duration = action.duration if action.duration is not None else self.config.trigger_buff_duration
            mod = create_timed_modifier(
                f"trigger_buff_{next(self._trigger_buff_ids)}",
                "Battle Effect",
                action.stat,
                action.value,
                duration,
                description="Applied by battle trigger",
            )
            target.modifiers.add_modifier(mod, "buff")
            self._recalculate_stats(target)
            self._log(f"{target.name} gained a buff!")

        elif isinstance(action, HealAction):
            target = self._resolve_target(action.target)
            if target is None or not target.is_alive:
                return
            healed = target.restore_hp(action.amount)
            self._log(f"{target.name} recovered {healed:g} HP!")

        elif isinstance(action, DamageAction):
            target = self._resolve_target(action.target)
            if target is None or not target.is_alive:
                return
            died = target.take_damage(action.amount)
            self._log(f"{target.name} took {action.amount:g} damage!")
            if died:
                self._log(f"{target.name} was defeated!")

        elif isinstance(action, FleeAction):
            target = self._combatants.get(CombatantID(action.target)) if action.target else None
            if target is None:
                logger.warning("Flee: target %r not found", action.target)
                return
            if not target.is_player:
                target.is_alive = False
                self._log(f"{target.name} fled the battle!")

        elif isinstance(action, TransformAction):
            target = self._resolve_target(action.target)
            new_enemy = self.game.find_enemy(action.new_enemy_id)
            if new_enemy is None:
                logger.warning("Transform: unknown enemy %r", action.new_enemy_id)
                return
            if target is None or target.is_player:
                return
            self._transform(target, new_enemy)

        elif isinstance(action, MultiAction):
            for sub in action.actions:
                self.handle_trigger_action(sub)

        else:
            raise ValueError(f"Unknown trigger action: {action!r}")

    # ----------------- observation -----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_snapshot(self) -> CombatSnapshot:
        queue, combatants, pending, dialogs, result = copy.deepcopy(
            (self._turn_queue, self._combatants, self._pending, self._dialog_queue, self._result)
        )
        return CombatSnapshot(
            phase=self._phase,
            turn_number=self._turn_number,
            current_turn_index=self._turn_index,
            turn_queue=queue,
            combatants=combatants,
            pending_action=pending,
            battle_log=list(self._battle_log),
            dialog_queue=dialogs,
            current_dialog=dialogs[0] if dialogs else None,
            battle_result=result,
        )

    # ----------------- convenience getters -----------------

    @property
    def phase(self) -> CombatPhase:
        return self._phase

    @property
    def scene(self) -> Optional[Scene]:
        return self._scene

    @property
    def turn_number(self) -> int:
        return self._turn_number

    @property
    def battle_result(self) -> Optional[BattleResult]:
        return self._result

    def current_combatant(self) -> Optional[Combatant]:
        if 0 <= self._turn_index < len(self._turn_queue):
            return self._combatants.get(self._turn_queue[self._turn_index].combatant_id)
        return None

    def enemies(self) -> List[Combatant]:
        return [c for c in self._combatants.values() if not c.is_player and c.is_alive]

    def players(self) -> List[Combatant]:
        return [c for c in self._combatants.values() if c.is_player and c.is_alive]

    def all_combatants(self) -> List[Combatant]:
        return list(self._combatants.values())

    def get_combatant(self, cid: str) -> Optional[Combatant]:
        return self._combatants.get(CombatantID(cid))

    def is_battle_over(self) -> bool:
        return self._phase in TERMINAL_PHASES

    # ----------------- internal: turn flow -----------------

    def _run_turns(self) -> None:
        """입력 대기 phase나 종료 phase에 닿을 때까지 턴을 진행한다 (재귀 없음)."""
        while not self.is_battle_over() and self._phase not in _WAITING_PHASES:
            self._start_turn()

    def _start_turn(self) -> None:
        self._phase = "turn_start"
        c = self.current_combatant()
        if c is None or not c.is_alive:
            self._next_turn()
            return

        c.is_defending = False
        if c.modifiers.tick_duration():
            self._log(f"{c.name}'s effects wore off")
        self._recalculate_stats(c)
        self._log(f"{c.name}'s turn")

        self._check_triggers()
        self._check_battle_end()
        if self.is_battle_over() or self._phase == "dialog":
            self._emit()
            return

        self._dispatch_turn(c)

    def _dispatch_turn(self, c: Combatant) -> None:
        """플레이어면 행동 선택 대기, 적이면 AI 행동 즉시 실행."""
        if not c.is_alive:
            self._end_turn()
            return
        if c.is_player:
            self._phase = "action_select"
            self._emit()
            return

        enemy_def = self._enemy_defs.get(c.id)
        action = self.enemy_ai.select_action(c, self.get_snapshot(), enemy_def.ai if enemy_def else None)
        self._pending = action
        self._execute_pending()

    def _execute_pending(self) -> None:
        action = self._pending
        if action is None:
            return

        self._phase = "action_execute"
        self._emit()

        actor = self._combatants.get(action.actor_id)
        if actor is None:
            logger.warning("Acting combatant %s not found", action.actor_id)
            self._pending = None
            self._end_turn()
            return

        if action.kind == "skill":
            self._execute_skill(actor, action)
        elif action.kind == "item":
            self._execute_item(actor, action)
        elif action.kind == "defend":
            actor.is_defending = True
            self._log(f"{actor.name} is defending!")
        else:
            raise ValueError(f"Cannot execute action kind: {action.kind}")

        self._pending = None
        self._check_battle_end()
        if self._phase == "action_execute":
            self._end_turn()

    def _end_turn(self) -> None:
        self._phase = "turn_end"
        self._emit()
        self._next_turn()

    def _next_turn(self) -> None:
        self._turn_index += 1
        if self._turn_index >= len(self._turn_queue):
            self._turn_number += 1
            self._turn_index = 0
            self._turn_queue = self._roll_turn_order()
            if not self._turn_queue:
                self._check_battle_end()

    def _roll_turn_order(self) -> List[TurnQueueEntry]:
        return compute_turn_order(
            self._combatants.values(), variance=self.config.initiative_variance, rng=self.rng
        )

    def _attempt_flee(self) -> None:
        check = roll_chance(chance=self.config.flee_chance * 100, rng=self.rng)
        if check.success:
            self._pending = None
            self._log("Escaped successfully!")
            self._phase = "fled"
            self._phase_stack.clear()
            self._emit()
            return
        self._log("Failed to escape!")
        self._pending = None
        self._end_turn()
        self._run_turns()

    # ----------------- internal: action execution -----------------

    def _targets(self, action: CombatAction) -> List[Combatant]:
        return [self._combatants[t] for t in action.target_ids if t in self._combatants]

    def _execute_skill(self, actor: Combatant, action: CombatAction) -> None:
        skill = self.action_executor.get_skill_by_id(action.skill_id or "")
        if skill is None:
            self._execute_basic_attack(actor, action)
            return
        result = self.action_executor.execute_skill(actor, skill, self._targets(action))
        self._apply_result(result)

    def _execute_item(self, actor: Combatant, action: CombatAction) -> None:
        item = self.action_executor.get_item_by_id(action.item_id or "")
        if item is None:
            self._log(f"{actor.name} tries to use an item, but nothing happens!")
            return
        result = self.action_executor.execute_item(actor, item, self._targets(action))
        self._apply_result(result)

    def _apply_result(self, result: ActionResult) -> None:
        self._log(result.message)
        if not result.success:
            return
        self._log_effects(result.effects)
        for tid in result.killed_targets:
            target = self._combatants.get(tid)
            if target is not None:
                self._log(f"{target.name} was defeated!")
        # buff/debuff로 바뀐 스탯 재계산
        for e in result.effects:
            if e.type in ("buff", "debuff") and e.target_id in self._combatants:
                self._recalculate_stats(self._combatants[e.target_id])

    def _execute_basic_attack(self, actor: Combatant, action: CombatAction) -> None:
        """스킬 id를 못 찾으면 기본 공격: attack * 100 / (100 + defense), 방어 중이면 절반"""
        self._log(f"{actor.name} attacks!")
        attack = actor.current_stats.get("Attack", 10)
        for target in self._targets(action):
            if not target.is_alive:
                continue
            defense = target.current_stats.get("Defense", self.config.basic_attack_defense)
            base = max(1, math.floor(attack * (100 / max(1, 100 + defense))))
            dmg = math.floor(base * self.config.defend_damage_factor) if target.is_defending else base
            died = target.take_damage(dmg)
            self._log(f"{target.name} takes {dmg} damage!")
            if died:
                self._log(f"{target.name} was defeated!")

    def _log_effects(self, effects: Sequence[ActionEffect]) -> None:
        for e in effects:
            target = self._combatants.get(e.target_id)
            if target is None:
                continue
            if e.type == "damage":
                crit = " Critical hit!" if e.is_critical else ""
                self._log(f"{target.name} takes {e.value:g} damage!{crit}")
            elif e.type == "heal":
                self._log(f"{target.name} recovers {e.value:g} HP!")
            elif e.type == "healMp":
                self._log(f"{target.name} recovers {e.value:g} MP!")
            elif e.type == "buff":
                self._log(f"{target.name}'s {e.stat_affected or 'stats'} increased!")
            elif e.type == "debuff":
                self._log(f"{target.name}'s {e.stat_affected or 'stats'} decreased!")
            elif e.type == "revive":
                self._log(f"{target.name} was revived with {e.value:g} HP!")

    # ----------------- internal: battle end -----------------

    def _check_battle_end(self) -> None:
        """결과는 처음 감지된 순간 한 번만 만든다."""
        if self._result is not None:
            return
        players = [c for c in self._combatants.values() if c.is_player]
        enemies = [c for c in self._combatants.values() if not c.is_player]

        if all(not p.is_alive for p in players):
            self._phase = "defeat"
            self._phase_stack.clear()
            self._result = self._create_result(False, players)
            self._log("Defeat...")
            self._emit()
        elif all(not e.is_alive for e in enemies):
            self._phase = "victory"
            self._phase_stack.clear()
            rewards = self._calculate_rewards()
            self._result = self._create_result(True, players, rewards)
            self._log_rewards(rewards)
            self._emit()

    def _calculate_rewards(self) -> BattleRewards:
        """전투에 등장했던 모든 적(이미 쓰러진 적 포함)의 exp/gold 합 + 드롭 판정(같은 아이템은 합산)"""
        exp = 0
        gold = 0
        drops: Dict[str, DroppedItem] = {}
        for enemy in self._enemy_defs.values():
            exp += enemy.exp
            gold += enemy.gold
            for drop in enemy.drops:
                if not roll_chance(chance=drop.chance, rng=self.rng).success:
                    continue
                if drop.item_id in drops:
                    drops[drop.item_id].count += drop.count
                else:
                    drops[drop.item_id] = DroppedItem(item_id=drop.item_id, count=drop.count)
        return BattleRewards(exp=exp, gold=gold, items=list(drops.values()))

    def _create_result(
        self, victory: bool, players: List[Combatant], rewards: Optional[BattleRewards] = None
    ) -> BattleResult:
        survivors = [
            SurvivorData(
                id=p.id,
                name=p.name,
                remaining_hp=p.current_hp,
                max_hp=p.max_hp,
                remaining_mp=p.current_mp,
                max_mp=p.max_mp,
            )
            for p in players
            if p.is_alive
        ]
        return BattleResult(victory=victory, rewards=rewards, surviving_players=survivors, turn_count=self._turn_number)

    def _log_rewards(self, rewards: BattleRewards) -> None:
        self._log("Victory!")
        if rewards.exp > 0:
            self._log(f"Gained {rewards.exp} EXP!")
        if rewards.gold > 0:
            self._log(f"Found {rewards.gold} gold!")
        for d in rewards.items:
            item = self.game.find_item(d.item_id)
            name = item.name if item else d.item_id
            suffix = f" x{d.count}" if d.count > 1 else ""
            self._log(f"Obtained {name}{suffix}!")

    # ----------------- internal: dialog -----------------

    def _after_dialog(self) -> None:
        if self._dialog_queue:
            self._emit()
            return
        if self.is_battle_over():
            self._emit()
            return
        self._resume_phase()

    def _resume_phase(self) -> None:
        previous: CombatPhase = self._phase_stack.pop() if self._phase_stack else "start"
        self._phase = previous
        if previous != "turn_start":
            self._emit()
            return
        # 턴 시작 중에 끊겼으면 그 턴을 이어서 진행
        c = self.current_combatant()
        if c is None:
            self._next_turn()
        else:
            self._dispatch_turn(c)
        self._run_turns()

    # ----------------- internal: triggers -----------------

    def _check_triggers(self) -> None:
        for r in self.trigger_engine.evaluate(self.get_snapshot()):
            self.handle_trigger_action(r.action)

    def _resolve_target(self, target_id: Optional[str]) -> Optional[Combatant]:
        if target_id is None:
            return self.current_combatant()
        target = self._combatants.get(CombatantID(target_id))
        if target is None:
            logger.warning("Trigger target %r not found", target_id)
        return target

    def _spawn_enemy(self, enemy: EnemyDef) -> None:
        eid = enemy.id
        counter = 1
        while eid in self._combatants:
            eid = f"{enemy.id}_{counter}"
            counter += 1
        cid = CombatantID(eid)

        self._combatants[cid] = self._create_combatant(enemy, cid, is_player=False)
        self._enemy_defs[cid] = enemy

        # 현재 선공값 평균 위치로 합류
        if self._turn_queue:
            avg = sum(e.initiative for e in self._turn_queue) / len(self._turn_queue)
        else:
            avg = 0
        self._turn_queue.append(TurnQueueEntry(combatant_id=cid, initiative=avg))
        self._log(f"{enemy.name} appeared!")

    def _transform(self, target: Combatant, new_enemy: EnemyDef) -> None:
        """HP 비율을 유지한 채 다른 적 정의로 교체"""
        ratio = target.current_hp / target.max_hp if target.max_hp > 0 else 1.0
        target.name = new_enemy.name
        target.base_stats = dict(new_enemy.base_stats)
        target.skills = list(new_enemy.skills)
        self._recalculate_stats(target, keep_max=False)
        target.current_hp = math.floor(target.max_hp * ratio)
        self._enemy_defs[target.id] = new_enemy
        self._log(f"{target.name} transformed!")

    # ----------------- internal: combatants -----------------

    def _scene_enemies(self) -> List[EnemyDef]:
        if self._scene is None:
            return []
        out: List[EnemyDef] = []
        for eid in self._scene.enemies:
            enemy = self.game.find_enemy(eid)
            if enemy is None:
                logger.warning("Scene %s lists unknown enemy %r", self._scene.id, eid)
                continue
            out.append(enemy)
        return out

    def _create_combatant(
        self, source: Union[CharacterDef, EnemyDef], cid: CombatantID, *, is_player: bool
    ) -> Combatant:
        level = source.level if isinstance(source, CharacterDef) else 1
        modifiers = ModifierStack()
        if isinstance(source, CharacterDef):
            self._equip(source, modifiers)

        c = Combatant(
            id=cid,
            name=source.name,
            is_player=is_player,
            base_stats=dict(source.base_stats),
            current_stats={},
            current_hp=0,
            current_mp=0,
            max_hp=self.config.default_max_hp,
            max_mp=self.config.default_max_mp,
            skills=list(source.skills),
            modifiers=modifiers,
            level=level,
        )
        self._recalculate_stats(c, keep_max=False)

        hp = source.current_hp if isinstance(source, CharacterDef) else None
        mp = source.current_mp if isinstance(source, CharacterDef) else None
        c.current_hp = c.max_hp if hp is None else min(hp, c.max_hp)
        c.current_mp = c.max_mp if mp is None else min(mp, c.max_mp)
        return c

    def _equip(self, character: CharacterDef, modifiers: ModifierStack) -> None:
        for slot, item_id in character.equipment.items():
            item = self.game.find_item(item_id)
            if item is None:
                logger.warning("Equipment %r in slot %s not found", item_id, slot)
                continue
            if item.modifiers:
                modifiers.add_modifier(modifier_for_equipment(item), "equipment")

    def _recalculate_stats(self, c: Combatant, *, keep_max: bool = True) -> None:
        """
        base -> (primary + Level + derived) -> canonical 키 -> modifier 적용
        max_hp/max_mp는 스탯에 MaxHP/MaxMP가 없으면 이전 값(keep_max) 또는 기본값.
        current_hp/mp는 여기서 건드리지 않는다.
        """
        complete = with_canonical_keys(self.stat_engine.get_complete_stats(c.base_stats, c.level))
        c.current_stats = c.modifiers.apply_to_stats(complete)
        fallback_hp = c.max_hp if keep_max else self.config.default_max_hp
        fallback_mp = c.max_mp if keep_max else self.config.default_max_mp
        c.max_hp = c.current_stats.get("MaxHP", fallback_hp)
        c.max_mp = c.current_stats.get("MaxMP", fallback_mp)

    # ----------------- internal: misc -----------------

    def _log(self, message: str) -> None:
        self._battle_log.append(message)
        logger.debug("battle: %s", message)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener()
