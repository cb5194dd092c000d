from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from rpg_engine.core.commands import CombatAction, DialogChoice
from rpg_engine.core.models import StatBlock
from rpg_engine.core.types import CombatantID, CombatPhase
from rpg_engine.stats.modifiers import ModifierStack


@dataclass
class Combatant:
    """
    전투 중 런타임 참가자(플레이어/적).
    - base_stats: 전투 시작 시 스냅샷 (전투 중 불변, transform 제외)
    - current_stats: base + 파생 스탯에 modifier를 적용한 값 (재계산됨)
    - 사망해도 map에서 빠지지 않는다 (is_alive=False)
    """
    id: CombatantID
    name: str
    is_player: bool
    base_stats: StatBlock
    current_stats: StatBlock
    current_hp: float
    current_mp: float
    max_hp: float
    max_mp: float
    skills: List[str] = field(default_factory=list)
    modifiers: ModifierStack = field(default_factory=ModifierStack)
    is_defending: bool = False
    is_alive: bool = True
    level: int = 1

    @property
    def hp_percent(self) -> float:
        if self.max_hp <= 0:
            return 0.0
        return self.current_hp / self.max_hp * 100

    @property
    def mp_percent(self) -> float:
        if self.max_mp <= 0:
            return 100.0
        return self.current_mp / self.max_mp * 100

    def take_damage(self, amount: float) -> bool:
        """HP 감소(0 clamp). 이번 피해로 쓰러졌으면 True."""
        self.current_hp = max(0, self.current_hp - amount)
        if self.current_hp <= 0 and self.is_alive:
            self.is_alive = False
            return True
        return False

    def restore_hp(self, amount: float) -> float:
        """max_hp까지 회복하고 실제 회복량을 돌려준다."""
        before = self.current_hp
        self.current_hp = min(self.max_hp, self.current_hp + amount)
        return self.current_hp - before

    def restore_mp(self, amount: float) -> float:
        before = self.current_mp
        self.current_mp = min(self.max_mp, self.current_mp + amount)
        return self.current_mp - before


@dataclass(frozen=True)
class TurnQueueEntry:
    combatant_id: CombatantID
    initiative: float


@dataclass(frozen=True)
class DialogEntry:
    speaker: str
    text: str
    choices: List[DialogChoice] = field(default_factory=list)


@dataclass
class DroppedItem:
    item_id: str
    count: int


@dataclass(frozen=True)
class BattleRewards:
    exp: int
    gold: int
    items: List[DroppedItem] = field(default_factory=list)


@dataclass(frozen=True)
class SurvivorData:
    id: CombatantID
    name: str
    remaining_hp: float
    max_hp: float
    remaining_mp: float
    max_mp: float


@dataclass(frozen=True)
class BattleResult:
    victory: bool
    rewards: Optional[BattleRewards]
    surviving_players: List[SurvivorData]
    turn_count: int


@dataclass(frozen=True)
class CombatSnapshot:
    """
    상태 머신 내부의 시점 복사본.
    ✅ 전부 deep copy 이므로 수정해도 엔진에 영향 없음.
    """
    phase: CombatPhase
    turn_number: int
    current_turn_index: int
    turn_queue: List[TurnQueueEntry]
    combatants: Dict[CombatantID, Combatant]
    pending_action: Optional[CombatAction]
    battle_log: List[str]
    dialog_queue: List[DialogEntry]
    current_dialog: Optional[DialogEntry]
    battle_result: Optional[BattleResult]
