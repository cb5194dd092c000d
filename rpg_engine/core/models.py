from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rpg_engine.core.types import (
    AIBehavior,
    ItemEffect,
    SkillTarget,
    SkillType,
    TargetPreference,
    ValueType,
)
from rpg_engine.core.commands import TriggerAction

# 스탯 id -> 수치. 스키마는 게임 콘텐츠가 정한다.
StatBlock = Dict[str, float]


# ----------------- stats -----------------

@dataclass(frozen=True)
class StatDefinition:
    """
    1차 스탯 선언.
    - default_value로 캐릭터 기본 StatBlock을 만든다.
    - min/max는 편집 시 clamp/검증에만 쓴다.
    """
    id: str
    name: str
    abbrev: str = ""
    description: str = ""
    default_value: float = 10
    min_value: float = 1
    max_value: float = 999


@dataclass(frozen=True)
class DerivedStatDefinition:
    """
    파생 스탯 선언.
    formula는 1차 스탯, Level, 앞서 선언된 파생 스탯만 참조할 수 있다(선언 순서 의존).
    """
    id: str
    name: str
    formula: str
    description: str = ""


@dataclass(frozen=True)
class CombatFormulas:
    physical_damage: str
    magic_damage: str
    critical_check: str
    turn_order: str


@dataclass(frozen=True)
class StatsConfig:
    primary: List[StatDefinition] = field(default_factory=list)
    derived: List[DerivedStatDefinition] = field(default_factory=list)
    combat_formulas: Optional[CombatFormulas] = None


# ----------------- modifiers -----------------

@dataclass(frozen=True)
class ModifierEffect:
    stat: str
    value_type: ValueType
    value: float


@dataclass(frozen=True)
class ModifierDefinition:
    """
    modifier 템플릿.
    - duration=None 이면 영구(장비 등)
    - stackable=False 이면 재부여는 no-op (첫 부여가 유지됨)
    - max_stacks=None 이면 상한 없음
    """
    id: str
    name: str
    effects: List[ModifierEffect] = field(default_factory=list)
    description: str = ""
    duration: Optional[int] = None
    stackable: bool = False
    max_stacks: Optional[int] = None


# ----------------- skills / items -----------------

@dataclass(frozen=True)
class SkillEffect:
    """스킬의 buff/debuff payload. duration은 '턴' 단위."""
    stat: str
    value: float
    duration: Optional[int] = None
    type: ValueType = "flat"


@dataclass(frozen=True)
class Skill:
    id: str
    name: str
    type: SkillType
    mp_cost: float = 0
    hp_cost: float = 0
    power: Optional[float] = None
    value: Optional[float] = None
    target: SkillTarget = "single"
    description: str = ""
    buff_effect: Optional[SkillEffect] = None
    debuff_effect: Optional[SkillEffect] = None


@dataclass(frozen=True)
class EquipmentModifier:
    stat: str
    type: ValueType
    value: float


@dataclass(frozen=True)
class Item:
    """
    소비/장비/키 아이템.
    - 장비(item_type == "equipment")는 slot/modifiers를 가진다.
    - buff 효과는 buff_stat/buff_value/buff_duration을 쓴다.
    """
    id: str
    name: str
    effect: ItemEffect = "none"
    value: float = 0
    item_type: str = "consumable"
    target: str = "single"
    description: str = ""
    buff_stat: Optional[str] = None
    buff_value: Optional[float] = None
    buff_duration: Optional[int] = None
    slot: Optional[str] = None
    modifiers: List[EquipmentModifier] = field(default_factory=list)


@dataclass(frozen=True)
class ItemDrop:
    item_id: str
    chance: float          # 퍼센트(0..100)
    count: int = 1


# ----------------- characters -----------------

@dataclass(frozen=True)
class EnemyAIConfig:
    """
    적 AI 선언. None 필드는 기본값으로 채워진다.
    (기본: balanced / heal 30% / defend 20% / random / [])
    """
    behavior: Optional[AIBehavior] = None
    heal_threshold: Optional[float] = None
    defend_threshold: Optional[float] = None
    prefer_targets: Optional[TargetPreference] = None
    skill_priority: Optional[List[str]] = None


@dataclass(frozen=True)
class CharacterDef:
    """
    플레이어 캐릭터 정의.
    - current_hp/current_mp가 있으면 전투 시작 HP/MP로 이어받는다(최대치로 clamp).
    - equipment: slot -> item id
    - inventory: item id -> count
    """
    id: str
    name: str
    base_stats: StatBlock
    skills: List[str] = field(default_factory=list)
    level: int = 1
    exp: int = 0
    current_hp: Optional[float] = None
    current_mp: Optional[float] = None
    current_stats: Optional[StatBlock] = None
    equipment: Dict[str, str] = field(default_factory=dict)
    inventory: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class EnemyDef:
    id: str
    name: str
    base_stats: StatBlock
    skills: List[str] = field(default_factory=list)
    drops: List[ItemDrop] = field(default_factory=list)
    exp: int = 0
    gold: int = 0
    ai: Optional[EnemyAIConfig] = None
    description: str = ""


# ----------------- scenes -----------------

@dataclass(frozen=True)
class BattleTrigger:
    """
    전투 중 스크립트 이벤트.
    - condition: 수식 문자열 (truthy면 발동)
    - once / max_fires 로 발동 횟수 제한
    """
    condition: str
    action: TriggerAction
    id: Optional[str] = None
    once: bool = False
    max_fires: Optional[int] = None


@dataclass(frozen=True)
class ConsumeItem:
    id: str
    count: int = 1


@dataclass(frozen=True)
class ChoiceRequirements:
    stats: Dict[str, float] = field(default_factory=dict)
    items: List[ConsumeItem] = field(default_factory=list)
    flags: Dict[str, Any] = field(default_factory=dict)
    skills: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Choice:
    id: str
    text: str
    next_scene: Optional[str] = None
    condition: Optional[str] = None      # legacy: "var op value"
    show_if: Optional[str] = None        # 수식
    requires: Optional[ChoiceRequirements] = None


@dataclass(frozen=True)
class Scene:
    id: str
    type: str = "story"
    choices: List[Choice] = field(default_factory=list)
    enemies: List[str] = field(default_factory=list)
    victory_scene: Optional[str] = None
    defeat_scene: Optional[str] = None
    triggers: List[BattleTrigger] = field(default_factory=list)


@dataclass(frozen=True)
class GameDefinition:
    """
    게임 정의 문서 전체(이미 파싱된 형태).
    엔진은 이 객체를 읽기만 한다.
    """
    id: str
    title: str
    stats: StatsConfig
    player: CharacterDef
    enemies: List[EnemyDef] = field(default_factory=list)
    skills: List[Skill] = field(default_factory=list)
    items: List[Item] = field(default_factory=list)
    scenes: List[Scene] = field(default_factory=list)
    starting_scene: Optional[str] = None
    version: str = "1.0.0"

    def find_skill(self, skill_id: str) -> Optional[Skill]:
        return next((s for s in self.skills if s.id == skill_id), None)

    def find_item(self, item_id: str) -> Optional[Item]:
        return next((i for i in self.items if i.id == item_id), None)

    def find_enemy(self, enemy_id: str) -> Optional[EnemyDef]:
        return next((e for e in self.enemies if e.id == enemy_id), None)

    def find_scene(self, scene_id: str) -> Optional[Scene]:
        return next((s for s in self.scenes if s.id == scene_id), None)
