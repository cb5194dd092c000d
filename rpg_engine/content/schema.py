from __future__ import annotations
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rpg_engine.core.commands import (
    BuffAction,
    DamageAction,
    DialogAction,
    DialogChoice,
    FleeAction,
    HealAction,
    MultiAction,
    SpawnAction,
    TransformAction,
)
from rpg_engine.core.models import (
    BattleTrigger,
    CharacterDef,
    Choice,
    ChoiceRequirements,
    CombatFormulas,
    ConsumeItem,
    DerivedStatDefinition,
    EnemyAIConfig,
    EnemyDef,
    EquipmentModifier,
    GameDefinition,
    Item,
    ItemDrop,
    Scene,
    Skill,
    SkillEffect,
    StatDefinition,
    StatsConfig,
)
from rpg_engine.core.types import AIBehavior, ItemEffect, SkillType, TargetPreference, ValueType

# 게임 정의 JSON 문서 스키마.
# 필드 이름은 snake_case, 문서 키는 camelCase(alias). 엔진이 읽지 않는 키는 무시한다.


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ----------------- stats -----------------

class StatDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    abbrev: str = ""
    description: str = ""
    default_value: float = 10
    min_value: float = 1
    max_value: float = 999

    def to_model(self) -> StatDefinition:
        return StatDefinition(
            id=self.id,
            name=self.name or self.id,
            abbrev=self.abbrev,
            description=self.description,
            default_value=self.default_value,
            min_value=self.min_value,
            max_value=self.max_value,
        )


class DerivedStatDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    formula: str
    description: str = ""

    def to_model(self) -> DerivedStatDefinition:
        return DerivedStatDefinition(self.id, self.name or self.id, self.formula, self.description)


class CombatFormulasDoc(_Doc):
    physical_damage: str
    magic_damage: str
    critical_check: str
    turn_order: str

    def to_model(self) -> CombatFormulas:
        return CombatFormulas(self.physical_damage, self.magic_damage, self.critical_check, self.turn_order)


class StatsDoc(_Doc):
    primary: List[StatDoc]
    derived: List[DerivedStatDoc]
    combat_formulas: Optional[CombatFormulasDoc] = None

    def to_model(self) -> StatsConfig:
        return StatsConfig(
            primary=[s.to_model() for s in self.primary],
            derived=[d.to_model() for d in self.derived],
            combat_formulas=self.combat_formulas.to_model() if self.combat_formulas else None,
        )


# ----------------- characters -----------------

class InventoryEntryDoc(_Doc):
    id: str
    count: int = 1


class CharacterDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    base_stats: Dict[str, float] = Field(default_factory=dict)
    skills: List[str] = Field(default_factory=list)
    level: int = 1
    exp: int = 0
    current_hp: Optional[float] = None
    current_mp: Optional[float] = None
    current_stats: Optional[Dict[str, float]] = None
    equipment: Dict[str, str] = Field(default_factory=dict)
    # {id: count} 또는 [{id, count}]
    inventory: Union[Dict[str, int], List[InventoryEntryDoc]] = Field(default_factory=dict)

    def to_model(self) -> CharacterDef:
        inventory = self.inventory
        if isinstance(inventory, list):
            inventory = {i.id: i.count for i in inventory}
        return CharacterDef(
            id=self.id,
            name=self.name or self.id,
            base_stats=dict(self.base_stats),
            skills=list(self.skills),
            level=self.level,
            exp=self.exp,
            current_hp=self.current_hp,
            current_mp=self.current_mp,
            current_stats=self.current_stats,
            equipment=dict(self.equipment),
            inventory=dict(inventory),
        )


class CharactersDoc(_Doc):
    player: CharacterDoc


class ItemDropDoc(_Doc):
    item_id: str
    chance: float = 100
    count: int = 1


class EnemyAIDoc(_Doc):
    behavior: Optional[AIBehavior] = None
    heal_threshold: Optional[float] = None
    defend_threshold: Optional[float] = None
    prefer_targets: Optional[TargetPreference] = None
    skill_priority: Optional[List[str]] = None

    def to_model(self) -> EnemyAIConfig:
        return EnemyAIConfig(
            behavior=self.behavior,
            heal_threshold=self.heal_threshold,
            defend_threshold=self.defend_threshold,
            prefer_targets=self.prefer_targets,
            skill_priority=self.skill_priority,
        )


class EnemyDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    base_stats: Dict[str, float] = Field(default_factory=dict)
    skills: List[str] = Field(default_factory=list)
    drops: List[ItemDropDoc] = Field(default_factory=list)
    exp: int = 0
    gold: int = 0
    description: str = ""
    ai: Optional[EnemyAIDoc] = None

    def to_model(self) -> EnemyDef:
        return EnemyDef(
            id=self.id,
            name=self.name or self.id,
            base_stats=dict(self.base_stats),
            skills=list(self.skills),
            drops=[ItemDrop(item_id=d.item_id, chance=d.chance, count=d.count) for d in self.drops],
            exp=self.exp,
            gold=self.gold,
            description=self.description,
            ai=self.ai.to_model() if self.ai else None,
        )


# ----------------- skills / items -----------------

class SkillEffectDoc(_Doc):
    stat: str
    value: float
    duration: Optional[int] = None
    type: ValueType = "flat"

    def to_model(self) -> SkillEffect:
        return SkillEffect(stat=self.stat, value=self.value, duration=self.duration, type=self.type)


class SkillDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    type: SkillType
    mp_cost: float = 0
    hp_cost: float = 0
    power: Optional[float] = None
    value: Optional[float] = None
    target: str = "single"
    description: str = ""
    buff_effect: Optional[SkillEffectDoc] = None
    debuff_effect: Optional[SkillEffectDoc] = None

    def to_model(self) -> Skill:
        return Skill(
            id=self.id,
            name=self.name or self.id,
            type=self.type,
            mp_cost=self.mp_cost,
            hp_cost=self.hp_cost,
            power=self.power,
            value=self.value,
            target=self.target,  # type: ignore[arg-type]
            description=self.description,
            buff_effect=self.buff_effect.to_model() if self.buff_effect else None,
            debuff_effect=self.debuff_effect.to_model() if self.debuff_effect else None,
        )


class EquipmentModifierDoc(_Doc):
    stat: str
    type: ValueType = "flat"
    value: float


class ItemDoc(_Doc):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    type: str = "consumable"
    effect: ItemEffect = "none"
    value: float = 0
    target: str = "single"
    description: str = ""
    buff_stat: Optional[str] = None
    buff_value: Optional[float] = None
    buff_duration: Optional[int] = None
    slot: Optional[str] = None
    modifiers: List[EquipmentModifierDoc] = Field(default_factory=list)

    def to_model(self) -> Item:
        return Item(
            id=self.id,
            name=self.name or self.id,
            effect=self.effect,
            value=self.value,
            item_type=self.type,
            target=self.target,
            description=self.description,
            buff_stat=self.buff_stat,
            buff_value=self.buff_value,
            buff_duration=self.buff_duration,
            slot=self.slot,
            modifiers=[EquipmentModifier(stat=m.stat, type=m.type, value=m.value) for m in self.modifiers],
        )


# ----------------- trigger actions -----------------
# "type" 값으로 구분되는 재귀 union (multi, 대사 선택지 안에 다시 행동이 들어간다)

class DialogChoiceDoc(_Doc):
    id: str
    text: str = ""
    action: Optional[TriggerActionDoc] = None

    def to_model(self) -> DialogChoice:
        return DialogChoice(id=self.id, text=self.text, action=self.action.to_model() if self.action else None)


class DialogActionDoc(_Doc):
    type: Literal["dialog"]
    text: str
    speaker: Optional[str] = None
    choices: List[DialogChoiceDoc] = Field(default_factory=list)

    def to_model(self) -> DialogAction:
        return DialogAction(text=self.text, speaker=self.speaker, choices=[c.to_model() for c in self.choices])


class SpawnActionDoc(_Doc):
    type: Literal["spawn"]
    enemy_id: str

    def to_model(self) -> SpawnAction:
        return SpawnAction(enemy_id=self.enemy_id)


class BuffActionDoc(_Doc):
    type: Literal["buff"]
    stat: str
    value: float
    target: Optional[str] = None
    duration: Optional[int] = None

    def to_model(self) -> BuffAction:
        return BuffAction(stat=self.stat, value=self.value, target=self.target, duration=self.duration)


class HealActionDoc(_Doc):
    type: Literal["heal"]
    amount: float
    target: Optional[str] = None

    def to_model(self) -> HealAction:
        return HealAction(amount=self.amount, target=self.target)


class DamageActionDoc(_Doc):
    type: Literal["damage"]
    amount: float
    target: Optional[str] = None

    def to_model(self) -> DamageAction:
        return DamageAction(amount=self.amount, target=self.target)


class FleeActionDoc(_Doc):
    type: Literal["flee"]
    target: Optional[str] = None

    def to_model(self) -> FleeAction:
        return FleeAction(target=self.target)


class TransformActionDoc(_Doc):
    type: Literal["transform"]
    new_enemy_id: str
    target: Optional[str] = None

    def to_model(self) -> TransformAction:
        return TransformAction(new_enemy_id=self.new_enemy_id, target=self.target)


class MultiActionDoc(_Doc):
    type: Literal["multi"]
    actions: List[TriggerActionDoc] = Field(default_factory=list)

    def to_model(self) -> MultiAction:
        return MultiAction(actions=[a.to_model() for a in self.actions])


TriggerActionDoc = Annotated[
    Union[
        DialogActionDoc,
        SpawnActionDoc,
        BuffActionDoc,
        HealActionDoc,
        DamageActionDoc,
        FleeActionDoc,
        TransformActionDoc,
        MultiActionDoc,
    ],
    Field(discriminator="type"),
]

DialogChoiceDoc.model_rebuild()
DialogActionDoc.model_rebuild()
MultiActionDoc.model_rebuild()


# ----------------- scenes -----------------

class ConsumeItemDoc(_Doc):
    id: str
    count: int = 1


class RequirementsDoc(_Doc):
    stats: Dict[str, float] = Field(default_factory=dict)
    items: List[ConsumeItemDoc] = Field(default_factory=list)
    flags: Dict[str, Union[bool, int, float, str]] = Field(default_factory=dict)
    skills: List[str] = Field(default_factory=list)

    def to_model(self) -> ChoiceRequirements:
        return ChoiceRequirements(
            stats=dict(self.stats),
            items=[ConsumeItem(id=i.id, count=i.count) for i in self.items],
            flags=dict(self.flags),
            skills=list(self.skills),
        )


class ChoiceDoc(_Doc):
    id: str = Field(min_length=1)
    text: str = ""
    next_scene: Optional[str] = None
    condition: Optional[str] = None
    show_if: Optional[str] = None
    requires: Optional[RequirementsDoc] = None

    def to_model(self) -> Choice:
        return Choice(
            id=self.id,
            text=self.text,
            next_scene=self.next_scene,
            condition=self.condition,
            show_if=self.show_if,
            requires=self.requires.to_model() if self.requires else None,
        )


class TriggerDoc(_Doc):
    id: Optional[str] = None
    condition: str
    once: bool = False
    max_fires: Optional[int] = None
    action: TriggerActionDoc

    def to_model(self) -> BattleTrigger:
        return BattleTrigger(
            id=self.id,
            condition=self.condition,
            once=self.once,
            max_fires=self.max_fires,
            action=self.action.to_model(),
        )


class SceneDoc(_Doc):
    id: str = Field(min_length=1)
    type: Literal["story", "battle"]
    choices: List[ChoiceDoc] = Field(default_factory=list)
    enemies: List[str] = Field(default_factory=list)
    victory_scene: Optional[str] = None
    defeat_scene: Optional[str] = None
    triggers: List[TriggerDoc] = Field(default_factory=list)

    def to_model(self) -> Scene:
        return Scene(
            id=self.id,
            type=self.type,
            choices=[c.to_model() for c in self.choices],
            enemies=list(self.enemies),
            victory_scene=self.victory_scene,
            defeat_scene=self.defeat_scene,
            triggers=[t.to_model() for t in self.triggers],
        )


# ----------------- document -----------------

class GameDoc(_Doc):
    """
    게임 정의 문서 전체.
    ✅ id/title/version/startingScene 은 빈 문자열 불가, scenes는 1개 이상.
    """
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    version: str = Field(min_length=1)
    stats: StatsDoc
    characters: CharactersDoc
    enemies: List[EnemyDoc]
    skills: List[SkillDoc]
    items: List[ItemDoc]
    scenes: List[SceneDoc] = Field(min_length=1)
    starting_scene: str = Field(min_length=1)

    def to_model(self) -> GameDefinition:
        return GameDefinition(
            id=self.id,
            title=self.title,
            version=self.version,
            stats=self.stats.to_model(),
            player=self.characters.player.to_model(),
            enemies=[e.to_model() for e in self.enemies],
            skills=[s.to_model() for s in self.skills],
            items=[i.to_model() for i in self.items],
            scenes=[s.to_model() for s in self.scenes],
            starting_scene=self.starting_scene,
        )
