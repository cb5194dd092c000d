from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Union

from rpg_engine.core.types import ActionKind, CombatantID


@dataclass
class CombatAction:
    """
    CombatAction = 전투원이 한 턴에 수행하는 행동 단위.
    - skill/item 은 대상 선택(target_ids)이 필요하다.
    - defend/flee 는 즉시 실행된다.
    """
    kind: ActionKind
    actor_id: CombatantID
    skill_id: Optional[str] = None
    item_id: Optional[str] = None
    target_ids: List[CombatantID] = field(default_factory=list)


# ----------------- trigger actions -----------------
# target=None 이면 현재 턴의 전투원을 대상으로 한다(flee 제외).

TriggerActionKind = Literal["dialog", "spawn", "buff", "heal", "damage", "flee", "transform", "multi"]


@dataclass(frozen=True)
class DialogChoice:
    id: str
    text: str
    action: Optional["TriggerAction"] = None


@dataclass(frozen=True)
class DialogAction:
    text: str
    speaker: Optional[str] = None
    choices: List[DialogChoice] = field(default_factory=list)
    kind: TriggerActionKind = "dialog"


@dataclass(frozen=True)
class SpawnAction:
    enemy_id: str
    kind: TriggerActionKind = "spawn"


@dataclass(frozen=True)
class BuffAction:
    stat: str
    value: float
    target: Optional[str] = None
    duration: Optional[int] = None
    kind: TriggerActionKind = "buff"


@dataclass(frozen=True)
class HealAction:
    amount: float
    target: Optional[str] = None
    kind: TriggerActionKind = "heal"


@dataclass(frozen=True)
class DamageAction:
    amount: float
    target: Optional[str] = None
    kind: TriggerActionKind = "damage"


@dataclass(frozen=True)
class FleeAction:
    target: Optional[str] = None
    kind: TriggerActionKind = "flee"


@dataclass(frozen=True)
class TransformAction:
    new_enemy_id: str
    target: Optional[str] = None
    kind: TriggerActionKind = "transform"


@dataclass(frozen=True)
class MultiAction:
    actions: List["TriggerAction"] = field(default_factory=list)
    kind: TriggerActionKind = "multi"


TriggerAction = Union[
    DialogAction,
    SpawnAction,
    BuffAction,
    HealAction,
    DamageAction,
    FleeAction,
    TransformAction,
    MultiAction,
]
