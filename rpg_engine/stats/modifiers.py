from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from rpg_engine.core.models import ModifierDefinition, ModifierEffect, StatBlock
from rpg_engine.core.types import ModifierSource

logger = logging.getLogger(__name__)

DefinitionLookup = Callable[[str], Optional[ModifierDefinition]]


@dataclass
class ActiveModifierState:
    """
    전투원에게 걸려 있는 modifier 하나.
    - remaining_duration=None 이면 영구
    - current_stacks는 항상 1 이상 (0이 되면 스택에서 제거)
    """
    definition: ModifierDefinition
    source_type: ModifierSource
    current_stacks: int = 1
    remaining_duration: Optional[int] = None


@dataclass(frozen=True)
class StatBonus:
    flat: float
    percent: float
    final: int


class ModifierStack:
    """
    전투원 1명이 독점 소유하는 modifier 모음 (id 기준 1개씩).

    ✅ 적용 순서: flat 합 먼저, percent 합 나중
       floor((base + flat_sum) * (1 + percent_sum / 100))
       (삽입 순서와 무관)
    """

    def __init__(self) -> None:
        self._modifiers: Dict[str, ActiveModifierState] = {}

    def add_modifier(self, definition: ModifierDefinition, source_type: ModifierSource) -> None:
        """
        - 없으면: stack 1로 추가
        - 있고 stackable: stack +1 (max_stacks 상한), duration 갱신
        - 있고 non-stackable: no-op (첫 부여 유지)
        """
        existing = self._modifiers.get(definition.id)
        if existing is None:
            self._modifiers[definition.id] = ActiveModifierState(
                definition=definition,
                source_type=source_type,
                current_stacks=1,
                remaining_duration=definition.duration,
            )
            return

        if not definition.stackable:
            return

        stacks = existing.current_stacks + 1
        if definition.max_stacks is not None:
            stacks = min(stacks, definition.max_stacks)
        existing.current_stacks = stacks
        if definition.duration is not None:
            existing.remaining_duration = definition.duration

    def remove_modifier(self, modifier_id: str) -> None:
        self._modifiers.pop(modifier_id, None)

    def remove_stack(self, modifier_id: str) -> None:
        state = self._modifiers.get(modifier_id)
        if state is None:
            return
        state.current_stacks -= 1
        if state.current_stacks <= 0:
            del self._modifiers[modifier_id]

    def tick_duration(self) -> List[str]:
        """
        턴 시작 시 1회 호출.
        - 시한부 modifier의 남은 턴 -1
        - 0 이하가 되면 제거하고 id를 expired 목록으로 반환
        """
        expired: List[str] = []
        for mid in list(self._modifiers.keys()):
            state = self._modifiers[mid]
            if state.remaining_duration is None:
                continue
            state.remaining_duration -= 1
            if state.remaining_duration <= 0:
                expired.append(mid)
                del self._modifiers[mid]
        return expired

    def active_modifiers(self) -> List[ActiveModifierState]:
        return list(self._modifiers.values())

    def modifiers_by_source(self, source_type: ModifierSource) -> List[ActiveModifierState]:
        return [m for m in self._modifiers.values() if m.source_type == source_type]

    def has_modifier(self, modifier_id: str) -> bool:
        return modifier_id in self._modifiers

    def get_stack_count(self, modifier_id: str) -> int:
        state = self._modifiers.get(modifier_id)
        return state.current_stacks if state else 0

    def get_remaining_duration(self, modifier_id: str) -> Optional[int]:
        state = self._modifiers.get(modifier_id)
        return state.remaining_duration if state else None

    def apply_to_stats(self, base_stats: Mapping[str, float]) -> StatBlock:
        """base_stats에 있는 스탯만 조정한다. 새로운 스탯 키는 만들지 않는다."""
        flat: Dict[str, float] = {}
        percent: Dict[str, float] = {}
        for state in self._modifiers.values():
            for e in state.definition.effects:
                bucket = flat if e.value_type == "flat" else percent
                bucket[e.stat] = bucket.get(e.stat, 0) + e.value * state.current_stacks

        result: StatBlock = {}
        for stat, base in base_stats.items():
            result[stat] = math.floor((base + flat.get(stat, 0)) * (1 + percent.get(stat, 0) / 100))
        return result

    def get_stat_bonus(self, stat: str, base_value: float) -> StatBonus:
        flat = 0.0
        percent = 0.0
        for state in self._modifiers.values():
            for e in state.definition.effects:
                if e.stat != stat:
                    continue
                if e.value_type == "flat":
                    flat += e.value * state.current_stacks
                else:
                    percent += e.value * state.current_stacks
        final = math.floor((base_value + flat) * (1 + percent / 100))
        return StatBonus(flat=flat, percent=percent, final=final)

    def clear(self) -> None:
        self._modifiers.clear()

    def clear_by_source(self, source_type: ModifierSource) -> None:
        for mid in [k for k, m in self._modifiers.items() if m.source_type == source_type]:
            del self._modifiers[mid]

    def __len__(self) -> int:
        return len(self._modifiers)

    # ----------------- persistence -----------------

    def to_dict(self) -> List[Dict[str, Any]]:
        """
        저장용 직렬화.
        ✅ definition 본문까지 함께 저장한다.
        """
        return [
            {
                "id": state.definition.id,
                "sourceType": state.source_type,
                "stacks": state.current_stacks,
                "duration": state.remaining_duration,
                "definition": definition_to_dict(state.definition),
            }
            for state in self._modifiers.values()
        ]

    @classmethod
    def from_dict(
        cls,
        data: Sequence[Mapping[str, Any]],
        definition_lookup: Optional[DefinitionLookup] = None,
    ) -> "ModifierStack":
        """
        - 저장된 definition 본문이 있으면 그것을 쓴다.
        - 없으면(id만 있는 구형 세이브) definition_lookup으로 찾는다.
        - 둘 다 없으면 건너뛴다(경고 로그).
        """
        stack = cls()
        for saved in data:
            body = saved.get("definition")
            definition: Optional[ModifierDefinition]
            if body is not None:
                definition = definition_from_dict(body)
            elif definition_lookup is not None:
                definition = definition_lookup(saved["id"])
            else:
                definition = None

            if definition is None:
                logger.warning("Skipping saved modifier %r: definition not found", saved.get("id"))
                continue

            stack._modifiers[definition.id] = ActiveModifierState(
                definition=definition,
                source_type=saved["sourceType"],
                current_stacks=int(saved.get("stacks", 1)),
                remaining_duration=saved.get("duration"),
            )
        return stack


def definition_to_dict(d: ModifierDefinition) -> Dict[str, Any]:
    return {
        "id": d.id,
        "name": d.name,
        "description": d.description,
        "effects": [{"stat": e.stat, "valueType": e.value_type, "value": e.value} for e in d.effects],
        "duration": d.duration,
        "stackable": d.stackable,
        "maxStacks": d.max_stacks,
    }


def definition_from_dict(raw: Mapping[str, Any]) -> ModifierDefinition:
    return ModifierDefinition(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        description=raw.get("description", ""),
        effects=[
            ModifierEffect(stat=e["stat"], value_type=e.get("valueType", "flat"), value=e["value"])
            for e in raw.get("effects", [])
        ],
        duration=raw.get("duration"),
        stackable=bool(raw.get("stackable", False)),
        max_stacks=raw.get("maxStacks"),
    )
