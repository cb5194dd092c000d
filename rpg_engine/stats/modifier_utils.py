from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence

from rpg_engine.core.models import EquipmentModifier, Item, ModifierDefinition, ModifierEffect


def create_flat_modifier(
    mid: str, name: str, stat: str, value: float, duration: Optional[int] = None
) -> ModifierDefinition:
    return ModifierDefinition(
        id=mid,
        name=name,
        description=f"+{value:g} {stat}",
        effects=[ModifierEffect(stat, "flat", value)],
        duration=duration,
    )


def create_percent_modifier(
    mid: str, name: str, stat: str, value: float, duration: Optional[int] = None
) -> ModifierDefinition:
    return ModifierDefinition(
        id=mid,
        name=name,
        description=f"+{value:g}% {stat}",
        effects=[ModifierEffect(stat, "percent", value)],
        duration=duration,
    )


def create_equipment_modifier(mid: str, name: str, modifiers: Sequence[EquipmentModifier]) -> ModifierDefinition:
    """장비 보정치 -> 영구(duration 없음) non-stackable modifier"""
    parts = [f"+{m.value:g}% {m.stat}" if m.type == "percent" else f"+{m.value:g} {m.stat}" for m in modifiers]
    return ModifierDefinition(
        id=mid,
        name=name,
        description=", ".join(parts),
        effects=[ModifierEffect(m.stat, m.type, m.value) for m in modifiers],
    )


def modifier_for_equipment(item: Item) -> ModifierDefinition:
    return create_equipment_modifier(f"equip_{item.id}", item.name, item.modifiers)


def create_stackable_buff(
    mid: str, name: str, stat: str, value_per_stack: float, max_stacks: int, duration: int
) -> ModifierDefinition:
    return ModifierDefinition(
        id=mid,
        name=name,
        description=f"+{value_per_stack:g} {stat} per stack (max {max_stacks})",
        effects=[ModifierEffect(stat, "flat", value_per_stack)],
        duration=duration,
        stackable=True,
        max_stacks=max_stacks,
    )


def create_stackable_debuff(
    mid: str, name: str, stat: str, value_per_stack: float, max_stacks: int, duration: int
) -> ModifierDefinition:
    v = abs(value_per_stack)
    return ModifierDefinition(
        id=mid,
        name=name,
        description=f"-{v:g} {stat} per stack (max {max_stacks})",
        effects=[ModifierEffect(stat, "flat", -v)],
        duration=duration,
        stackable=True,
        max_stacks=max_stacks,
    )


def create_timed_modifier(
    mid: str,
    name: str,
    stat: str,
    value: float,
    duration: Optional[int],
    *,
    value_type: str = "flat",
    description: str = "",
) -> ModifierDefinition:
    """스킬/아이템/트리거가 거는 1-effect 시한부 modifier"""
    return ModifierDefinition(
        id=mid,
        name=name,
        description=description,
        effects=[ModifierEffect(stat, value_type, value)],  # type: ignore[arg-type]
        duration=duration,
    )


def merge_effects(effect_lists: Iterable[Sequence[ModifierEffect]]) -> List[ModifierEffect]:
    """stat별 flat/percent 합산. 합이 0인 항목은 버린다."""
    merged: Dict[str, List[float]] = {}
    for effects in effect_lists:
        for e in effects:
            sums = merged.setdefault(e.stat, [0.0, 0.0])
            if e.value_type == "flat":
                sums[0] += e.value
            else:
                sums[1] += e.value

    result: List[ModifierEffect] = []
    for stat, (flat, percent) in merged.items():
        if flat != 0:
            result.append(ModifierEffect(stat, "flat", flat))
        if percent != 0:
            result.append(ModifierEffect(stat, "percent", percent))
    return result


def apply_effect(base_value: float, effect: ModifierEffect) -> float:
    if effect.value_type == "flat":
        return base_value + effect.value
    return base_value * (1 + effect.value / 100)
