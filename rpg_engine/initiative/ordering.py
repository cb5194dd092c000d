from __future__ import annotations
import random
from typing import Iterable, List

from rpg_engine.core.state import Combatant, TurnQueueEntry
from rpg_engine.rules.checks import roll_int

DEFAULT_SPEED = 10
DEFAULT_VARIANCE = 10


def roll_initiative(c: Combatant, *, variance: int = DEFAULT_VARIANCE, rng: random.Random | None = None) -> float:
    """선공값 = Speed + [0, variance) 정수"""
    return c.current_stats.get("Speed", DEFAULT_SPEED) + roll_int(variance, rng)


def compute_turn_order(
    combatants: Iterable[Combatant],
    *,
    variance: int = DEFAULT_VARIANCE,
    rng: random.Random | None = None,
) -> List[TurnQueueEntry]:
    """
    라운드 턴 순서: initiative desc
    - 쓰러진 전투원은 제외
    - 매 라운드 새로 굴린다 (라운드 간 순서는 안정적이지 않음)
    - 동률은 입력 순서 유지 (안정 정렬)
    """
    queue = [
        TurnQueueEntry(combatant_id=c.id, initiative=roll_initiative(c, variance=variance, rng=rng))
        for c in combatants
        if c.is_alive
    ]
    return sorted(queue, key=lambda e: -e.initiative)
