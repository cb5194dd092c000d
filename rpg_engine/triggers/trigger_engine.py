from __future__ import annotations
import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional

from rpg_engine.core.commands import TriggerAction
from rpg_engine.core.models import BattleTrigger
from rpg_engine.core.state import Combatant, CombatSnapshot
from rpg_engine.formula import FormulaError, FormulaParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerResult:
    trigger: BattleTrigger
    action: TriggerAction


class BattleTriggerEngine:
    """
    전투 중 선언형 이벤트(조건 수식 + 행동) 평가기.

    - evaluate는 턴 시작마다 1회 호출된다 (연속 감시가 아님).
    - once / max_fires를 다 쓴 트리거는 더 평가하지 않는다.
    - 조건 수식 오류는 경고 로그만 남기고 건너뛴다 (전투는 계속).
    - multi 행동의 하위 행동은 부모 트리거 발동 횟수에 따로 세지 않는다.

    context:
      turn, playersAlive, enemiesAlive, totalPlayers, totalEnemies
      <combatantId>.{hp, maxHp, hpPercent, mp, maxMp, mpPercent, level, isAlive, isDefending, <스탯>}
      player.* / enemy.*  (각 진영의 첫 번째 전투원)
    """

    def __init__(self, *, parser: Optional[FormulaParser] = None) -> None:
        # 트리거 엔진은 자기 파서를 가진다
        self.parser = parser or FormulaParser()
        self._triggers: List[BattleTrigger] = []
        self._fired: Dict[str, int] = {}
        self._ids = itertools.count()

    @property
    def triggers(self) -> List[BattleTrigger]:
        return list(self._triggers)

    def set_triggers(self, triggers: Iterable[BattleTrigger]) -> None:
        """id 없는 트리거에는 trigger_<n> id를 붙인다. 발동 기록은 초기화."""
        self._triggers = [t if t.id else replace(t, id=f"trigger_{next(self._ids)}") for t in triggers]
        self._fired.clear()

    def clear(self) -> None:
        self._triggers = []
        self._fired.clear()

    def fired_count(self, trigger_id: str) -> int:
        return self._fired.get(trigger_id, 0)

    def evaluate(self, snapshot: CombatSnapshot) -> List[TriggerResult]:
        results: List[TriggerResult] = []
        context = build_trigger_context(snapshot)

        for t in self._triggers:
            if not self._can_fire(t):
                continue
            try:
                fired = self.parser.compute(t.condition, context)
            except FormulaError as e:
                logger.warning("Trigger condition error: %s (%s)", t.condition, e)
                continue
            if fired:
                self._fired[t.id or ""] = self.fired_count(t.id or "") + 1
                results.append(TriggerResult(trigger=t, action=t.action))
        return results

    # ----------------- internal -----------------

    def _can_fire(self, t: BattleTrigger) -> bool:
        count = self.fired_count(t.id or "")
        if t.once and count >= 1:
            return False
        if t.max_fires is not None and count >= t.max_fires:
            return False
        return True


def combatant_context(c: Combatant) -> Dict[str, float]:
    ctx: Dict[str, float] = {
        "hp": c.current_hp,
        "maxHp": c.max_hp,
        "hpPercent": c.hp_percent,
        "mp": c.current_mp,
        "maxMp": c.max_mp,
        "mpPercent": c.mp_percent,
        "level": c.level,
        "isAlive": 1 if c.is_alive else 0,
        "isDefending": 1 if c.is_defending else 0,
    }
    ctx.update(c.current_stats)
    return ctx


def build_trigger_context(snapshot: CombatSnapshot) -> Dict[str, Any]:
    combatants = list(snapshot.combatants.values())
    players = [c for c in combatants if c.is_player]
    enemies = [c for c in combatants if not c.is_player]

    context: Dict[str, Any] = {
        "turn": snapshot.turn_number,
        "playersAlive": sum(1 for c in players if c.is_alive),
        "enemiesAlive": sum(1 for c in enemies if c.is_alive),
        "totalPlayers": len(players),
        "totalEnemies": len(enemies),
    }
    for c in combatants:
        context[c.id] = combatant_context(c)
    if players:
        context["player"] = combatant_context(players[0])
    if enemies:
        context["enemy"] = combatant_context(enemies[0])
    return context
