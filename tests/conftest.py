from __future__ import annotations

import random
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List

import pytest

from rpg_engine.core.models import (
    CharacterDef,
    EnemyDef,
    GameDefinition,
    Item,
    Scene,
    Skill,
    StatDefinition,
    StatsConfig,
)
from rpg_engine.stats.stat_engine import StatEngine

REPORT_DIR = Path("test-result")


# ----------------- scripted randomness -----------------

class ScriptedRandom(random.Random):
    """
    random()만 덮어쓴 Random.
    - 미리 넣어둔 값을 순서대로 돌려주고, 다 쓰면 default를 돌려준다.
    - draws에 실제로 뽑힌 횟수가 남는다.
    """

    def __init__(self, *, values: Iterable[float] = (), default: float = 0.5) -> None:
        super().__init__()
        self.values: List[float] = list(values)
        self.default = default
        self.draws = 0

    def random(self) -> float:
        self.draws += 1
        if self.values:
            return self.values.pop(0)
        return self.default

    def push(self, *values: float) -> None:
        self.values.extend(values)


@pytest.fixture
def scripted_rng() -> Callable[..., ScriptedRandom]:
    def make(*values: float, default: float = 0.5) -> ScriptedRandom:
        return ScriptedRandom(values=values, default=default)

    return make


# ----------------- content builders -----------------

def make_player(**overrides) -> CharacterDef:
    """HP 100 / MP 50 / Speed 15 플레이어"""
    fields = dict(
        id="hero",
        name="Hero",
        base_stats={"MaxHP": 100, "MaxMP": 50, "Attack": 20, "Defense": 10, "Speed": 15,
                    "MagicPower": 10, "MagicResist": 10, "CritRate": 0, "CritDamage": 150},
        skills=["slash", "smite"],
    )
    fields.update(overrides)
    return CharacterDef(**fields)


def make_enemy(eid: str = "slime", **overrides) -> EnemyDef:
    """HP 50 / Speed 5 적"""
    fields = dict(
        id=eid,
        name=eid.capitalize(),
        base_stats={"MaxHP": 50, "MaxMP": 20, "Attack": 8, "Defense": 0, "Speed": 5,
                    "MagicPower": 5, "MagicResist": 0, "CritRate": 0, "CritDamage": 150},
        skills=["bite"],
        exp=25,
        gold=10,
    )
    fields.update(overrides)
    return EnemyDef(**fields)


def default_skills() -> List[Skill]:
    return [
        Skill(id="slash", name="Slash", type="physical", mp_cost=0, power=100),
        # 방어 0 적에게 고정 위력으로 한 방
        Skill(id="smite", name="Smite", type="physical", mp_cost=10, power=500),
        Skill(id="bite", name="Bite", type="physical", mp_cost=0, power=100),
        Skill(id="mend", name="Mend", type="healing", mp_cost=5, power=20),
    ]


def default_items() -> List[Item]:
    return [
        Item(id="potion", name="Potion", effect="healHp", value=30),
        Item(id="ether", name="Ether", effect="healMp", value=20),
    ]


def make_game(
    *,
    player: CharacterDef | None = None,
    enemies: List[EnemyDef] | None = None,
    skills: List[Skill] | None = None,
    items: List[Item] | None = None,
    scenes: List[Scene] | None = None,
) -> GameDefinition:
    return GameDefinition(
        id="test_game",
        title="Test Game",
        stats=StatsConfig(),
        player=player or make_player(),
        enemies=enemies if enemies is not None else [make_enemy()],
        skills=skills if skills is not None else default_skills(),
        items=items if items is not None else default_items(),
        scenes=scenes or [],
    )


PLAIN_STATS = ("MaxHP", "MaxMP", "Attack", "Defense", "Speed", "Dexterity",
               "MagicPower", "MagicResist", "CritRate", "CritDamage")


def plain_stat_engine() -> StatEngine:
    """파생 스탯 없는 엔진: base 스탯(+Level)이 그대로 current 스탯이 된다"""
    return StatEngine([StatDefinition(s, s) for s in PLAIN_STATS], [])


# ----------------- experiment report -----------------
# 테스트 docstring(TITLE/SETUP/STEPS/EXPECTED)을 결과와 함께 test-result/ 에 남긴다.

_session_stamp = datetime.now().strftime("%Y%m%d_%H%M%S")


def pytest_sessionstart(session: pytest.Session) -> None:
    REPORT_DIR.mkdir(parents=True, exist_ok=True)


def _experiment_text(item: pytest.Item) -> str:
    fn = getattr(item, "function", None)
    doc = getattr(fn, "__doc__", None) if fn else None
    if not doc:
        return "(no TITLE/SETUP/STEPS/EXPECTED docstring)"
    return doc.strip()


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo):
    outcome = yield
    rep: pytest.TestReport = outcome.get_result()
    if rep.when != "call":
        return

    status = "PASS" if rep.passed else "FAIL" if rep.failed else "SKIP"
    module = Path(str(item.fspath)).stem if getattr(item, "fspath", None) else "unknown"
    lines = [
        "=" * 60,
        f"[{status}] {rep.nodeid} ({rep.duration:.3f}s)",
        "-" * 60,
        _experiment_text(item),
    ]
    if rep.failed and rep.longrepr:
        lines += ["", "[TRACEBACK]", str(rep.longrepr)]
    lines.append("")

    with (REPORT_DIR / f"{_session_stamp}_{module}.txt").open("a", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
