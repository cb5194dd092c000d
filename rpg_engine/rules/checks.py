from __future__ import annotations
import math
import random
from dataclasses import dataclass
from typing import Sequence, TypeVar

T = TypeVar("T")


# ==============================
# ⚠ 난수는 전부 여기를 거친다 ⚠
# ==============================
# 모든 판정 함수는 rng를 주입받는다(rng=None 이면 random 모듈).
# 뽑기는 rng.random() 한 가지만 쓰므로,
# 테스트에서는 random()만 덮어쓴 Random 서브클래스로 전투를 완전히 재현할 수 있다.


@dataclass(frozen=True)
class ChanceResult:
    """
    퍼센트 판정 결과.

    success : roll < chance
    roll    : [0, 100) 범위에서 뽑힌 값
    chance  : 판정에 쓴 성공 확률(%)
    """
    success: bool
    roll: float
    chance: float


def roll_unit(rng: random.Random | None = None) -> float:
    """[0, 1)"""
    r = rng or random
    return r.random()


def roll_percent(rng: random.Random | None = None) -> float:
    """[0, 100)"""
    return roll_unit(rng) * 100


def roll_chance(*, chance: float, rng: random.Random | None = None) -> ChanceResult:
    """
    퍼센트 확률 판정.
    - chance <= 0 이면 항상 실패, chance >= 100 이면 항상 성공 (roll 범위 특성상)
    """
    roll = roll_percent(rng)
    return ChanceResult(success=(roll < chance), roll=roll, chance=chance)


def roll_variance(rng: random.Random | None = None) -> float:
    """데미지 분산: [-1, 1)"""
    return roll_unit(rng) * 2 - 1


def roll_int(span: int, rng: random.Random | None = None) -> int:
    """[0, span) 정수"""
    if span <= 0:
        return 0
    return int(math.floor(roll_unit(rng) * span))


def pick(seq: Sequence[T], rng: random.Random | None = None) -> T:
    """균등 선택. 빈 시퀀스는 설계 오류라 예외."""
    if not seq:
        raise ValueError("cannot pick from an empty sequence")
    return seq[roll_int(len(seq), rng)]
