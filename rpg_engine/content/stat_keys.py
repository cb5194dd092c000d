from __future__ import annotations
from typing import Dict, Mapping, Tuple

from rpg_engine.core.models import StatBlock

# 엔진 내부는 canonical 키만 읽는다.
# 게임 콘텐츠가 다른 표기를 쓰면 여기서 한 번만 정규화한다.
STAT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "MaxHP": ("maxHp", "MaxHp", "maxHP"),
    "MaxMP": ("maxMp", "MaxMp", "maxMP"),
    "Attack": ("attack", "physAtk"),
    "Defense": ("defense", "physDef"),
    "MagicPower": ("magicPower", "magAtk"),
    "MagicResist": ("magicResist", "magDef"),
    "Speed": ("speed",),
    "Evasion": ("evasion",),
    "CritRate": ("critRate",),
    "CritDamage": ("critDamage", "critDmg"),
    "Strength": ("strength", "str"),
    "Dexterity": ("dexterity", "dex"),
    "Intelligence": ("intelligence", "int"),
    "Luck": ("luck", "lck"),
}


def canonical_name(key: str) -> str:
    for canonical, aliases in STAT_ALIASES.items():
        if key == canonical or key in aliases:
            return canonical
    return key


def with_canonical_keys(stats: Mapping[str, float]) -> StatBlock:
    """
    canonical 키가 없고 별칭 키만 있으면 canonical 키를 추가한다.
    - 원래 키는 지우지 않는다 (콘텐츠 수식이 별칭을 참조할 수 있음)
    - canonical 키가 이미 있으면 그대로 둔다
    """
    out: StatBlock = dict(stats)
    for canonical, aliases in STAT_ALIASES.items():
        if canonical in out:
            continue
        for alias in aliases:
            if alias in stats:
                out[canonical] = stats[alias]
                break
    return out
