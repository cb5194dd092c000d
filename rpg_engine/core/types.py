from __future__ import annotations
from typing import Literal, NewType

CombatantID = NewType("CombatantID", str)

CombatPhase = Literal[
    "start",
    "turn_start",
    "action_select",
    "target_select",
    "action_execute",
    "turn_end",
    "victory",
    "defeat",
    "fled",
    "dialog",
]

TERMINAL_PHASES = ("victory", "defeat", "fled")

ActionKind = Literal["skill", "item", "defend", "flee"]

SkillType = Literal["physical", "magic", "healing", "buff", "debuff", "defense", "special"]
SkillTarget = Literal["self", "single", "all", "allies", "allAllies"]

ItemEffect = Literal["healHp", "healMp", "revive", "buff", "damage", "cure", "none"]

ModifierSource = Literal["equipment", "buff", "debuff", "perk", "skill", "item"]
ValueType = Literal["flat", "percent"]

DamageType = Literal["physical", "magic"]

AIBehavior = Literal["aggressive", "defensive", "balanced", "random", "scripted"]
TargetPreference = Literal["weakest", "strongest", "random"]

EffectType = Literal["damage", "heal", "healMp", "buff", "debuff", "revive"]
