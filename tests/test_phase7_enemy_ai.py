from typing import List

from conftest import make_game
from rpg_engine.ai.enemy_ai import BASIC_ATTACK_ID, EnemyAI, resolve_ai_config
from rpg_engine.core.models import EnemyAIConfig, Skill, SkillEffect
from rpg_engine.core.state import Combatant, CombatSnapshot
from rpg_engine.core.types import CombatantID

SKILLS = [
    Skill(id="bite", name="Bite", type="physical", power=80),
    Skill(id="crush", name="Crush", type="physical", mp_cost=10, power=150),
    Skill(id="nova", name="Nova", type="magic", mp_cost=30, power=300, target="all"),
    Skill(id="regen", name="Regen", type="healing", mp_cost=5, power=30),
    Skill(id="howl", name="Howl", type="buff", buff_effect=SkillEffect("Attack", 5, 3)),
    Skill(id="hex", name="Hex", type="debuff", debuff_effect=SkillEffect("Defense", 5, 3)),
]


def mk(cid: str, *, hp: float = 100, mp: float = 50, skills: List[str] = ()) -> Combatant:
    """
    TITLE: AI 테스트용 전투원 (P로 시작하면 플레이어)
    """
    return Combatant(
        id=CombatantID(cid),
        name=cid,
        is_player=cid.startswith("P"),
        base_stats={},
        current_stats={},
        current_hp=hp,
        current_mp=mp,
        max_hp=100,
        max_mp=50,
        skills=list(skills),
    )


def snap(*combatants: Combatant, turn: int = 1) -> CombatSnapshot:
    return CombatSnapshot(
        phase="turn_start",
        turn_number=turn,
        current_turn_index=0,
        turn_queue=[],
        combatants={c.id: c for c in combatants},
        pending_action=None,
        battle_log=[],
        dialog_queue=[],
        current_dialog=None,
        battle_result=None,
    )


def ai(rng) -> EnemyAI:
    return EnemyAI(make_game(skills=SKILLS), rng=rng)


def test_phase7_defends_when_no_player_alive(scripted_rng):
    """
    TITLE: 살아있는 플레이어가 없으면 방어
    """
    enemy = mk("E1", skills=["bite"])
    p1 = mk("P1", hp=0)
    p1.is_alive = False
    action = ai(scripted_rng()).select_action(enemy, snap(enemy, p1), EnemyAIConfig(behavior="aggressive"))
    assert action.kind == "defend"
    assert action.actor_id == "E1"


def test_phase7_aggressive_strongest_affordable_on_weakest(scripted_rng):
    """
    TITLE: aggressive는 감당 가능한 최고 위력 공격을 가장 약한 플레이어에게
    SETUP:
      - MP 20: crush(10) 가능, nova(30) 불가
      - P1 HP 80, P2 HP 30
    EXPECTED:
      - skill crush, target P2
    """
    enemy = mk("E1", mp=20, skills=["bite", "crush", "nova"])
    p1, p2 = mk("P1", hp=80), mk("P2", hp=30)
    action = ai(scripted_rng()).select_action(enemy, snap(enemy, p1, p2), EnemyAIConfig(behavior="aggressive"))
    assert (action.kind, action.skill_id, action.target_ids) == ("skill", "crush", ["P2"])


def test_phase7_aggressive_falls_back_to_basic_attack(scripted_rng):
    """
    TITLE: 감당 가능한 공격 스킬이 없으면 basic_attack
    """
    enemy = mk("E1", mp=0, skills=["crush"])
    p1 = mk("P1")
    action = ai(scripted_rng()).select_action(enemy, snap(enemy, p1), EnemyAIConfig(behavior="aggressive"))
    assert action.skill_id == BASIC_ATTACK_ID
    assert action.target_ids == ["P1"]


def test_phase7_all_target_skill_hits_every_living_player(scripted_rng):
    """
    TITLE: target "all" 스킬은 살아있는 플레이어 전원을 대상으로
    """
    enemy = mk("E1", mp=50, skills=["nova"])
    p1, p2, p3 = mk("P1"), mk("P2"), mk("P3", hp=0)
    p3.is_alive = False
    action = ai(scripted_rng()).select_action(enemy, snap(enemy, p1, p2, p3), EnemyAIConfig(behavior="aggressive"))
    assert action.target_ids == ["P1", "P2"]


def test_phase7_defensive_heal_then_defend_then_cheapest_attack(scripted_rng):
    """
    TITLE: defensive 우선순위
    STEPS:
      1) HP 25% + regen 보유 -> 자기 회복
      2) HP 15% + 회복 스킬 없음 -> 방어
      3) HP 100% -> 최저 위력 공격(bite)
    """
    brain = ai(scripted_rng())
    cfg = EnemyAIConfig(behavior="defensive")
    p1 = mk("P1")

    hurt = mk("E1", hp=25, skills=["regen", "bite"])
    action = brain.select_action(hurt, snap(hurt, p1), cfg)
    assert (action.skill_id, action.target_ids) == ("regen", ["E1"])

    dying = mk("E2", hp=15, skills=["bite"])
    assert brain.select_action(dying, snap(dying, p1), cfg).kind == "defend"

    fresh = mk("E3", skills=["crush", "bite"])
    assert brain.select_action(fresh, snap(fresh, p1), cfg).skill_id == "bite"


def test_phase7_balanced_rolls_buff_then_debuff(scripted_rng):
    """
    TITLE: balanced는 버프(30%) -> 디버프(20%) 순서로 판정
    STEPS:
      1) 첫 판정 0.1 -> howl (자기 자신)
      2) 0.9, 0.1 -> hex (HP가 가장 높은 플레이어)
      3) 0.9, 0.9, 0.0, 0.0 -> 공격 (첫 공격 스킬, 첫 플레이어)
    """
    enemy = mk("E1", skills=["howl", "hex", "bite"])
    p1, p2 = mk("P1", hp=40), mk("P2", hp=90)
    cfg = EnemyAIConfig(behavior="balanced")

    a = ai(scripted_rng(0.1)).select_action(enemy, snap(enemy, p1, p2), cfg)
    assert (a.skill_id, a.target_ids) == ("howl", ["E1"])

    a = ai(scripted_rng(0.9, 0.1)).select_action(enemy, snap(enemy, p1, p2), cfg)
    assert (a.skill_id, a.target_ids) == ("hex", ["P2"])

    a = ai(scripted_rng(0.9, 0.9, 0.0, 0.0)).select_action(enemy, snap(enemy, p1, p2), cfg)
    assert (a.skill_id, a.target_ids) == ("bite", ["P1"])


def test_phase7_balanced_heals_below_threshold(scripted_rng):
    """
    TITLE: balanced도 HP가 heal_threshold 이하이면 회복이 먼저
    """
    enemy = mk("E1", hp=20, skills=["bite", "regen"])
    a = ai(scripted_rng()).select_action(enemy, snap(enemy, mk("P1")), None)
    assert a.skill_id == "regen"


def test_phase7_scripted_cycles_skill_priority(scripted_rng):
    """
    TITLE: scripted는 turn_number % len(skill_priority) 번째 스킬을 쓴다
    SETUP:
      - skill_priority [bite, crush], prefer weakest
    EXPECTED:
      - turn 1 -> crush, turn 2 -> bite
      - 우선 스킬이 감당 불가면 3턴 주기 버프(turn 3)
    """
    brain = ai(scripted_rng(default=0.99))
    cfg = EnemyAIConfig(behavior="scripted", skill_priority=["bite", "crush"], prefer_targets="weakest")
    enemy = mk("E1", skills=["bite", "crush", "howl"])
    p1, p2 = mk("P1", hp=60), mk("P2", hp=50)

    assert brain.select_action(enemy, snap(enemy, p1, p2, turn=1), cfg).skill_id == "crush"
    a = brain.select_action(enemy, snap(enemy, p1, p2, turn=2), cfg)
    assert (a.skill_id, a.target_ids) == ("bite", ["P2"])

    broke = mk("E2", mp=0, skills=["crush", "howl"])
    cfg2 = EnemyAIConfig(behavior="scripted", skill_priority=["crush"])
    assert brain.select_action(broke, snap(broke, p1, turn=3), cfg2).skill_id == "howl"


def test_phase7_weakest_tie_breaks_by_id(scripted_rng):
    """
    TITLE: 같은 HP면 id 순서로 결정 (dict 순서와 무관)
    """
    enemy = mk("E1", skills=["bite"])
    pb, pa = mk("P_b", hp=50), mk("P_a", hp=50)
    a = ai(scripted_rng()).select_action(
        enemy, snap(enemy, pb, pa), EnemyAIConfig(behavior="aggressive", prefer_targets="weakest")
    )
    assert a.target_ids == ["P_a"]


def test_phase7_config_defaults():
    """
    TITLE: AI 설정 기본값 병합
    EXPECTED:
      - None -> balanced / 30 / 20 / random / ()
      - 일부만 지정하면 나머지는 기본값
    """
    base = resolve_ai_config(None)
    assert (base.behavior, base.heal_threshold, base.defend_threshold, base.prefer_targets) == (
        "balanced", 30, 20, "random"
    )
    partial = resolve_ai_config(EnemyAIConfig(behavior="defensive", heal_threshold=50))
    assert (partial.behavior, partial.heal_threshold, partial.defend_threshold) == ("defensive", 50, 20)
