import json

import pytest

from rpg_engine.content.loader import (
    GameDefinitionError,
    load_game_definition,
    parse_enemy,
    parse_trigger_action,
    validate_game_definition,
)
from rpg_engine.core.commands import DialogAction, FleeAction, MultiAction, SpawnAction
from rpg_engine.engine.engine import CombatStateMachine
from rpg_engine.stats.stat_engine import StatEngine


def game_doc():
    """
    TITLE: 최소 게임 정의 문서 (camelCase JSON 형태)
    SETUP:
      - primary: Attack/Defense/Speed/Dexterity/MagicPower/MagicResist/CritRate
      - derived: MaxHP = Defense * 10
      - 장면: intro(story) -> cave(battle, goblin 2마리, 트리거 1개)
    """
    return {
        "id": "demo",
        "title": "Demo Quest",
        "version": "0.3.0",
        "stats": {
            "primary": [
                {"id": s, "name": s}
                for s in ("Attack", "Defense", "Speed", "Dexterity", "MagicPower", "MagicResist", "CritRate")
            ],
            "derived": [{"id": "MaxHP", "name": "Max HP", "formula": "Defense * 10"}],
        },
        "characters": {
            "player": {
                "id": "hero",
                "name": "Hero",
                "baseStats": {"Attack": 20, "Defense": 10, "Speed": 15, "Dexterity": 4,
                              "MagicPower": 5, "MagicResist": 5, "CritRate": 0},
                "skills": ["slash"],
                "currentHp": 60,
                "inventory": [{"id": "potion", "count": 2}],
            }
        },
        "enemies": [
            {
                "id": "goblin",
                "name": "Goblin",
                "baseStats": {"Attack": 8, "Defense": 2, "Speed": 5},
                "skills": ["slash"],
                "exp": 15,
                "gold": 4,
                "drops": [{"itemId": "potion", "chance": 50}],
                "ai": {"behavior": "aggressive", "healThreshold": 40},
            }
        ],
        "skills": [
            {"id": "slash", "name": "Slash", "type": "physical", "power": 100, "mpCost": 0,
             "debuffEffect": {"stat": "Defense", "value": -2, "duration": 2}},
        ],
        "items": [
            {"id": "potion", "name": "Potion", "type": "consumable", "effect": "healHp", "value": 30},
            {"id": "sword", "name": "Sword", "type": "equipment", "slot": "weapon",
             "modifiers": [{"stat": "Attack", "value": 5}]},
        ],
        "scenes": [
            {"id": "intro", "type": "story",
             "choices": [{"id": "go", "text": "Enter the cave", "nextScene": "cave",
                          "showIf": "level >= 1", "requires": {"stats": {"Attack": 10}}}]},
            {"id": "cave", "type": "battle", "enemies": ["goblin", "goblin"],
             "victoryScene": "intro", "defeatScene": "intro",
             "triggers": [{"id": "taunt", "condition": "turn == 1", "once": True,
                           "action": {"type": "dialog", "speaker": "Goblin", "text": "Grr!"}}]},
        ],
        "startingScene": "intro",
    }


def test_phase11_load_from_mapping():
    """
    TITLE: mapping 입력 로드
    EXPECTED:
      - camelCase 필드가 모델 필드로 옮겨진다
      - inventory 목록 형식은 id -> count dict로 바뀐다
    """
    game = load_game_definition(game_doc())
    assert (game.id, game.title, game.version, game.starting_scene) == ("demo", "Demo Quest", "0.3.0", "intro")
    assert game.player.current_hp == 60
    assert game.player.inventory == {"potion": 2}

    goblin = game.find_enemy("goblin")
    assert goblin.drops[0].item_id == "potion" and goblin.drops[0].chance == 50 and goblin.drops[0].count == 1
    assert goblin.ai.behavior == "aggressive"
    assert goblin.ai.heal_threshold == 40
    assert goblin.ai.defend_threshold is None

    slash = game.find_skill("slash")
    assert slash.debuff_effect.stat == "Defense" and slash.debuff_effect.duration == 2
    sword = game.find_item("sword")
    assert sword.item_type == "equipment" and sword.slot == "weapon"
    assert sword.modifiers[0].type == "flat"

    intro = game.find_scene("intro")
    assert intro.choices[0].next_scene == "cave"
    assert intro.choices[0].show_if == "level >= 1"
    assert intro.choices[0].requires.stats == {"Attack": 10}

    cave = game.find_scene("cave")
    assert cave.triggers[0].id == "taunt" and cave.triggers[0].once is True
    assert cave.triggers[0].action == DialogAction(text="Grr!", speaker="Goblin")


@pytest.mark.parametrize("as_str", [False, True])
def test_phase11_load_from_path(tmp_path, as_str):
    """
    TITLE: JSON 파일 경로(str/Path) 로드
    """
    path = tmp_path / "game.json"
    path.write_text(json.dumps(game_doc()), encoding="utf-8")
    game = load_game_definition(str(path) if as_str else path)
    assert game.id == "demo"
    assert [s.id for s in game.scenes] == ["intro", "cave"]


def test_phase11_validation_collects_all_errors():
    """
    TITLE: 구조 오류는 한 번에 모아서 보고한다
    SETUP:
      - title 누락, stats.derived 누락, 장면 type 오류, startingScene 누락
    EXPECTED:
      - validate: valid False, 오류 4개 (문서 위치 "a.b.0.c: 메시지" 형식)
      - load: GameDefinitionError.errors 에 같은 목록
    """
    doc = game_doc()
    del doc["title"]
    del doc["stats"]["derived"]
    doc["scenes"][1]["type"] = "cutscene"
    del doc["startingScene"]

    result = validate_game_definition(doc)
    assert result.valid is False
    assert len(result.errors) == 4
    assert result.errors[0] == "title: Field required"
    assert result.errors[1] == "stats.derived: Field required"
    assert result.errors[2].startswith("scenes.1.type: ")
    assert result.errors[3] == "startingScene: Field required"

    with pytest.raises(GameDefinitionError) as exc:
        load_game_definition(doc)
    assert exc.value.errors == result.errors
    assert isinstance(exc.value, ValueError)


def test_phase11_validation_rejects_non_objects_and_empty_scenes():
    """
    TITLE: 최상위가 객체가 아니거나 장면이 비어 있으면 invalid
    """
    top = validate_game_definition([])
    assert top.valid is False and len(top.errors) == 1

    doc = game_doc()
    doc["scenes"] = []
    errors = validate_game_definition(doc).errors
    assert len(errors) == 1 and errors[0].startswith("scenes: ")
    assert validate_game_definition(game_doc()).valid is True


def test_phase11_malformed_nested_entries_raise_definition_error():
    """
    TITLE: 적/스킬/아이템/트리거/선택지 안쪽 항목이 잘못돼도 GameDefinitionError로 보고
    SETUP:
      - id 없는 적, type 없는 스킬, 모르는 효과의 아이템
      - 모르는 type의 트리거 행동, id 없는 선택지
    EXPECTED:
      - KeyError 등이 새지 않고 GameDefinitionError 하나로 모든 위치를 보고
    """
    doc = game_doc()
    doc["enemies"] = [{"name": "no id"}]
    doc["skills"] = [{"id": "s"}]
    doc["items"].append({"id": "orb", "effect": "teleport"})
    doc["scenes"][1]["triggers"][0]["action"] = {"type": "summon_meteor"}
    doc["scenes"][0]["choices"].append({"text": "no id"})

    with pytest.raises(GameDefinitionError) as exc:
        load_game_definition(doc)
    locations = [e.split(": ", 1)[0] for e in exc.value.errors]
    assert "enemies.0.id" in locations
    assert "skills.0.type" in locations
    assert "items.2.effect" in locations
    assert "scenes.0.choices.1.id" in locations
    assert any(loc.startswith("scenes.1.triggers.0.action") for loc in locations)


def test_phase11_unknown_skill_type_is_rejected_at_load():
    """
    TITLE: 엔진이 모르는 스킬 type은 전투까지 가지 않고 로드 시점에 거부
    """
    doc = game_doc()
    doc["skills"].append({"id": "warp", "type": "teleport", "mpCost": 10})
    result = validate_game_definition(doc)
    assert result.valid is False
    assert result.errors[0].startswith("skills.1.type: ")


def test_phase11_section_parsers_report_definition_errors():
    """
    TITLE: 섹션 단위 parse_* 도 같은 오류 형식을 쓴다
    """
    with pytest.raises(GameDefinitionError) as exc:
        parse_enemy({"name": "no id"})
    assert exc.value.errors == ["id: Field required"]
    assert parse_enemy({"id": "bat"}).name == "bat"


def test_phase11_trigger_actions_parse_recursively():
    """
    TITLE: multi/dialog 선택지 안의 행동까지 재귀적으로 파싱
    """
    action = parse_trigger_action({
        "type": "multi",
        "actions": [
            {"type": "spawn", "enemyId": "goblin"},
            {"type": "dialog", "text": "Run?", "choices": [
                {"id": "yes", "text": "Yes", "action": {"type": "flee", "target": "goblin"}},
                {"id": "no", "text": "No"},
            ]},
        ],
    })
    assert isinstance(action, MultiAction)
    spawn, dialog = action.actions
    assert spawn == SpawnAction(enemy_id="goblin")
    assert dialog.speaker is None
    assert dialog.choices[0].action == FleeAction(target="goblin")
    assert dialog.choices[1].action is None


def test_phase11_unknown_trigger_action_type():
    """
    TITLE: 알 수 없는 트리거 행동 type은 GameDefinitionError
    """
    with pytest.raises(GameDefinitionError) as exc:
        parse_trigger_action({"type": "summon_meteor"})
    assert len(exc.value.errors) == 1
    assert "summon_meteor" in exc.value.errors[0]


def test_phase11_loaded_game_drives_a_battle(scripted_rng):
    """
    TITLE: 로드한 정의로 스탯 엔진과 전투를 바로 구성할 수 있다
    STEPS:
      1) StatEngine.from_stats_config(game.stats)
      2) cave 장면으로 initialize() (인자 생략)
    EXPECTED:
      - 같은 적 2마리 -> goblin, goblin_1
      - hero MaxHP = 10 * 10 = 100, 이어받은 HP 60
      - goblin MaxHP = 2 * 10 = 20
      - 첫 턴 트리거 대사가 뜬다
    """
    game = load_game_definition(game_doc())
    engine = StatEngine.from_stats_config(game.stats)
    m = CombatStateMachine(engine, game, game.find_scene("cave"), rng=scripted_rng())
    m.initialize()

    assert [c.id for c in m.enemies()] == ["goblin", "goblin_1"]
    hero = m.get_combatant("hero")
    assert (hero.current_hp, hero.max_hp) == (60, 100)
    assert m.get_combatant("goblin_1").max_hp == 20

    m.start()
    assert m.phase == "dialog"
    assert m.get_snapshot().current_dialog.text == "Grr!"
    assert m.handle_battle_end(True) == "intro"
