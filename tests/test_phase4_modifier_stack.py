from rpg_engine.core.models import EquipmentModifier, Item, ModifierDefinition, ModifierEffect
from rpg_engine.stats.modifier_utils import (
    apply_effect,
    create_flat_modifier,
    create_percent_modifier,
    create_stackable_buff,
    create_stackable_debuff,
    merge_effects,
    modifier_for_equipment,
)
from rpg_engine.stats.modifiers import ModifierStack


def test_phase4_stackable_modifier_caps_at_max_stacks():
    """
    TITLE: stackable + max_stacks=3 modifier를 4번 걸면 스택은 3
    STEPS:
      1) 같은 buff를 4회 add
    EXPECTED:
      - get_stack_count == 3
      - Attack 보너스도 3스택 분량 (+15)
    """
    st = ModifierStack()
    buff = create_stackable_buff("rage", "Rage", "Attack", 5, max_stacks=3, duration=3)
    for _ in range(4):
        st.add_modifier(buff, "buff")
    assert st.get_stack_count("rage") == 3
    assert st.apply_to_stats({"Attack": 10}) == {"Attack": 25}


def test_phase4_stackable_refreshes_duration_non_stackable_is_noop():
    """
    TITLE: 재부여 시 stackable은 duration 갱신, non-stackable은 아무 변화 없음
    SETUP:
      - stackable(duration 3), non-stackable(duration 2)
    STEPS:
      1) 둘 다 부여 후 tick 1회 (3->2, 2->1)
      2) 둘 다 재부여
    EXPECTED:
      - stackable: 스택 2, duration 3으로 갱신
      - non-stackable: 스택 1, duration 1 유지
    """
    st = ModifierStack()
    stackable = create_stackable_buff("s", "S", "Attack", 1, max_stacks=5, duration=3)
    single = create_flat_modifier("n", "N", "Attack", 1, duration=2)
    st.add_modifier(stackable, "buff")
    st.add_modifier(single, "buff")
    assert st.tick_duration() == []

    st.add_modifier(stackable, "buff")
    st.add_modifier(single, "buff")
    assert st.get_stack_count("s") == 2
    assert st.get_remaining_duration("s") == 3
    assert st.get_stack_count("n") == 1
    assert st.get_remaining_duration("n") == 1


def test_phase4_duration_two_survives_exactly_two_ticks():
    """
    TITLE: duration=2 modifier는 tick 2번째에 만료되어 expired 목록에 나온다
    EXPECTED:
      - 1번째 tick: 남아 있음 (1)
      - 2번째 tick: expired == ["haste"], has_modifier False
      - 영구 modifier는 tick에 영향 없음
    """
    st = ModifierStack()
    st.add_modifier(create_flat_modifier("haste", "Haste", "Speed", 5, duration=2), "buff")
    st.add_modifier(create_flat_modifier("ring", "Ring", "Speed", 1), "equipment")

    assert st.tick_duration() == []
    assert st.has_modifier("haste")
    assert st.get_remaining_duration("haste") == 1

    assert st.tick_duration() == ["haste"]
    assert not st.has_modifier("haste")
    assert st.has_modifier("ring")
    assert st.get_remaining_duration("ring") is None


def test_phase4_flat_then_percent_order_independent():
    """
    TITLE: flat 합을 먼저 더하고 percent 합을 나중에 곱한다 (삽입 순서 무관)
    SETUP:
      - base Attack 100, +20% 먼저 추가, +10 flat 나중 추가
    EXPECTED:
      - floor((100 + 10) * 1.2) == 132
      - base에 없는 스탯(Speed) modifier는 결과에 키를 만들지 않는다
    """
    st = ModifierStack()
    st.add_modifier(create_percent_modifier("p", "P", "Attack", 20), "buff")
    st.add_modifier(create_flat_modifier("f", "F", "Attack", 10), "buff")
    st.add_modifier(create_flat_modifier("spd", "Spd", "Speed", 3), "buff")
    out = st.apply_to_stats({"Attack": 100, "Defense": 7})
    assert out == {"Attack": 132, "Defense": 7}

    bonus = st.get_stat_bonus("Attack", 100)
    assert (bonus.flat, bonus.percent, bonus.final) == (10, 20, 132)


def test_phase4_remove_and_clear_by_source():
    """
    TITLE: remove_stack/remove_modifier/clear_by_source 동작
    EXPECTED:
      - remove_stack은 스택 1 감소, 0이 되면 제거
      - clear_by_source("debuff")는 debuff만 제거
    """
    st = ModifierStack()
    weak = create_stackable_debuff("weak", "Weak", "Attack", 2, max_stacks=3, duration=5)
    st.add_modifier(weak, "debuff")
    st.add_modifier(weak, "debuff")
    st.add_modifier(create_flat_modifier("b", "B", "Attack", 1), "buff")
    assert st.apply_to_stats({"Attack": 10}) == {"Attack": 7}

    st.remove_stack("weak")
    assert st.get_stack_count("weak") == 1
    st.remove_stack("weak")
    assert not st.has_modifier("weak")

    st.add_modifier(weak, "debuff")
    st.clear_by_source("debuff")
    assert [m.definition.id for m in st.active_modifiers()] == ["b"]
    assert len(st.modifiers_by_source("buff")) == 1

    st.remove_modifier("b")
    assert len(st) == 0


def test_phase4_persistence_keeps_full_definitions():
    """
    TITLE: to_dict/from_dict가 definition 본문까지 보존한다
    SETUP:
      - 2스택 buff(남은 2턴) + 장비 modifier
    STEPS:
      1) to_dict -> from_dict (lookup 없이)
    EXPECTED:
      - 스택/남은 턴/출처/효과가 그대로, 적용 결과도 동일
    """
    st = ModifierStack()
    buff = create_stackable_buff("rage", "Rage", "Attack", 5, max_stacks=3, duration=3)
    st.add_modifier(buff, "buff")
    st.add_modifier(buff, "buff")
    st.tick_duration()
    st.add_modifier(create_percent_modifier("amulet", "Amulet", "Attack", 50), "equipment")

    data = st.to_dict()
    assert data[0]["definition"]["maxStacks"] == 3

    restored = ModifierStack.from_dict(data)
    assert restored.get_stack_count("rage") == 2
    assert restored.get_remaining_duration("rage") == 2
    assert [m.source_type for m in restored.active_modifiers()] == ["buff", "equipment"]
    assert restored.apply_to_stats({"Attack": 10}) == st.apply_to_stats({"Attack": 10})


def test_phase4_compact_save_uses_lookup_and_skips_unknown():
    """
    TITLE: id만 있는 세이브는 lookup으로 복원, 못 찾으면 건너뛴다
    EXPECTED:
      - 아는 id는 복원, 모르는 id는 빠짐 (예외 없음)
    """
    known = ModifierDefinition("guard", "Guard", [ModifierEffect("Defense", "flat", 4)], duration=2)
    data = [
        {"id": "guard", "sourceType": "buff", "stacks": 1, "duration": 1},
        {"id": "ghost", "sourceType": "buff", "stacks": 1, "duration": 1},
    ]
    restored = ModifierStack.from_dict(data, lambda mid: known if mid == "guard" else None)
    assert restored.has_modifier("guard")
    assert not restored.has_modifier("ghost")
    assert restored.get_remaining_duration("guard") == 1


def test_phase4_factory_helpers():
    """
    TITLE: modifier 생성/합산 보조 함수
    EXPECTED:
      - 장비 modifier id는 equip_<item id>, 영구, 효과 그대로
      - debuff 헬퍼는 부호와 무관하게 음수
      - merge_effects는 stat별 flat/percent 합산 후 0은 버림
      - apply_effect flat/percent
    """
    sword = Item(
        id="sword", name="Sword", item_type="equipment", slot="weapon",
        modifiers=[EquipmentModifier("Attack", "flat", 5), EquipmentModifier("CritRate", "percent", 10)],
    )
    mod = modifier_for_equipment(sword)
    assert mod.id == "equip_sword"
    assert mod.duration is None
    assert [(e.stat, e.value_type, e.value) for e in mod.effects] == [
        ("Attack", "flat", 5), ("CritRate", "percent", 10)
    ]

    debuff = create_stackable_debuff("d", "D", "Defense", 3, max_stacks=2, duration=2)
    assert debuff.effects[0].value == -3

    merged = merge_effects([
        [ModifierEffect("Attack", "flat", 5), ModifierEffect("Attack", "percent", 10)],
        [ModifierEffect("Attack", "flat", -5), ModifierEffect("Speed", "flat", 2)],
    ])
    assert merged == [ModifierEffect("Attack", "percent", 10), ModifierEffect("Speed", "flat", 2)]

    assert apply_effect(10, ModifierEffect("Attack", "flat", 5)) == 15
    assert apply_effect(10, ModifierEffect("Attack", "percent", 50)) == 15
