from state.encoder import decode, derived_conditions, encode, for_narrative_generator, validate
from state.game_state import GameState


def _state() -> GameState:
    state = GameState(
        player_name="Aria",
        age=21,
        health=80,
        mana=40,
        coins=120,
        level=3,
        reputation=65,
        location="dungeon",
        time=1200,
        weather="rain",
    )
    state.set_skill("Strength", 12, experience=30)
    state.set_skill("Magic", 4)
    state.add_item("sword")
    state.add_item("potion", 3)
    state.conditions["torch_lit"] = True
    return state


def test_encode_decode_preserves_state() -> None:
    record = encode(_state())
    restored = decode(record)

    assert encode(restored) == record
    assert restored.player_name == "Aria"
    assert restored.skill_level("Strength") == 12
    assert restored.skill_experience("Strength") == 30
    assert restored.item_count("potion") == 3
    assert restored.conditions == {"torch_lit": True}


def test_encoded_record_is_valid() -> None:
    record = encode(_state())
    assert validate(record)
    assert record["level"] == record["player"]["level"] == 3
    assert record["world"]["location"] == "dungeon"


def test_decode_fills_defaults() -> None:
    state = decode({})
    assert state.player_name == "Unknown"
    assert state.health == 100
    assert state.reputation == 50
    assert state.location == "unknown"
    assert state.skills == {}
    assert decode(None).level == 1


def test_decode_skips_malformed_sections() -> None:
    state = decode({"player": "nope", "skills": {"Magic": 3}, "inventory": ["sword"]})
    assert state.player_name == "Unknown"
    assert state.skills == {}
    assert state.inventory == {}


def test_top_level_copies_win() -> None:
    record = encode(_state())
    record["reputation"] = 10
    assert decode(record).reputation == 10


def test_validate_rejects_out_of_range() -> None:
    record = encode(_state())
    record["player"]["health"] = 101
    assert not validate(record)

    record = encode(_state())
    record["inventory"]["potion"] = -1
    assert not validate(record)

    record = encode(_state())
    record["world"]["location"] = ""
    assert not validate(record)

    assert not validate({"player": {}})
    assert not validate("state")


def test_derived_conditions() -> None:
    conditions = derived_conditions(GameState(location="dungeon", time=1200, reputation=20))
    assert conditions == {
        "safe": False,
        "dangerous": True,
        "dark": True,
        "daytime": False,
        "nighttime": True,
        "hostile": True,
        "friendly": False,
    }

    town = derived_conditions(GameState(location="town", time=600, reputation=90))
    assert town["safe"] and town["daytime"] and town["friendly"]


def test_narrative_view() -> None:
    view = for_narrative_generator(_state())
    assert set(view) == {"current_state", "derived_conditions", "schema", "instructions"}
    assert view["schema"]["type"] == "object"
    assert "Never invent" in view["instructions"]
