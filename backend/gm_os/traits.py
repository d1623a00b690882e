from __future__ import annotations

from state.game_state import GameState

ANONYMOUS_NAMES = {"", "Unknown"}


def character_traits(state: GameState) -> dict:
    return {
        "name": None if state.player_name in ANONYMOUS_NAMES else state.player_name,
        "age": state.age,
        "wealth": state.coins,
        "evil": state.evil,
        "rebirths": state.rebirths,
        "current_job": state.current_job,
        "current_skill": state.current_skill,
        "personality": personality(state),
        "motivations": motivations(state),
        "fears": fears(state),
        "goals": goals(state),
    }


def personality(state: GameState) -> list[str]:
    traits: list[str] = []
    if state.evil > 70:
        traits += ["malevolent", "calculating"]
    elif state.evil > 30:
        traits.append("morally ambiguous")
    else:
        traits += ["virtuous", "compassionate"]

    if state.rebirths > 2:
        traits += ["ancient", "wise"]
    elif state.rebirths > 0:
        traits.append("experienced")
    else:
        traits += ["young", "eager"]

    if state.coins > 100_000:
        traits += ["influential", "confident"]
    elif state.coins < 1000:
        traits += ["struggling", "determined"]
    return traits


def motivations(state: GameState) -> list[str]:
    if state.evil > 50:
        result = ["seeking power", "domination"]
    else:
        result = ["protecting others", "seeking knowledge"]
    if state.rebirths > 0:
        result += ["breaking the cycle", "transcending mortality"]
    return result


def fears(state: GameState) -> list[str]:
    result: list[str] = []
    if state.rebirths > 0:
        result += ["eternal repetition", "being trapped in cycles"]
    if state.evil > 70:
        result += ["redemption", "being forgotten"]
    else:
        result += ["corruption", "losing innocence"]
    if state.age > 50:
        result += ["time running out", "legacy"]
    return result


def goals(state: GameState) -> list[str]:
    result: list[str] = []
    if state.rebirths > 0:
        result += ["transcending the cycle", "achieving true freedom"]
    if state.evil > 50:
        result += ["ultimate power", "world domination"]
    else:
        result += ["protecting the realm", "bringing peace"]
    if state.current_job == "Beggar":
        result += ["finding purpose", "making a difference"]
    return result
