"""
Action definitions for the game.
Actions are immutable, deterministic instructions; one factory per engine operation.
"""

from dataclasses import dataclass, field

from conquest.engine.state import PapalAction


INITIALIZE_GAME = "initialize_game"
ELECT_POPE = "elect_pope"
ADVANCE_DAY = "advance_day"
CLAIM_PROVINCE = "claim_province"
DECLARE_WAR = "declare_war"
RESOLVE_WAR = "resolve_war"
FORM_ALLIANCE = "form_alliance"
BREAK_ALLIANCE = "break_alliance"
CREATE_TRADE_DEAL = "create_trade_deal"
USE_PAPAL_ACTION = "use_papal_action"
RECRUIT_TROOPS = "recruit_troops"

ACTION_TYPES = (
    INITIALIZE_GAME,
    ELECT_POPE,
    ADVANCE_DAY,
    CLAIM_PROVINCE,
    DECLARE_WAR,
    RESOLVE_WAR,
    FORM_ALLIANCE,
    BREAK_ALLIANCE,
    CREATE_TRADE_DEAL,
    USE_PAPAL_ACTION,
    RECRUIT_TROOPS,
)


@dataclass
class Action:
    """Base action class. All actions have a type, the acting player (if any), and a payload."""
    type: str  # one of ACTION_TYPES
    player_id: str | None  # informational; the engine does not enforce turn order
    payload: dict = field(default_factory=dict)  # Action-specific data


def initialize_game(player_names: list[str], map_id: str | None = None) -> Action:
    """
    Start a new game: generate the map, create players and hand out provinces.
    Example: initialize_game(["Alice", "Bob"])
    """
    payload = {"player_names": list(player_names)}
    if map_id:
        payload["map_id"] = map_id
    return Action(type=INITIALIZE_GAME, player_id=None, payload=payload)


def elect_pope() -> Action:
    """Re-run the papal election (highest faith wins, first player on ties)."""
    return Action(type=ELECT_POPE, player_id=None, payload={})


def advance_day() -> Action:
    """Collect province income, resolve ongoing wars, advance the day and elect a Pope."""
    return Action(type=ADVANCE_DAY, player_id=None, payload={})


def claim_province(player_id: str, province_id: str) -> Action:
    """Claim an unowned province for 20 gold; it starts with a garrison of 5."""
    return Action(type=CLAIM_PROVINCE, player_id=player_id, payload={"province_id": province_id})


def declare_war(
    attacker_id: str,
    defender_id: str,
    target_province_id: str,
    troops: int,
) -> Action:
    """
    Commit troops against a province owned by the defender.
    The war is fought when it is resolved (on the next advance_day, or via resolve_war).

    Example: declare_war(alice_id, bob_id, york_id, 20)
    """
    return Action(
        type=DECLARE_WAR,
        player_id=attacker_id,
        payload={
            "defender_id": defender_id,
            "target_province_id": target_province_id,
            "troops": troops,
        },
    )


def resolve_war(war_id: str) -> Action:
    """Fight an ongoing war now."""
    return Action(type=RESOLVE_WAR, player_id=None, payload={"war_id": war_id})


def form_alliance(player_id: str, target_player_id: str, alliance_name: str) -> Action:
    return Action(
        type=FORM_ALLIANCE,
        player_id=player_id,
        payload={"target_player_id": target_player_id, "alliance_name": alliance_name},
    )


def break_alliance(player_id: str, alliance_id: str) -> Action:
    """Dissolve an alliance for all of its members."""
    return Action(type=BREAK_ALLIANCE, player_id=player_id, payload={"alliance_id": alliance_id})


def create_trade_deal(
    from_player_id: str,
    to_player_id: str,
    resources: dict[str, int],  # partial bundle, e.g. {"gold": 30}
    duration: int = 1,
) -> Action:
    """
    Transfer resources immediately from one player to another.
    Example: create_trade_deal(alice_id, bob_id, {"gold": 30, "food": 5})
    """
    return Action(
        type=CREATE_TRADE_DEAL,
        player_id=from_player_id,
        payload={
            "to_player_id": to_player_id,
            "resources": dict(resources),
            "duration": duration,
        },
    )


def use_papal_action(
    papal_action_type: str,
    target_player_ids: list[str] | None = None,
    target_province_id: str | None = None,
    description: str = "",
    player_id: str | None = None,
) -> Action:
    """
    Use the Pope's action for the day.

    Types:
    - ceasefire: end the targeted players' ongoing wars in the defender's favour
    - double_resources: credit the target province's yield to its owner again
    - excommunicate: remove the targeted players from all their alliances
    - bless_army: multiply the target province's terrain bonus by 1.5

    Example: use_papal_action("excommunicate", target_player_ids=[bob_id])
    """
    papal_action = PapalAction(
        type=papal_action_type,
        target_player_ids=list(target_player_ids or []),
        target_province_id=target_province_id,
        description=description,
    )
    return Action(
        type=USE_PAPAL_ACTION,
        player_id=player_id,
        payload={"action": papal_action.to_dict()},
    )


def recruit_troops(player_id: str, province_id: str, amount: int) -> Action:
    """Recruit troops into an owned province: 10 gold and 2 food per troop."""
    return Action(
        type=RECRUIT_TROOPS,
        player_id=player_id,
        payload={"province_id": province_id, "amount": amount},
    )
