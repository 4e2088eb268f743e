"""
Query functions for UI integration.
These functions help the UI understand what actions are available
without mutating game state.
"""

from dataclasses import dataclass
from typing import Any

from conquest.engine import (
    RESOURCE_TYPES,
    CLAIM_COST_GOLD,
    RECRUIT_GOLD_PER_TROOP,
    RECRUIT_FOOD_PER_TROOP,
    PAPAL_ACTIONS_PER_DAY,
)
from conquest.engine.actions import (
    Action,
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
from conquest.engine.state import (
    GameState,
    Player,
    Province,
    Alliance,
    War,
    PapalAction,
    PAPAL_ACTION_TYPES,
    PAPAL_CEASEFIRE,
    PAPAL_EXCOMMUNICATE,
    PAPAL_DOUBLE_RESOURCES,
    PAPAL_BLESS_ARMY,
)
from conquest.engine.utils import normalize_player_names


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "error": self.error}


# ===== Action Validation =====

def validate_action(state: GameState, action: Action) -> ValidationResult:
    """
    Validate an action without applying it.

    Covers every precondition the reducer enforces, missing ids included, plus the
    checks a client should make before dispatching (e.g. no second alliance between the
    same pair, only members may break an alliance).
    Returns ValidationResult with valid=True or valid=False with error message.
    """
    if action.type == INITIALIZE_GAME:
        return _validate_initialize(state, action)
    if action.type in (ELECT_POPE, ADVANCE_DAY):
        return ValidationResult(True)
    if action.type == CLAIM_PROVINCE:
        return _validate_claim(state, action)
    if action.type == RECRUIT_TROOPS:
        return _validate_recruit(state, action)
    if action.type == DECLARE_WAR:
        return _validate_declare_war(state, action)
    if action.type == RESOLVE_WAR:
        war = state.wars.get(action.payload.get("war_id"))
        if war is None:
            return ValidationResult(False, f"War not found: {action.payload.get('war_id')}")
        if not war.is_ongoing:
            return ValidationResult(False, "War is already resolved")
        return ValidationResult(True)
    if action.type == FORM_ALLIANCE:
        return _validate_form_alliance(state, action)
    if action.type == BREAK_ALLIANCE:
        return _validate_break_alliance(state, action)
    if action.type == CREATE_TRADE_DEAL:
        return _validate_trade(state, action)
    if action.type == USE_PAPAL_ACTION:
        return _validate_papal_action(state, action)

    return ValidationResult(False, f"Unknown action type: {action.type}")


def _validate_initialize(state: GameState, action: Action) -> ValidationResult:
    if state.game_started:
        return ValidationResult(False, "Game has already started")
    try:
        normalize_player_names(action.payload.get("player_names") or [])
    except ValueError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


def _validate_claim(state: GameState, action: Action) -> ValidationResult:
    player = state.players.get(action.player_id)
    if player is None:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    province = state.provinces.get(action.payload.get("province_id"))
    if province is None:
        return ValidationResult(False, f"Province not found: {action.payload.get('province_id')}")
    if province.owner_id is not None:
        return ValidationResult(False, f"Province {province.name} is already owned")
    if player.resources.gold < CLAIM_COST_GOLD:
        return ValidationResult(False, f"You need {CLAIM_COST_GOLD} gold to claim this province")
    return ValidationResult(True)


def _validate_recruit(state: GameState, action: Action) -> ValidationResult:
    player = state.players.get(action.player_id)
    if player is None:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    province = state.provinces.get(action.payload.get("province_id"))
    if province is None:
        return ValidationResult(False, f"Province not found: {action.payload.get('province_id')}")
    amount = int(action.payload.get("amount") or 0)
    if amount <= 0:
        return ValidationResult(False, "Enter a positive number of troops to recruit")
    if province.owner_id != player.id:
        return ValidationResult(False, f"You do not own {province.name}")
    gold, food = amount * RECRUIT_GOLD_PER_TROOP, amount * RECRUIT_FOOD_PER_TROOP
    if player.resources.gold < gold or player.resources.food < food:
        return ValidationResult(False, f"You need {gold} gold and {food} food")
    return ValidationResult(True)


def _validate_declare_war(state: GameState, action: Action) -> ValidationResult:
    attacker = state.players.get(action.player_id)
    if attacker is None:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    defender = state.players.get(action.payload.get("defender_id"))
    if defender is None:
        return ValidationResult(False, f"Player not found: {action.payload.get('defender_id')}")
    province = state.provinces.get(action.payload.get("target_province_id"))
    if province is None:
        return ValidationResult(
            False, f"Province not found: {action.payload.get('target_province_id')}")
    troops = int(action.payload.get("troops") or 0)
    if troops <= 0:
        return ValidationResult(False, "Enter a positive number of troops")
    if attacker.id == defender.id:
        return ValidationResult(False, "You cannot declare war on yourself")
    if province.owner_id != defender.id:
        return ValidationResult(False, f"{province.name} is not owned by {defender.name}")
    if troops > attacker.total_troops:
        return ValidationResult(False, "You don't have enough troops")
    return ValidationResult(True)


def _validate_form_alliance(state: GameState, action: Action) -> ValidationResult:
    player = state.players.get(action.player_id)
    if player is None:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    target = state.players.get(action.payload.get("target_player_id"))
    if target is None:
        return ValidationResult(
            False, f"Player not found: {action.payload.get('target_player_id')}")
    if player.id == target.id:
        return ValidationResult(False, "You cannot ally with yourself")
    if not str(action.payload.get("alliance_name") or "").strip():
        return ValidationResult(False, "Please enter an alliance name")
    if get_alliance_between(state, player.id, target.id) is not None:
        return ValidationResult(False, "You are already in an alliance with this player")
    return ValidationResult(True)


def _validate_break_alliance(state: GameState, action: Action) -> ValidationResult:
    if action.player_id not in state.players:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    alliance = state.alliances.get(action.payload.get("alliance_id"))
    if alliance is None:
        return ValidationResult(False, f"Alliance not found: {action.payload.get('alliance_id')}")
    if action.player_id not in alliance.members:
        return ValidationResult(False, "You are not a member of this alliance")
    return ValidationResult(True)


def _validate_trade(state: GameState, action: Action) -> ValidationResult:
    sender = state.players.get(action.player_id)
    if sender is None:
        return ValidationResult(False, f"Player not found: {action.player_id}")
    receiver = state.players.get(action.payload.get("to_player_id"))
    if receiver is None:
        return ValidationResult(False, f"Player not found: {action.payload.get('to_player_id')}")
    if sender.id == receiver.id:
        return ValidationResult(False, "Please select another player to trade with")
    bundle = action.payload.get("resources") or {}
    if not isinstance(bundle, dict):
        return ValidationResult(False, "Resources must be a mapping of resource to amount")
    for resource, amount in bundle.items():
        if resource not in RESOURCE_TYPES:
            return ValidationResult(False, f"Unknown resource: {resource}")
        if int(amount or 0) < 0:
            return ValidationResult(False, f"Cannot offer a negative amount of {resource}")
    if sum(int(a or 0) for a in bundle.values()) <= 0:
        return ValidationResult(False, "You must offer at least some resources")
    if not sender.resources.covers({r: int(a or 0) for r, a in bundle.items()}):
        return ValidationResult(False, "You don't have enough resources to make this trade")
    return ValidationResult(True)


def _validate_papal_action(state: GameState, action: Action) -> ValidationResult:
    papal = PapalAction.from_dict(action.payload.get("action"))
    if get_current_pope(state) is None:
        return ValidationResult(False, "There is no Pope")
    if state.papal_actions_used >= PAPAL_ACTIONS_PER_DAY:
        return ValidationResult(False, "The Pope has already acted today")
    if papal.type not in PAPAL_ACTION_TYPES:
        return ValidationResult(False, f"Unknown papal action: {papal.type}")
    for player_id in papal.target_player_ids:
        if player_id not in state.players:
            return ValidationResult(False, f"Player not found: {player_id}")
    if papal.target_province_id and papal.target_province_id not in state.provinces:
        return ValidationResult(False, f"Province not found: {papal.target_province_id}")
    if papal.type in (PAPAL_CEASEFIRE, PAPAL_EXCOMMUNICATE) and not papal.target_player_ids:
        return ValidationResult(False, f"Select at least one player to {papal.type.replace('_', ' ')}")
    if papal.type in (PAPAL_DOUBLE_RESOURCES, PAPAL_BLESS_ARMY) and not papal.target_province_id:
        return ValidationResult(False, "Select a province")
    return ValidationResult(True)


# ===== Papacy =====

def get_current_pope(state: GameState) -> str | None:
    """
    Id of the reigning Pope.
    The is_pope flags are authoritative; current_pope_turn is only a cache, used when it
    agrees with the flags.
    """
    cached = state.players.get(state.current_pope_turn) if state.current_pope_turn else None
    if cached is not None and cached.is_pope:
        return cached.id
    for player in state.players.values():
        if player.is_pope:
            return player.id
    return None


def can_use_papal_action(state: GameState, player_id: str) -> bool:
    return get_current_pope(state) == player_id and state.papal_actions_used < PAPAL_ACTIONS_PER_DAY


# ===== Invariants =====

def check_invariants(state: GameState) -> list[str]:
    """
    Check the cross-reference invariants of a game state.
    Returns a list of human-readable violations; empty when the state is consistent.
    """
    problems: list[str] = []

    for player in state.players.values():
        owned = [pid for pid, p in state.provinces.items() if p.owner_id == player.id]
        if len(player.provinces) != len(set(player.provinces)):
            problems.append(f"{player.name}: duplicate entries in province list")
        if set(player.provinces) != set(owned):
            problems.append(f"{player.name}: province list does not match province owners")
        garrisoned = sum(state.provinces[pid].troops for pid in owned)
        if player.total_troops != garrisoned:
            problems.append(
                f"{player.name}: total_troops {player.total_troops} != garrisons {garrisoned}")
        for alliance_id in player.alliances:
            alliance = state.alliances.get(alliance_id)
            if alliance is None or player.id not in alliance.members:
                problems.append(f"{player.name}: listed in missing alliance {alliance_id}")
        for war_id in player.wars:
            war = state.wars.get(war_id)
            if war is None or player.id not in (war.attacker_id, war.defender_id):
                problems.append(f"{player.name}: listed in unknown war {war_id}")

    for alliance in state.alliances.values():
        if len(set(alliance.members)) < 2:
            problems.append(f"Alliance {alliance.name}: fewer than 2 members")
        for member_id in alliance.members:
            member = state.players.get(member_id)
            if member is None or alliance.id not in member.alliances:
                problems.append(f"Alliance {alliance.name}: member {member_id} does not list it")

    for province in state.provinces.values():
        if province.troops < 0:
            problems.append(f"{province.name}: negative garrison")
        for neighbour_id in province.adjacent_provinces:
            neighbour = state.provinces.get(neighbour_id)
            if neighbour is None or province.id not in neighbour.adjacent_provinces:
                problems.append(f"{province.name}: adjacency to {neighbour_id} is not symmetric")

    popes = [p.id for p in state.players.values() if p.is_pope]
    if len(popes) > 1:
        problems.append(f"More than one Pope: {popes}")
    if state.players and state.game_started and len(popes) != 1:
        problems.append("No Pope elected")
    if popes and state.current_pope_turn != popes[0]:
        problems.append("current_pope_turn does not match the Pope flag")

    return problems


# ===== Lookups =====

def get_player_by_name(state: GameState, name: str) -> Player | None:
    """Case-insensitive player lookup."""
    key = name.strip().casefold()
    return next((p for p in state.players.values() if p.name.casefold() == key), None)


def get_province_by_name(state: GameState, name: str) -> Province | None:
    return next((p for p in state.provinces.values() if p.name == name), None)


def get_claimable_provinces(state: GameState, player_id: str) -> list[str]:
    """Unowned provinces, if the player can afford a claim."""
    player = state.players.get(player_id)
    if player is None or player.resources.gold < CLAIM_COST_GOLD:
        return []
    return [pid for pid, p in state.provinces.items() if p.owner_id is None]


def get_alliance_between(state: GameState, player_a: str, player_b: str) -> Alliance | None:
    """First alliance that has both players as members."""
    for alliance in state.alliances.values():
        if player_a in alliance.members and player_b in alliance.members:
            return alliance
    return None


def get_ongoing_wars(state: GameState, player_id: str | None = None) -> list[War]:
    """Ongoing wars, optionally only those involving player_id."""
    return [
        w for w in state.wars.values()
        if w.is_ongoing and (player_id is None or player_id in (w.attacker_id, w.defender_id))
    ]


def get_daily_income(state: GameState, player_id: str) -> dict[str, int]:
    """Resources the player's provinces will yield on the next day advance."""
    income = {r: 0 for r in RESOURCE_TYPES}
    for province in state.provinces.values():
        if province.owner_id == player_id:
            for resource, amount in province.resources.to_dict().items():
                income[resource] += amount
    return income


def get_player_stats(state: GameState) -> dict[str, dict[str, Any]]:
    """Per-player dashboard numbers: player_id -> stats."""
    return {
        player.id: {
            "name": player.name,
            "color": player.color,
            "is_pope": player.is_pope,
            "resources": player.resources.to_dict(),
            "income": get_daily_income(state, player.id),
            "provinces": len(player.provinces),
            "troops": player.total_troops,
            "alliances": len(player.alliances),
            "wars": len(player.wars),
            "ongoing_wars": len(get_ongoing_wars(state, player.id)),
            "trade_deals": len(player.trade_deals),
        }
        for player in state.players.values()
    }


def get_game_summary(state: GameState) -> dict[str, Any]:
    """Compact overview for lobby/list views."""
    return {
        "game_day": state.game_day,
        "game_started": state.game_started,
        "map_id": state.map_id,
        "players": [p.name for p in state.players.values()],
        "pope": get_current_pope(state),
        "papal_actions_used": state.papal_actions_used,
        "provinces": len(state.provinces),
        "neutral_provinces": sum(1 for p in state.provinces.values() if p.owner_id is None),
        "ongoing_wars": len(get_ongoing_wars(state)),
        "alliances": len(state.alliances),
        "trade_deals": len(state.trade_deals),
    }
