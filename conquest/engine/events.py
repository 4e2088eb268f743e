"""
Game events for UI hooks and logging.
Events describe what happened during action processing, including rejected actions.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Game/day events
GAME_INITIALIZED = "game_initialized"
DAY_ADVANCED = "day_advanced"
POPE_ELECTED = "pope_elected"

# Resource events
RESOURCES_CHANGED = "resources_changed"
INCOME_COLLECTED = "income_collected"

# Territory events
PROVINCE_CLAIMED = "province_claimed"
PROVINCE_CAPTURED = "province_captured"
TROOPS_RECRUITED = "troops_recruited"

# War events
WAR_DECLARED = "war_declared"
WAR_RESOLVED = "war_resolved"

# Diplomacy events
ALLIANCE_FORMED = "alliance_formed"
ALLIANCE_DISSOLVED = "alliance_dissolved"
TRADE_COMPLETED = "trade_completed"

# Papacy events
PAPAL_ACTION_USED = "papal_action_used"

# Rejections
ACTION_REJECTED = "action_rejected"


# ===== Event Factory Functions =====

def game_initialized(player_ids: list[str], province_count: int, neutral_provinces: int) -> GameEvent:
    return GameEvent(GAME_INITIALIZED, {
        "player_ids": player_ids,
        "province_count": province_count,
        "neutral_provinces": neutral_provinces,
    })


def day_advanced(old_day: int, new_day: int) -> GameEvent:
    return GameEvent(DAY_ADVANCED, {"old_day": old_day, "new_day": new_day})


def pope_elected(player_id: str, faith: int, previous_pope: str | None) -> GameEvent:
    return GameEvent(POPE_ELECTED, {
        "player_id": player_id,
        "faith": faith,
        "previous_pope": previous_pope,
        "changed": player_id != previous_pope,
    })


def resources_changed(
    player_id: str,
    resource: str,
    old_value: int,
    new_value: int,
    reason: str,
) -> GameEvent:
    return GameEvent(RESOURCES_CHANGED, {
        "player_id": player_id,
        "resource": resource,
        "old_value": old_value,
        "new_value": new_value,
        "change": new_value - old_value,
        "reason": reason,
    })


def income_collected(
    player_id: str,
    income: dict[str, int],
    provinces: list[str],
) -> GameEvent:
    """Emitted on day advance for each player whose provinces produced."""
    return GameEvent(INCOME_COLLECTED, {
        "player_id": player_id,
        "income": income,  # resource -> amount
        "provinces": provinces,  # province ids that contributed
    })


def province_claimed(player_id: str, province_id: str, garrison: int, cost: int) -> GameEvent:
    return GameEvent(PROVINCE_CLAIMED, {
        "player_id": player_id,
        "province_id": province_id,
        "garrison": garrison,
        "cost": cost,
    })


def province_captured(
    province_id: str,
    old_owner: str | None,
    new_owner: str,
    garrison: int,
) -> GameEvent:
    return GameEvent(PROVINCE_CAPTURED, {
        "province_id": province_id,
        "old_owner": old_owner,
        "new_owner": new_owner,
        "garrison": garrison,
    })


def troops_recruited(player_id: str, province_id: str, amount: int, cost: dict[str, int]) -> GameEvent:
    return GameEvent(TROOPS_RECRUITED, {
        "player_id": player_id,
        "province_id": province_id,
        "amount": amount,
        "cost": cost,
    })


def war_declared(
    war_id: str,
    attacker_id: str,
    defender_id: str,
    target_province_id: str,
    troops: int,
    troop_sources: dict[str, int],
) -> GameEvent:
    return GameEvent(WAR_DECLARED, {
        "war_id": war_id,
        "attacker_id": attacker_id,
        "defender_id": defender_id,
        "target_province_id": target_province_id,
        "troops": troops,
        "troop_sources": troop_sources,
    })


def war_resolved(
    war_id: str,
    result: str,
    cause: str,  # "combat", "ceasefire"
    attacker_strength: float | None = None,
    defender_strength: float | None = None,
    garrison: int | None = None,
) -> GameEvent:
    payload: dict[str, Any] = {
        "war_id": war_id,
        "result": result,
        "cause": cause,
    }
    if attacker_strength is not None:
        payload["attacker_strength"] = attacker_strength
        payload["defender_strength"] = defender_strength
        payload["garrison"] = garrison
    return GameEvent(WAR_RESOLVED, payload)


def alliance_formed(alliance_id: str, name: str, members: list[str]) -> GameEvent:
    return GameEvent(ALLIANCE_FORMED, {
        "alliance_id": alliance_id,
        "name": name,
        "members": members,
    })


def alliance_dissolved(alliance_id: str, members: list[str], reason: str) -> GameEvent:
    """reason: "broken" or "excommunication"."""
    return GameEvent(ALLIANCE_DISSOLVED, {
        "alliance_id": alliance_id,
        "members": members,
        "reason": reason,
    })


def trade_completed(
    trade_id: str,
    from_player_id: str,
    to_player_id: str,
    resources: dict[str, int],
) -> GameEvent:
    return GameEvent(TRADE_COMPLETED, {
        "trade_id": trade_id,
        "from_player_id": from_player_id,
        "to_player_id": to_player_id,
        "resources": resources,
    })


def papal_action_used(
    pope_id: str,
    papal_action_type: str,
    target_player_ids: list[str],
    target_province_id: str | None,
    affected: list[str],
) -> GameEvent:
    """affected: ids of the wars, alliances or provinces the action changed."""
    return GameEvent(PAPAL_ACTION_USED, {
        "pope_id": pope_id,
        "type": papal_action_type,
        "target_player_ids": target_player_ids,
        "target_province_id": target_province_id,
        "affected": affected,
    })


def action_rejected(action_type: str, player_id: str | None, reason: str) -> GameEvent:
    return GameEvent(ACTION_REJECTED, {
        "action_type": action_type,
        "player_id": player_id,
        "reason": reason,
    })


def is_rejected(events: list[GameEvent]) -> bool:
    """True if apply_action rejected the action (state was left unchanged)."""
    return any(e.type == ACTION_REJECTED for e in events)
