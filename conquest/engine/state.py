"""
Game state representation.
Entities live in id-keyed mappings on GameState and reference each other by id only.
The reducer works on deep copies; includes JSON serialization for save/load.
"""

import json
from dataclasses import dataclass, field
from copy import deepcopy
from typing import Any

from conquest.engine import RESOURCE_TYPES, DEFAULT_TERRAIN_BONUS
from conquest.engine.errors import NotFoundError


WAR_ONGOING = "ongoing"
WAR_RESOLVED = "resolved"
ATTACKER_WINS = "attacker_wins"
DEFENDER_WINS = "defender_wins"

PAPAL_CEASEFIRE = "ceasefire"
PAPAL_DOUBLE_RESOURCES = "double_resources"
PAPAL_EXCOMMUNICATE = "excommunicate"
PAPAL_BLESS_ARMY = "bless_army"
PAPAL_ACTION_TYPES = (
    PAPAL_CEASEFIRE,
    PAPAL_DOUBLE_RESOURCES,
    PAPAL_EXCOMMUNICATE,
    PAPAL_BLESS_ARMY,
)


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _float(v: Any, default: float) -> float:
    try:
        return float(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    """Ensure value is a list of strings (id lists loaded from JSON)."""
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass
class Resources:
    """Gold, food and faith counters."""
    gold: int = 0
    food: int = 0
    faith: int = 0

    def get(self, resource: str) -> int:
        return getattr(self, resource)

    def covers(self, bundle: dict[str, int]) -> bool:
        """True if every named amount in a partial bundle is held."""
        return all(self.get(resource) >= amount for resource, amount in bundle.items())

    def add(self, bundle: dict[str, int]) -> None:
        for resource, amount in bundle.items():
            setattr(self, resource, self.get(resource) + amount)

    def subtract(self, bundle: dict[str, int]) -> None:
        for resource, amount in bundle.items():
            setattr(self, resource, self.get(resource) - amount)

    def to_dict(self) -> dict[str, int]:
        return {"gold": self.gold, "food": self.food, "faith": self.faith}

    @classmethod
    def from_dict(cls, data: Any) -> "Resources":
        if not isinstance(data, dict):
            data = {}
        return cls(**{r: max(0, _int(data.get(r), 0)) for r in RESOURCE_TYPES})


@dataclass
class Province:
    """A map territory. Created by the map generator, never deleted."""
    id: str
    name: str
    owner_id: str | None  # player id, None if unclaimed
    resources: Resources  # yield credited to the owner each day
    troops: int = 0  # garrison
    x: int = 0  # display only
    y: int = 0
    adjacent_provinces: list[str] = field(default_factory=list)
    terrain_bonus: float = DEFAULT_TERRAIN_BONUS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "resources": self.resources.to_dict(),
            "troops": self.troops,
            "x": self.x,
            "y": self.y,
            "adjacent_provinces": list(self.adjacent_provinces),
            "terrain_bonus": self.terrain_bonus,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Province":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            owner_id=_optional_str(data.get("owner_id")),
            resources=Resources.from_dict(data.get("resources")),
            troops=max(0, _int(data.get("troops"), 0)),
            x=_int(data.get("x"), 0),
            y=_int(data.get("y"), 0),
            adjacent_provinces=_str_list(data.get("adjacent_provinces")),
            terrain_bonus=_float(data.get("terrain_bonus"), DEFAULT_TERRAIN_BONUS),
        )


@dataclass
class Player:
    """A player. provinces and total_troops are kept in step with province ownership."""
    id: str
    name: str
    color: str
    resources: Resources
    provinces: list[str] = field(default_factory=list)
    total_troops: int = 0
    is_pope: bool = False
    alliances: list[str] = field(default_factory=list)
    wars: list[str] = field(default_factory=list)
    trade_deals: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "resources": self.resources.to_dict(),
            "provinces": list(self.provinces),
            "total_troops": self.total_troops,
            "is_pope": self.is_pope,
            "alliances": list(self.alliances),
            "wars": list(self.wars),
            "trade_deals": list(self.trade_deals),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            color=str(data.get("color") or ""),
            resources=Resources.from_dict(data.get("resources")),
            provinces=_str_list(data.get("provinces")),
            total_troops=_int(data.get("total_troops"), 0),
            is_pope=bool(data.get("is_pope", False)),
            alliances=_str_list(data.get("alliances")),
            wars=_str_list(data.get("wars")),
            trade_deals=_str_list(data.get("trade_deals")),
        )


@dataclass
class Alliance:
    id: str
    members: list[str]  # player ids, at least 2
    name: str
    created_at: int  # ms since epoch

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "members": list(self.members),
            "name": self.name,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Alliance":
        return cls(
            id=str(data.get("id") or ""),
            members=_str_list(data.get("members")),
            name=str(data.get("name") or ""),
            created_at=_int(data.get("created_at"), 0),
        )


@dataclass
class War:
    """A declared conflict over one province. ongoing -> resolved, exactly once."""
    id: str
    attacker_id: str
    defender_id: str
    target_province_id: str
    troops: int  # committed by the attacker at declaration
    status: str = WAR_ONGOING
    result: str | None = None  # set once resolved
    # province_id -> troops drawn from that garrison at declaration
    troop_sources: dict[str, int] = field(default_factory=dict)

    @property
    def is_ongoing(self) -> bool:
        return self.status == WAR_ONGOING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "target_province_id": self.target_province_id,
            "troops": self.troops,
            "status": self.status,
            "result": self.result,
            "troop_sources": dict(self.troop_sources),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "War":
        sources = data.get("troop_sources")
        if not isinstance(sources, dict):
            sources = {}
        return cls(
            id=str(data.get("id") or ""),
            attacker_id=str(data.get("attacker_id") or ""),
            defender_id=str(data.get("defender_id") or ""),
            target_province_id=str(data.get("target_province_id") or ""),
            troops=_int(data.get("troops"), 0),
            status=str(data.get("status") or WAR_ONGOING),
            result=_optional_str(data.get("result")),
            troop_sources={str(k): _int(v, 0) for k, v in sources.items()},
        )


@dataclass
class TradeDeal:
    """Record of an instant resource transfer. duration is recorded, not scheduled."""
    id: str
    from_player_id: str
    to_player_id: str
    resources: dict[str, int]  # partial bundle
    duration: int
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_player_id": self.from_player_id,
            "to_player_id": self.to_player_id,
            "resources": dict(self.resources),
            "duration": self.duration,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeDeal":
        bundle = data.get("resources")
        if not isinstance(bundle, dict):
            bundle = {}
        return cls(
            id=str(data.get("id") or ""),
            from_player_id=str(data.get("from_player_id") or ""),
            to_player_id=str(data.get("to_player_id") or ""),
            resources={str(k): _int(v, 0) for k, v in bundle.items()},
            duration=_int(data.get("duration"), 0),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class PapalAction:
    """The Pope's once-per-day special action."""
    type: str  # one of PAPAL_ACTION_TYPES
    target_player_ids: list[str] = field(default_factory=list)
    target_province_id: str | None = None
    description: str = ""  # display only

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "target_player_ids": list(self.target_player_ids),
            "target_province_id": self.target_province_id,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PapalAction":
        if not isinstance(data, dict):
            data = {}
        return cls(
            type=str(data.get("type") or ""),
            target_player_ids=_str_list(data.get("target_player_ids")),
            target_province_id=_optional_str(data.get("target_province_id")) or None,
            description=str(data.get("description") or ""),
        )


@dataclass
class GameState:
    """Complete game state: the aggregate root."""
    players: dict[str, Player] = field(default_factory=dict)  # player_id -> Player
    provinces: dict[str, Province] = field(default_factory=dict)  # province_id -> Province
    alliances: dict[str, Alliance] = field(default_factory=dict)
    wars: dict[str, War] = field(default_factory=dict)
    trade_deals: dict[str, TradeDeal] = field(default_factory=dict)
    # Cached id of the Pope; Player.is_pope flags are the source of truth
    current_pope_turn: str | None = None
    papal_actions_used: int = 0  # reset at each election
    game_day: int = 1
    last_update: int = 0  # ms since epoch
    game_started: bool = False
    # Map template that seeded the provinces
    map_id: str | None = None

    def copy(self) -> "GameState":
        """Return a deep copy of this game state."""
        return deepcopy(self)

    # ===== Lookups =====

    def get_player(self, player_id: str) -> Player:
        player = self.players.get(player_id)
        if player is None:
            raise NotFoundError("Player", player_id)
        return player

    def get_province(self, province_id: str) -> Province:
        province = self.provinces.get(province_id)
        if province is None:
            raise NotFoundError("Province", province_id)
        return province

    def get_war(self, war_id: str) -> War:
        war = self.wars.get(war_id)
        if war is None:
            raise NotFoundError("War", war_id)
        return war

    def get_alliance(self, alliance_id: str) -> Alliance:
        alliance = self.alliances.get(alliance_id)
        if alliance is None:
            raise NotFoundError("Alliance", alliance_id)
        return alliance

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert GameState to a dictionary for JSON serialization."""
        return {
            "players": {pid: p.to_dict() for pid, p in self.players.items()},
            "provinces": {pid: p.to_dict() for pid, p in self.provinces.items()},
            "alliances": {aid: a.to_dict() for aid, a in self.alliances.items()},
            "wars": {wid: w.to_dict() for wid, w in self.wars.items()},
            "trade_deals": {tid: t.to_dict() for tid, t in self.trade_deals.items()},
            "current_pope_turn": self.current_pope_turn,
            "papal_actions_used": self.papal_actions_used,
            "game_day": self.game_day,
            "last_update": self.last_update,
            "game_started": self.game_started,
            "map_id": self.map_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """Create GameState from a dictionary (missing sections default to empty)."""
        def _section(key: str) -> dict[str, Any]:
            value = data.get(key) or {}
            if not isinstance(value, dict):
                return {}
            return {str(k): v for k, v in value.items() if isinstance(v, dict)}

        return cls(
            players={k: Player.from_dict(v) for k, v in _section("players").items()},
            provinces={k: Province.from_dict(v) for k, v in _section("provinces").items()},
            alliances={k: Alliance.from_dict(v) for k, v in _section("alliances").items()},
            wars={k: War.from_dict(v) for k, v in _section("wars").items()},
            trade_deals={k: TradeDeal.from_dict(v) for k, v in _section("trade_deals").items()},
            current_pope_turn=_optional_str(data.get("current_pope_turn")),
            papal_actions_used=_int(data.get("papal_actions_used"), 0),
            game_day=_int(data.get("game_day"), 1),
            last_update=_int(data.get("last_update"), 0),
            game_started=bool(data.get("game_started", False)),
            map_id=data.get("map_id") if isinstance(data.get("map_id"), str) else None,
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize GameState to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "GameState":
        """Deserialize GameState from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    def save(self, filepath: str) -> None:
        """Save GameState to a JSON file."""
        with open(filepath, "w") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, filepath: str) -> "GameState":
        """Load GameState from a JSON file."""
        with open(filepath, "r") as f:
            return cls.from_json(f.read())
