"""
Utility functions for the game engine.
"""

import random
import time
import uuid

from conquest.config import DEFAULT_MAP_ID
from conquest.engine import (
    STARTING_RESOURCES,
    STARTING_GARRISON,
    MIN_PLAYERS,
    MAX_PLAYERS,
    PLAYER_COLORS,
)
from conquest.engine.definitions import ProvinceDefinition, load_map_definitions
from conquest.engine.map_generator import generate_provinces
from conquest.engine.state import GameState, Player, Resources


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_player_names(player_names: list[str]) -> list[str]:
    """
    Trim names and drop blanks, then check the player count and uniqueness.
    Names are unique case-insensitively ("alice" and "Alice" clash).

    Raises ValueError describing the first problem found.
    """
    names = [str(n).strip() for n in player_names if n is not None and str(n).strip()]
    if len(names) < MIN_PLAYERS:
        raise ValueError(f"At least {MIN_PLAYERS} players are required, got {len(names)}")
    if len(names) > MAX_PLAYERS:
        raise ValueError(f"At most {MAX_PLAYERS} players are allowed, got {len(names)}")
    seen: set[str] = set()
    for name in names:
        key = name.casefold()
        if key in seen:
            raise ValueError(f"Duplicate player name: {name}")
        seen.add(key)
    return names


def initialize_game_state(
    player_names: list[str],
    map_id: str | None = None,
    rng: random.Random | None = None,
    definitions: list[ProvinceDefinition] | None = None,
) -> GameState:
    """
    Create a started game: map generated, players created, provinces handed out.

    Provinces are dealt in template order, the same number to each player in creation
    order (floor division); the remainder stays neutral. Each granted province gets
    STARTING_GARRISON troops. The Pope is not elected here: the initialize_game action
    runs the election on the returned state.

    Args:
        player_names: 2-8 names, unique case-insensitively
        map_id: Map under data/maps/ (default from conquest.config)
        rng: Random source for terrain bonuses
        definitions: Province templates to use instead of loading map_id

    Raises ValueError for invalid player names.
    """
    names = normalize_player_names(player_names)
    if definitions is None:
        map_id = map_id or DEFAULT_MAP_ID
        definitions = load_map_definitions(map_id)
    provinces = generate_provinces(definitions, rng=rng)

    state = GameState(provinces=provinces, map_id=map_id)

    for index, name in enumerate(names):
        player_id = new_id()
        state.players[player_id] = Player(
            id=player_id,
            name=name,
            color=PLAYER_COLORS[index % len(PLAYER_COLORS)],
            resources=Resources.from_dict(STARTING_RESOURCES),
        )

    province_ids = list(provinces.keys())
    per_player = len(province_ids) // len(state.players)
    for index, player in enumerate(state.players.values()):
        for province_id in province_ids[index * per_player:(index + 1) * per_player]:
            province = provinces[province_id]
            province.owner_id = player.id
            province.troops = STARTING_GARRISON
            player.provinces.append(province_id)
            player.total_troops += STARTING_GARRISON

    state.game_started = True
    state.last_update = now_ms()
    return state


def print_game_state(state: GameState, verbose: bool = False):
    """
    Pretty-print the current game state.

    Args:
        state: Current game state
        verbose: If True, list every province with its owner and garrison
    """
    pope = state.players.get(state.current_pope_turn) if state.current_pope_turn else None
    print(f"\n{'='*60}")
    print(f"Day {state.game_day} | Pope: {pope.name if pope else 'none'} "
          f"| Papal actions used: {state.papal_actions_used}")
    print(f"{'='*60}")

    for player in state.players.values():
        r = player.resources
        crown = " (Pope)" if player.is_pope else ""
        print(f"\n{player.name}{crown}")
        print(f"  gold: {r.gold}, food: {r.food}, faith: {r.faith}")
        print(f"  provinces: {len(player.provinces)}, troops: {player.total_troops}, "
              f"alliances: {len(player.alliances)}, wars: {len(player.wars)}")

    if verbose:
        print(f"\n{'Provinces':.<40}")
        for province in sorted(state.provinces.values(), key=lambda p: p.name):
            owner = state.players.get(province.owner_id) if province.owner_id else None
            print(f"  {province.name}: {owner.name if owner else 'neutral'} "
                  f"({province.troops} troops, terrain x{province.terrain_bonus:g})")

    ongoing = [w for w in state.wars.values() if w.is_ongoing]
    if ongoing:
        print(f"\n{'Wars':.<40}")
        for war in ongoing:
            attacker = state.players[war.attacker_id].name
            defender = state.players[war.defender_id].name
            target = state.provinces[war.target_province_id].name
            print(f"  {attacker} -> {defender} over {target} ({war.troops} troops)")
    print()
