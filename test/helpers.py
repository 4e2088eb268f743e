"""
Lookup helpers shared by the Papal Conquest tests.
"""

from conquest.engine.state import GameState
from conquest.engine.queries import get_player_by_name, get_province_by_name


def player_id(state: GameState, name: str) -> str:
    """Player id by name."""
    return get_player_by_name(state, name).id


def province_id(state: GameState, name: str) -> str:
    """Province id by name."""
    return get_province_by_name(state, name).id
