"""
Pytest fixtures for Papal Conquest tests.
"""

import random

import pytest

from conquest.engine.reducer import start_game
from conquest.engine.state import GameState


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source so map generation is repeatable."""
    return random.Random(1234)


@pytest.fixture
def game(rng) -> GameState:
    """
    Started 2-player game on the default map with every terrain bonus reset to 1.0.
    Alice holds London..Rome, Bob holds Naples..Thessalonica, Athens is neutral.
    """
    state, _ = start_game(["Alice", "Bob"], rng=rng)
    for province in state.provinces.values():
        province.terrain_bonus = 1.0
    return state


@pytest.fixture
def three_player_game(rng) -> GameState:
    """Started 3-player game (9 provinces each, Thessalonica and Athens neutral)."""
    state, _ = start_game(["Alice", "Bob", "Carol"], rng=rng)
    for province in state.provinces.values():
        province.terrain_bonus = 1.0
    return state
