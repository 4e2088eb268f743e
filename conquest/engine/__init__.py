"""
Papal Conquest Game Engine
Deterministic state machine: no web framework, database, or UI.
"""

RESOURCE_TYPES = ("gold", "food", "faith")

STARTING_RESOURCES = {"gold": 100, "food": 50, "faith": 10}
STARTING_GARRISON = 10  # troops per province granted at game start

MIN_PLAYERS = 2
MAX_PLAYERS = 8
PLAYER_COLORS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4",
    "#FFEAA7", "#DDA0DD", "#98D8C8", "#F7DC6F",
]

CLAIM_COST_GOLD = 20
CLAIM_GARRISON = 5

RECRUIT_GOLD_PER_TROOP = 10
RECRUIT_FOOD_PER_TROOP = 2

# Combat
ATTACKER_NUMBERS_ADVANTAGE = 1.2  # applied when attackers outnumber the garrison
TERRAIN_BONUS = 1.2
TERRAIN_BONUS_CHANCE = 0.3
DEFAULT_TERRAIN_BONUS = 1.0

# Papacy
PAPAL_ACTIONS_PER_DAY = 1
BLESS_ARMY_MULTIPLIER = 1.5
