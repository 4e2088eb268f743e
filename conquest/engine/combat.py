"""
War combat.
A war is settled by a single strength comparison between the committed
attackers and the target province's garrison.
"""

from dataclasses import dataclass

from conquest.engine import ATTACKER_NUMBERS_ADVANTAGE, DEFAULT_TERRAIN_BONUS


@dataclass
class WarOutcome:
    attacker_wins: bool
    attacker_strength: float
    defender_strength: float
    garrison: int  # troops left in the province afterwards, for whichever side holds it


def resolve_combat(
    attacking_troops: int,
    defending_troops: int,
    terrain_bonus: float | None = DEFAULT_TERRAIN_BONUS,
) -> WarOutcome:
    """
    Compare strengths and compute the surviving garrison.

    Attackers get ATTACKER_NUMBERS_ADVANTAGE when they outnumber the garrison; defenders
    multiply by the province terrain bonus. Ties go to the defender.
    Winner garrison: attacker keeps max(1, attacking - defending); a holding defender keeps
    max(1, defending - attacking // 2).
    """
    attacker_advantage = ATTACKER_NUMBERS_ADVANTAGE if attacking_troops > defending_troops else 1.0
    defender_advantage = terrain_bonus or DEFAULT_TERRAIN_BONUS

    attacker_strength = attacking_troops * attacker_advantage
    defender_strength = defending_troops * defender_advantage

    if attacker_strength > defender_strength:
        return WarOutcome(
            attacker_wins=True,
            attacker_strength=attacker_strength,
            defender_strength=defender_strength,
            garrison=max(1, attacking_troops - defending_troops),
        )
    return WarOutcome(
        attacker_wins=False,
        attacker_strength=attacker_strength,
        defender_strength=defender_strength,
        garrison=max(1, defending_troops - attacking_troops // 2),
    )
