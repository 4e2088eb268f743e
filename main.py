"""
Main entry point for the Papal Conquest game engine.
Demonstrates core functionality with a simple simulated scenario.
"""

import logging

from conquest.config import LOG_LEVEL
from conquest.engine.actions import (
    claim_province,
    recruit_troops,
    declare_war,
    form_alliance,
    create_trade_deal,
    use_papal_action,
    advance_day,
)
from conquest.engine.events import is_rejected
from conquest.engine.reducer import apply_action, start_game
from conquest.engine.queries import (
    check_invariants,
    get_current_pope,
    get_player_by_name,
    get_claimable_provinces,
)
from conquest.engine.state import PAPAL_BLESS_ARMY
from conquest.engine.utils import print_game_state


def dispatch(state, action):
    """Apply an action and report what happened."""
    state, events = apply_action(state, action)
    if is_rejected(events):
        print(f"  ✗ {action.type} rejected: {events[0].payload['reason']}")
    else:
        print(f"  ✓ {action.type}: {', '.join(e.type for e in events)}")
    return state


def main():
    logging.basicConfig(level=LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    print("Papal Conquest - Game Engine Demo")
    print("=" * 60)

    state, _ = start_game(["Alice", "Bob", "Carol"])
    alice = get_player_by_name(state, "Alice")
    bob = get_player_by_name(state, "Bob")
    carol = get_player_by_name(state, "Carol")

    print("\n[INITIAL STATE]")
    print_game_state(state)

    # ===== SCENARIO 1: Claim a neutral province and garrison it =====
    print("\n[SCENARIO 1: Claim + Recruit]")
    neutral = get_claimable_provinces(state, alice.id)
    if neutral:
        target = neutral[0]
        print(f"Alice claims {state.provinces[target].name}")
        state = dispatch(state, claim_province(alice.id, target))
        state = dispatch(state, recruit_troops(alice.id, target, 3))

    # ===== SCENARIO 2: Diplomacy =====
    print("\n[SCENARIO 2: Alliance + Trade]")
    state = dispatch(state, form_alliance(bob.id, carol.id, "Northern League"))
    state = dispatch(state, create_trade_deal(bob.id, carol.id, {"gold": 20, "faith": 5}))

    # ===== SCENARIO 3: War over one of Bob's provinces =====
    print("\n[SCENARIO 3: War]")
    bob_province = state.players[bob.id].provinces[0]
    print(f"Alice attacks {state.provinces[bob_province].name} with 15 troops")
    state = dispatch(state, declare_war(alice.id, bob.id, bob_province, 15))

    # ===== SCENARIO 4: The Pope blesses a province =====
    print("\n[SCENARIO 4: Papal action]")
    pope_id = get_current_pope(state)
    pope = state.players[pope_id]
    blessed = pope.provinces[0]
    print(f"{pope.name} blesses {state.provinces[blessed].name}")
    state = dispatch(state, use_papal_action(PAPAL_BLESS_ARMY, target_province_id=blessed))
    state = dispatch(state, use_papal_action(PAPAL_BLESS_ARMY, target_province_id=blessed))

    # ===== SCENARIO 5: End of day =====
    print("\n[SCENARIO 5: Advance day]")
    state = dispatch(state, advance_day())
    print_game_state(state, verbose=True)

    problems = check_invariants(state)
    print("Invariants:", "OK" if not problems else problems)


if __name__ == "__main__":
    main()
