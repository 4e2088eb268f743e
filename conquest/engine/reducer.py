"""
Main game reducer.
Applies actions to state, enforcing rules and producing new state.
Returns (new_state, events) where events describe what happened.

Every action is atomic: the handler works on a deep copy, so a NotFoundError leaves
the caller's state untouched, and a failed rule precondition returns the original
state with a single action_rejected event.
"""

import logging
import random

from conquest.engine import (
    RESOURCE_TYPES,
    CLAIM_COST_GOLD,
    CLAIM_GARRISON,
    RECRUIT_GOLD_PER_TROOP,
    RECRUIT_FOOD_PER_TROOP,
    PAPAL_ACTIONS_PER_DAY,
    BLESS_ARMY_MULTIPLIER,
)
from conquest.engine.state import (
    GameState,
    Player,
    Alliance,
    War,
    TradeDeal,
    PapalAction,
    WAR_ONGOING,
    WAR_RESOLVED,
    ATTACKER_WINS,
    DEFENDER_WINS,
    PAPAL_ACTION_TYPES,
    PAPAL_CEASEFIRE,
    PAPAL_DOUBLE_RESOURCES,
    PAPAL_EXCOMMUNICATE,
    PAPAL_BLESS_ARMY,
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
    initialize_game,
)
from conquest.engine.combat import resolve_combat
from conquest.engine.errors import ActionRejected, NotFoundError
from conquest.engine.utils import initialize_game_state, new_id, now_ms
from conquest.engine.events import (
    GameEvent,
    game_initialized,
    day_advanced,
    pope_elected,
    resources_changed,
    income_collected,
    province_claimed,
    province_captured,
    troops_recruited,
    war_declared,
    war_resolved,
    alliance_formed,
    alliance_dissolved,
    trade_completed,
    papal_action_used,
    action_rejected,
)

logger = logging.getLogger(__name__)


def apply_action(
    state: GameState,
    action: Action,
    rng: random.Random | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Apply a single action to the current state, returning new state and events.

    Args:
        state: Current game state (never mutated)
        action: Action to apply
        rng: Random source for map generation (initialize_game only)

    Returns:
        Tuple of (new_state, events). If a rule precondition fails, new_state is the
        unchanged input state and events holds one action_rejected event.

    Raises:
        NotFoundError: the action references a player, province, war or alliance
            that does not exist
        ValueError: unknown action type
    """
    new_state = state.copy()
    events: list[GameEvent] = []

    try:
        if action.type == INITIALIZE_GAME:
            new_state, evts = _handle_initialize_game(new_state, action, rng)
            events.extend(evts)

        elif action.type == ELECT_POPE:
            events.extend(_elect_pope(new_state))

        elif action.type == ADVANCE_DAY:
            new_state, evts = _handle_advance_day(new_state)
            events.extend(evts)

        elif action.type == CLAIM_PROVINCE:
            new_state, evts = _handle_claim_province(new_state, action)
            events.extend(evts)

        elif action.type == DECLARE_WAR:
            new_state, evts = _handle_declare_war(new_state, action)
            events.extend(evts)

        elif action.type == RESOLVE_WAR:
            new_state, evts = _handle_resolve_war(new_state, action)
            events.extend(evts)

        elif action.type == FORM_ALLIANCE:
            new_state, evts = _handle_form_alliance(new_state, action)
            events.extend(evts)

        elif action.type == BREAK_ALLIANCE:
            new_state, evts = _handle_break_alliance(new_state, action)
            events.extend(evts)

        elif action.type == CREATE_TRADE_DEAL:
            new_state, evts = _handle_create_trade_deal(new_state, action)
            events.extend(evts)

        elif action.type == USE_PAPAL_ACTION:
            new_state, evts = _handle_use_papal_action(new_state, action)
            events.extend(evts)

        elif action.type == RECRUIT_TROOPS:
            new_state, evts = _handle_recruit_troops(new_state, action)
            events.extend(evts)

        else:
            raise ValueError(f"Unknown action type: {action.type}")

    except ActionRejected as rejection:
        logger.debug("Rejected %s by %s: %s", action.type, action.player_id, rejection.reason)
        return state, [action_rejected(action.type, action.player_id, rejection.reason)]

    return new_state, events


def start_game(
    player_names: list[str],
    map_id: str | None = None,
    rng: random.Random | None = None,
) -> tuple[GameState, list[GameEvent]]:
    """Dispatch initialize_game on an empty state."""
    return apply_action(GameState(), initialize_game(player_names, map_id), rng=rng)


# ===== Game / day =====

def _handle_initialize_game(
    state: GameState,
    action: Action,
    rng: random.Random | None,
) -> tuple[GameState, list[GameEvent]]:
    """
    Generate the map, create players and deal provinces, then elect the first Pope.
    Validates:
    - Game has not started yet
    - 2-8 player names, unique case-insensitively
    """
    if state.game_started:
        raise ActionRejected("Game has already started")

    map_id = action.payload.get("map_id")
    try:
        new_state = initialize_game_state(
            action.payload.get("player_names") or [],
            map_id=map_id,
            rng=rng,
        )
    except FileNotFoundError:
        raise NotFoundError("Map", map_id)
    except ValueError as e:
        raise ActionRejected(str(e))

    neutral = sum(1 for p in new_state.provinces.values() if p.owner_id is None)
    events = [game_initialized(list(new_state.players.keys()), len(new_state.provinces), neutral)]
    events.extend(_elect_pope(new_state))
    logger.info(
        "Game initialized: %d players, %d provinces (%d neutral)",
        len(new_state.players), len(new_state.provinces), neutral,
    )
    return new_state, events


def _elect_pope(state: GameState) -> list[GameEvent]:
    """
    Crown the player with the most faith. Ties go to the first player in insertion order.
    Resets the papal action counter. Does nothing when there are no players.
    """
    if not state.players:
        return []

    previous = state.current_pope_turn
    new_pope: Player | None = None
    max_faith = -1
    for player in state.players.values():
        player.is_pope = False
        if player.resources.faith > max_faith:
            max_faith = player.resources.faith
            new_pope = player

    new_pope.is_pope = True
    state.current_pope_turn = new_pope.id
    state.papal_actions_used = 0
    if new_pope.id != previous:
        logger.info("New Pope: %s (faith %d)", new_pope.name, max_faith)
    return [pope_elected(new_pope.id, max_faith, previous)]


def _handle_advance_day(state: GameState) -> tuple[GameState, list[GameEvent]]:
    """
    End the day:
    1. Every owned province pays its yield to its owner
    2. Every ongoing war is resolved, in declaration order
    3. Day counter advances and the Pope is re-elected on the new faith totals
    """
    events: list[GameEvent] = []

    income: dict[str, dict[str, int]] = {}
    contributors: dict[str, list[str]] = {}
    for province_id, province in state.provinces.items():
        if province.owner_id is None:
            continue
        owner = state.get_player(province.owner_id)
        produced = province.resources.to_dict()
        owner.resources.add(produced)
        totals = income.setdefault(owner.id, {r: 0 for r in RESOURCE_TYPES})
        for resource, amount in produced.items():
            totals[resource] += amount
        contributors.setdefault(owner.id, []).append(province_id)

    for player_id, totals in income.items():
        events.append(income_collected(player_id, totals, contributors[player_id]))

    for war in list(state.wars.values()):
        if war.is_ongoing:
            events.extend(_resolve_war(state, war))

    old_day = state.game_day
    state.game_day += 1
    state.last_update = now_ms()
    events.append(day_advanced(old_day, state.game_day))
    logger.info("Day %d begins", state.game_day)

    events.extend(_elect_pope(state))
    return state, events


# ===== Provinces =====

def _handle_claim_province(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Claim an unowned province.
    Validates:
    - Province is unowned
    - Player has CLAIM_COST_GOLD gold
    """
    player = state.get_player(action.player_id)
    province = state.get_province(action.payload.get("province_id"))

    if province.owner_id is not None:
        raise ActionRejected(f"Province {province.name} is already owned")
    if player.resources.gold < CLAIM_COST_GOLD:
        raise ActionRejected(
            f"Insufficient gold: have {player.resources.gold}, need {CLAIM_COST_GOLD}")

    old_gold = player.resources.gold
    player.resources.gold -= CLAIM_COST_GOLD
    province.owner_id = player.id
    province.troops = CLAIM_GARRISON
    player.provinces.append(province.id)
    player.total_troops += CLAIM_GARRISON

    return state, [
        resources_changed(player.id, "gold", old_gold, player.resources.gold, "claim_province"),
        province_claimed(player.id, province.id, CLAIM_GARRISON, CLAIM_COST_GOLD),
    ]


def _handle_recruit_troops(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Recruit troops into an owned province.
    Validates:
    - Amount is positive
    - Province is owned by the player
    - Player can pay RECRUIT_GOLD_PER_TROOP gold and RECRUIT_FOOD_PER_TROOP food per troop
    """
    player = state.get_player(action.player_id)
    province = state.get_province(action.payload.get("province_id"))
    amount = int(action.payload.get("amount") or 0)

    if amount <= 0:
        raise ActionRejected("Must recruit at least one troop")
    if province.owner_id != player.id:
        raise ActionRejected(f"Province {province.name} is not owned by {player.name}")

    cost = {"gold": amount * RECRUIT_GOLD_PER_TROOP, "food": amount * RECRUIT_FOOD_PER_TROOP}
    for resource, needed in cost.items():
        available = player.resources.get(resource)
        if available < needed:
            raise ActionRejected(f"Insufficient {resource}: have {available}, need {needed}")

    events: list[GameEvent] = []
    for resource, needed in cost.items():
        old_value = player.resources.get(resource)
        player.resources.subtract({resource: needed})
        events.append(resources_changed(
            player.id, resource, old_value, player.resources.get(resource), "recruit_troops"))

    province.troops += amount
    player.total_troops += amount
    events.append(troops_recruited(player.id, province.id, amount, cost))
    return state, events


# ===== Wars =====

def _handle_declare_war(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Declare war over a province.
    Validates:
    - Troops committed is positive and at most the attacker's total_troops
    - Attacker and defender are different players
    - Target province is currently owned by the defender

    The committed troops leave the attacker's garrisons straight away (largest garrison
    first), so total_troops keeps matching the garrisons while the war is pending.
    """
    attacker = state.get_player(action.player_id)
    defender = state.get_player(action.payload.get("defender_id"))
    province = state.get_province(action.payload.get("target_province_id"))
    troops = int(action.payload.get("troops") or 0)

    if troops <= 0:
        raise ActionRejected("Must commit at least one troop")
    if attacker.id == defender.id:
        raise ActionRejected("A player cannot declare war on themselves")
    if province.owner_id != defender.id:
        raise ActionRejected(f"Province {province.name} is not owned by {defender.name}")
    if attacker.total_troops < troops:
        raise ActionRejected(
            f"Insufficient troops: have {attacker.total_troops}, need {troops}")

    sources = _draw_committed_troops(state, attacker, troops)
    war = War(
        id=new_id(),
        attacker_id=attacker.id,
        defender_id=defender.id,
        target_province_id=province.id,
        troops=troops,
        status=WAR_ONGOING,
        troop_sources=sources,
    )
    state.wars[war.id] = war
    attacker.total_troops -= troops
    attacker.wars.append(war.id)
    defender.wars.append(war.id)

    logger.info("%s declares war on %s over %s (%d troops)",
                attacker.name, defender.name, province.name, troops)
    return state, [war_declared(war.id, attacker.id, defender.id, province.id, troops, sources)]


def _draw_committed_troops(state: GameState, attacker: Player, troops: int) -> dict[str, int]:
    """Take troops out of the attacker's garrisons, largest first (ties in list order)."""
    sources: dict[str, int] = {}
    remaining = troops
    by_size = sorted(attacker.provinces, key=lambda pid: -state.provinces[pid].troops)
    for province_id in by_size:
        if remaining <= 0:
            break
        province = state.provinces[province_id]
        taken = min(province.troops, remaining)
        if taken > 0:
            province.troops -= taken
            sources[province_id] = taken
            remaining -= taken
    return sources


def _handle_resolve_war(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """Resolve one war now. Validates the war is still ongoing."""
    war = state.get_war(action.payload.get("war_id"))
    if not war.is_ongoing:
        raise ActionRejected(f"War {war.id} is already resolved")
    return state, _resolve_war(state, war)


def _resolve_war(state: GameState, war: War) -> list[GameEvent]:
    """
    Fight a war against the target province's current owner and garrison.

    Attacker wins: the province changes hands with the surviving garrison, which is
    credited to the new owner (the committed troops were debited at declaration);
    the old owner loses the garrison it had there.
    Defender wins: the garrison shrinks and the owner's total follows it.
    An attacker who already holds the target simply reinforces it.
    """
    province = state.get_province(war.target_province_id)
    attacker = state.get_player(war.attacker_id)
    war.status = WAR_RESOLVED

    if province.owner_id == attacker.id:
        province.troops += war.troops
        attacker.total_troops += war.troops
        war.result = ATTACKER_WINS
        return [war_resolved(war.id, ATTACKER_WINS, "uncontested", garrison=province.troops)]

    holder = state.get_player(province.owner_id) if province.owner_id else None
    defending = province.troops
    outcome = resolve_combat(war.troops, defending, province.terrain_bonus)
    events: list[GameEvent] = []

    if outcome.attacker_wins:
        if holder is not None:
            holder.total_troops -= defending
            holder.provinces = [pid for pid in holder.provinces if pid != province.id]
        province.owner_id = attacker.id
        province.troops = outcome.garrison
        attacker.provinces.append(province.id)
        attacker.total_troops += outcome.garrison
        war.result = ATTACKER_WINS
        events.append(province_captured(
            province.id, holder.id if holder else None, attacker.id, outcome.garrison))
    else:
        if holder is not None:
            holder.total_troops += outcome.garrison - defending
        province.troops = outcome.garrison
        war.result = DEFENDER_WINS

    logger.info("War over %s: %s (%.1f vs %.1f)", province.name, war.result,
                outcome.attacker_strength, outcome.defender_strength)
    events.insert(0, war_resolved(
        war.id,
        war.result,
        "combat",
        attacker_strength=outcome.attacker_strength,
        defender_strength=outcome.defender_strength,
        garrison=outcome.garrison,
    ))
    return events


# ===== Diplomacy =====

def _handle_form_alliance(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Create a two-member alliance. Duplicate alliances between the same pair are not
    checked here (see queries.validate_action).
    """
    player = state.get_player(action.player_id)
    target = state.get_player(action.payload.get("target_player_id"))
    if player.id == target.id:
        raise ActionRejected("A player cannot ally with themselves")

    alliance = Alliance(
        id=new_id(),
        members=[player.id, target.id],
        name=str(action.payload.get("alliance_name") or "").strip(),
        created_at=now_ms(),
    )
    state.alliances[alliance.id] = alliance
    player.alliances.append(alliance.id)
    target.alliances.append(alliance.id)
    return state, [alliance_formed(alliance.id, alliance.name, list(alliance.members))]


def _handle_break_alliance(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """Dissolve an alliance for every member, whatever its size."""
    state.get_player(action.player_id)
    alliance = state.get_alliance(action.payload.get("alliance_id"))
    for member_id in alliance.members:
        member = state.players.get(member_id)
        if member is not None:
            member.alliances = [aid for aid in member.alliances if aid != alliance.id]
    del state.alliances[alliance.id]
    return state, [alliance_dissolved(alliance.id, list(alliance.members), "broken")]


def _leave_all_alliances(state: GameState, player: Player) -> tuple[list[str], list[GameEvent]]:
    """
    Remove a player from each of their alliances. Alliances left with fewer than two
    members are deleted for everyone. Returns (dissolved alliance ids, events).
    """
    dissolved: list[str] = []
    events: list[GameEvent] = []
    for alliance_id in list(player.alliances):
        alliance = state.alliances.get(alliance_id)
        if alliance is None:
            continue
        alliance.members = [m for m in alliance.members if m != player.id]
        if len(alliance.members) < 2:
            for member_id in alliance.members:
                member = state.players.get(member_id)
                if member is not None:
                    member.alliances = [aid for aid in member.alliances if aid != alliance_id]
            del state.alliances[alliance_id]
            dissolved.append(alliance_id)
            events.append(alliance_dissolved(
                alliance_id, [player.id] + alliance.members, "excommunication"))
    player.alliances = []
    return dissolved, events


def _parse_bundle(raw) -> dict[str, int]:
    """Validate a partial resource bundle: known resource names, non-negative amounts."""
    if not isinstance(raw, dict):
        raise ActionRejected("Resources must be a mapping of resource to amount")
    bundle: dict[str, int] = {}
    for resource, amount in raw.items():
        if resource not in RESOURCE_TYPES:
            raise ActionRejected(f"Unknown resource: {resource}")
        amount = int(amount or 0)
        if amount < 0:
            raise ActionRejected(f"Cannot offer a negative amount of {resource}")
        bundle[resource] = amount
    return bundle


def _handle_create_trade_deal(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Transfer resources immediately.
    Validates:
    - Only gold, food and faith, in non-negative amounts
    - Sender holds at least each offered amount
    """
    sender = state.get_player(action.player_id)
    receiver = state.get_player(action.payload.get("to_player_id"))
    bundle = _parse_bundle(action.payload.get("resources") or {})

    if not sender.resources.covers(bundle):
        missing = {r: a for r, a in bundle.items() if sender.resources.get(r) < a}
        raise ActionRejected(f"Insufficient resources for trade: {missing}")

    events: list[GameEvent] = []
    for resource, amount in bundle.items():
        old_sender = sender.resources.get(resource)
        sender.resources.subtract({resource: amount})
        old_receiver = receiver.resources.get(resource)
        receiver.resources.add({resource: amount})
        events.append(resources_changed(
            sender.id, resource, old_sender, sender.resources.get(resource), "trade"))
        events.append(resources_changed(
            receiver.id, resource, old_receiver, receiver.resources.get(resource), "trade"))

    deal = TradeDeal(
        id=new_id(),
        from_player_id=sender.id,
        to_player_id=receiver.id,
        resources=bundle,
        duration=int(action.payload.get("duration") or 0),
        is_active=True,
    )
    state.trade_deals[deal.id] = deal
    sender.trade_deals.append(deal.id)
    receiver.trade_deals.append(deal.id)
    events.append(trade_completed(deal.id, sender.id, receiver.id, dict(bundle)))
    return state, events


# ===== Papacy =====

def _handle_use_papal_action(state: GameState, action: Action) -> tuple[GameState, list[GameEvent]]:
    """
    Apply the Pope's action for the day.
    Validates:
    - Some player is Pope
    - The Pope has not acted since the last election
    - The papal action type is known

    Every known type uses up the day's action, even when it finds nothing to act on.
    """
    papal = PapalAction.from_dict(action.payload.get("action"))

    pope = next((p for p in state.players.values() if p.is_pope), None)
    if pope is None:
        raise ActionRejected("There is no Pope")
    if state.papal_actions_used >= PAPAL_ACTIONS_PER_DAY:
        raise ActionRejected("The Pope has already acted today")
    if papal.type not in PAPAL_ACTION_TYPES:
        raise ActionRejected(f"Unknown papal action: {papal.type}")

    targets = [state.get_player(pid) for pid in papal.target_player_ids]
    province = state.get_province(papal.target_province_id) if papal.target_province_id else None

    events: list[GameEvent] = []
    affected: list[str] = []

    if papal.type == PAPAL_CEASEFIRE:
        targeted = set(papal.target_player_ids)
        for player in targets:
            for war_id in player.wars:
                war = state.wars.get(war_id)
                if war is None or not war.is_ongoing:
                    continue
                if war.attacker_id in targeted or war.defender_id in targeted:
                    war.status = WAR_RESOLVED
                    war.result = DEFENDER_WINS
                    affected.append(war.id)
                    events.append(war_resolved(war.id, DEFENDER_WINS, "ceasefire"))

    elif papal.type == PAPAL_DOUBLE_RESOURCES:
        if province is not None and province.owner_id is not None:
            owner = state.get_player(province.owner_id)
            for resource, amount in province.resources.to_dict().items():
                old_value = owner.resources.get(resource)
                owner.resources.add({resource: amount})
                events.append(resources_changed(
                    owner.id, resource, old_value, owner.resources.get(resource), "double_resources"))
            affected.append(province.id)

    elif papal.type == PAPAL_EXCOMMUNICATE:
        for player in targets:
            dissolved, evts = _leave_all_alliances(state, player)
            affected.extend(dissolved)
            events.extend(evts)

    elif papal.type == PAPAL_BLESS_ARMY:
        if province is not None:
            province.terrain_bonus *= BLESS_ARMY_MULTIPLIER
            affected.append(province.id)

    state.papal_actions_used += 1
    logger.info("Pope %s uses %s", pope.name, papal.type)
    events.insert(0, papal_action_used(
        pope.id,
        papal.type,
        list(papal.target_player_ids),
        papal.target_province_id,
        affected,
    ))
    return state, events
