"""
Tests for the game reducer: every action, its rule checks and the state invariants.
"""

import pytest

from conquest.engine.actions import (
    Action,
    initialize_game,
    elect_pope,
    advance_day,
    claim_province,
    declare_war,
    resolve_war,
    form_alliance,
    break_alliance,
    create_trade_deal,
    use_papal_action,
    recruit_troops,
)
from conquest.engine.errors import NotFoundError
from conquest.engine.events import (
    ACTION_REJECTED,
    ALLIANCE_DISSOLVED,
    DAY_ADVANCED,
    GAME_INITIALIZED,
    INCOME_COLLECTED,
    PAPAL_ACTION_USED,
    POPE_ELECTED,
    PROVINCE_CAPTURED,
    PROVINCE_CLAIMED,
    RESOURCES_CHANGED,
    TRADE_COMPLETED,
    TROOPS_RECRUITED,
    WAR_DECLARED,
    WAR_RESOLVED,
    is_rejected,
)
from conquest.engine.queries import check_invariants, get_current_pope, get_daily_income
from conquest.engine.reducer import apply_action, start_game
from conquest.engine.state import (
    GameState,
    ATTACKER_WINS,
    DEFENDER_WINS,
    WAR_RESOLVED as WAR_STATUS_RESOLVED,
    PAPAL_BLESS_ARMY,
    PAPAL_CEASEFIRE,
    PAPAL_DOUBLE_RESOURCES,
    PAPAL_EXCOMMUNICATE,
)

from helpers import player_id, province_id


def assert_rejected(state: GameState, action: Action, reason_fragment: str = ""):
    """The action must be rejected and hand back the very same, unchanged state."""
    before = state.copy()
    new_state, events = apply_action(state, action)
    assert is_rejected(events)
    assert len(events) == 1
    assert events[0].type == ACTION_REJECTED
    assert reason_fragment in events[0].payload["reason"]
    assert new_state is state
    assert state == before
    return events[0]


def declare(state, attacker, defender, target, troops):
    """Declare a war and return (state, war_id)."""
    state, events = apply_action(state, declare_war(attacker, defender, target, troops))
    assert events[0].type == WAR_DECLARED
    return state, events[0].payload["war_id"]


class TestInitializeGame:

    def test_two_players(self):
        state, events = start_game(["Alice", "Bob"])
        alice, bob = player_id(state, "Alice"), player_id(state, "Bob")

        assert len(state.players) == 2
        for player in state.players.values():
            assert player.resources.to_dict() == {"gold": 100, "food": 50, "faith": 10}
            assert len(player.provinces) == 14
            assert player.total_troops == 140
        assert len(state.provinces) == 29
        neutral = [p for p in state.provinces.values() if p.owner_id is None]
        assert [p.name for p in neutral] == ["Athens"]

        # Tied on faith, the first-created player becomes Pope
        assert state.players[alice].is_pope
        assert not state.players[bob].is_pope
        assert state.current_pope_turn == alice
        assert state.papal_actions_used == 0

        assert state.game_started
        assert state.game_day == 1
        assert state.map_id == "europe"
        assert [e.type for e in events] == [GAME_INITIALIZED, POPE_ELECTED]
        assert events[0].payload["neutral_provinces"] == 1
        assert check_invariants(state) == []

    def test_provinces_dealt_in_template_order(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        names = [game.provinces[pid].name for pid in game.players[alice].provinces]
        assert names[0] == "London"
        assert names[-1] == "Rome"
        assert game.provinces[province_id(game, "Naples")].owner_id == bob
        assert all(game.provinces[pid].troops == 10 for pid in game.players[bob].provinces)

    def test_colors_follow_creation_order(self):
        state, _ = start_game(["A", "B", "C"])
        colors = [p.color for p in state.players.values()]
        assert colors == ["#FF6B6B", "#4ECDC4", "#45B7D1"]

    def test_eight_players(self):
        state, _ = start_game([f"Player {i}" for i in range(8)])
        assert all(len(p.provinces) == 3 for p in state.players.values())
        assert sum(1 for p in state.provinces.values() if p.owner_id is None) == 5
        assert check_invariants(state) == []

    def test_names_trimmed_and_blanks_dropped(self):
        state, _ = start_game(["  Alice ", "", "   ", "Bob"])
        assert [p.name for p in state.players.values()] == ["Alice", "Bob"]

    @pytest.mark.parametrize("names, reason", [
        (["Alice"], "At least 2"),
        (["Alice", "  "], "At least 2"),
        ([f"P{i}" for i in range(9)], "At most 8"),
        (["Alice", "alice"], "Duplicate"),
    ])
    def test_invalid_players(self, names, reason):
        assert_rejected(GameState(), initialize_game(names), reason)

    def test_already_started(self, game):
        assert_rejected(game, initialize_game(["Carol", "Dave"]), "already started")

    def test_unknown_map(self):
        with pytest.raises(NotFoundError) as excinfo:
            start_game(["Alice", "Bob"], map_id="atlantis")
        assert excinfo.value.entity == "Map"

    def test_unknown_action_type(self, game):
        with pytest.raises(ValueError, match="Unknown action type"):
            apply_action(game, Action(type="surrender", player_id=None, payload={}))


class TestClaimAndRecruit:

    def test_claim_neutral_province(self, game):
        alice, athens = player_id(game, "Alice"), province_id(game, "Athens")
        state, events = apply_action(game, claim_province(alice, athens))

        player = state.players[alice]
        assert player.resources.gold == 80
        assert state.provinces[athens].owner_id == alice
        assert state.provinces[athens].troops == 5
        assert player.total_troops == 145
        assert athens in player.provinces
        assert [e.type for e in events] == [RESOURCES_CHANGED, PROVINCE_CLAIMED]
        assert check_invariants(state) == []

    def test_input_state_not_mutated(self, game):
        before = game.copy()
        apply_action(game, claim_province(player_id(game, "Alice"), province_id(game, "Athens")))
        assert game == before

    def test_claim_owned_province(self, game):
        assert_rejected(
            game,
            claim_province(player_id(game, "Alice"), province_id(game, "Naples")),
            "already owned",
        )

    def test_claim_without_gold(self, game):
        alice = player_id(game, "Alice")
        game.players[alice].resources.gold = 19
        assert_rejected(game, claim_province(alice, province_id(game, "Athens")), "Insufficient gold")

    def test_claim_then_recruit(self, game):
        alice, athens = player_id(game, "Alice"), province_id(game, "Athens")
        state, _ = apply_action(game, claim_province(alice, athens))
        state, events = apply_action(state, recruit_troops(alice, athens, 4))

        player = state.players[alice]
        assert state.provinces[athens].troops == 9
        assert player.resources.gold == 80 - 40
        assert player.resources.food == 50 - 8
        assert player.total_troops == 149
        assert events[-1].type == TROOPS_RECRUITED
        assert events[-1].payload["cost"] == {"gold": 40, "food": 8}
        assert check_invariants(state) == []

    def test_recruit_into_other_players_province(self, game):
        assert_rejected(
            game,
            recruit_troops(player_id(game, "Alice"), province_id(game, "Naples"), 1),
            "not owned",
        )

    @pytest.mark.parametrize("amount", [0, -3])
    def test_recruit_non_positive(self, game, amount):
        assert_rejected(
            game,
            recruit_troops(player_id(game, "Alice"), province_id(game, "London"), amount),
            "at least one",
        )

    def test_recruit_without_food(self, game):
        alice = player_id(game, "Alice")
        game.players[alice].resources.food = 3
        assert_rejected(game, recruit_troops(alice, province_id(game, "London"), 2), "Insufficient food")

    def test_missing_ids_raise(self, game):
        before = game.copy()
        with pytest.raises(NotFoundError):
            apply_action(game, claim_province("ghost", province_id(game, "Athens")))
        with pytest.raises(NotFoundError):
            apply_action(game, recruit_troops(player_id(game, "Alice"), "nowhere", 1))
        assert game == before


class TestWars:

    def test_attacker_wins(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")

        state, war_id = declare(game, alice, bob, naples, 20)
        war = state.wars[war_id]
        assert war.is_ongoing
        assert war.troop_sources == {province_id(state, "London"): 10, province_id(state, "York"): 10}
        assert state.players[alice].total_troops == 120
        assert war_id in state.players[alice].wars
        assert war_id in state.players[bob].wars
        assert check_invariants(state) == []

        state, events = apply_action(state, resolve_war(war_id))
        assert [e.type for e in events] == [WAR_RESOLVED, PROVINCE_CAPTURED]
        assert events[0].payload["attacker_strength"] == pytest.approx(24.0)
        assert events[0].payload["defender_strength"] == pytest.approx(10.0)

        war = state.wars[war_id]
        assert war.status == WAR_STATUS_RESOLVED
        assert war.result == ATTACKER_WINS
        assert state.provinces[naples].owner_id == alice
        assert state.provinces[naples].troops == 10
        assert naples in state.players[alice].provinces
        assert naples not in state.players[bob].provinces
        assert state.players[alice].total_troops == 130
        assert state.players[bob].total_troops == 130
        assert check_invariants(state) == []

    def test_terrain_holds_the_line(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        game.provinces[naples].terrain_bonus = 1.2

        state, war_id = declare(game, alice, bob, naples, 10)
        state, events = apply_action(state, resolve_war(war_id))

        assert state.wars[war_id].result == DEFENDER_WINS
        assert events[0].payload["defender_strength"] == pytest.approx(12.0)
        assert state.provinces[naples].owner_id == bob
        assert state.provinces[naples].troops == 5
        assert state.players[bob].total_troops == 135
        assert state.players[alice].total_troops == 130
        assert check_invariants(state) == []

    def test_tie_goes_to_defender(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        state, war_id = declare(game, alice, bob, naples, 10)
        state, _ = apply_action(state, resolve_war(war_id))
        assert state.wars[war_id].result == DEFENDER_WINS
        assert state.provinces[naples].owner_id == bob

    def test_second_war_on_captured_province_reinforces(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        state, first = declare(game, alice, bob, naples, 20)
        state, second = declare(state, alice, bob, naples, 15)

        state, _ = apply_action(state, resolve_war(first))
        state, events = apply_action(state, resolve_war(second))

        assert events[0].payload["cause"] == "uncontested"
        assert state.wars[second].result == ATTACKER_WINS
        assert state.provinces[naples].troops == 25
        assert state.players[alice].total_troops == 130
        assert check_invariants(state) == []

    def test_defender_is_current_owner(self, three_player_game):
        state = three_player_game
        alice, bob, carol = (player_id(state, n) for n in ("Alice", "Bob", "Carol"))
        lisbon = province_id(state, "Lisbon")

        state, alice_war = declare(state, alice, bob, lisbon, 30)
        state, carol_war = declare(state, carol, bob, lisbon, 20)
        state, _ = apply_action(state, resolve_war(carol_war))
        assert state.provinces[lisbon].owner_id == carol

        state, events = apply_action(state, resolve_war(alice_war))
        captured = events[-1]
        assert captured.type == PROVINCE_CAPTURED
        assert captured.payload["old_owner"] == carol
        assert state.provinces[lisbon].owner_id == alice
        assert state.provinces[lisbon].troops == 20
        assert state.players[alice].total_troops == 80
        assert state.players[bob].total_troops == 80
        assert state.players[carol].total_troops == 70
        assert check_invariants(state) == []

    def test_resolve_twice(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        state, war_id = declare(game, alice, bob, province_id(game, "Naples"), 20)
        state, _ = apply_action(state, resolve_war(war_id))
        assert_rejected(state, resolve_war(war_id), "already resolved")

    def test_resolve_unknown_war(self, game):
        with pytest.raises(NotFoundError):
            apply_action(game, resolve_war("no-such-war"))

    def test_declare_rejections(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        assert_rejected(game, declare_war(alice, bob, naples, 0), "at least one")
        assert_rejected(game, declare_war(alice, alice, province_id(game, "London"), 5), "themselves")
        assert_rejected(game, declare_war(alice, bob, province_id(game, "Athens"), 5), "not owned")
        assert_rejected(game, declare_war(alice, bob, province_id(game, "London"), 5), "not owned")
        assert_rejected(game, declare_war(alice, bob, naples, 141), "Insufficient troops")

    def test_committing_everything(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        state, _ = declare(game, alice, bob, province_id(game, "Naples"), 140)
        assert state.players[alice].total_troops == 0
        assert all(state.provinces[pid].troops == 0 for pid in state.players[alice].provinces)
        assert check_invariants(state) == []


class TestAdvanceDay:

    def test_income_and_day(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        alice_income = get_daily_income(game, alice)
        bob_income = get_daily_income(game, bob)

        state, events = apply_action(game, advance_day())

        assert state.game_day == 2
        assert state.players[alice].resources.gold == 100 + alice_income["gold"]
        assert state.players[bob].resources.food == 50 + bob_income["food"]
        types = [e.type for e in events]
        assert types.count(INCOME_COLLECTED) == 2
        assert types[-2:] == [DAY_ADVANCED, POPE_ELECTED]
        assert state.last_update >= game.last_update

    def test_neutral_province_pays_nobody(self, game):
        state, events = apply_action(game, advance_day())
        athens = province_id(game, "Athens")
        for event in events:
            if event.type == INCOME_COLLECTED:
                assert athens not in event.payload["provinces"]

    def test_wars_resolved_after_income(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        bob_income = get_daily_income(game, bob)
        state, war_id = declare(game, alice, bob, naples, 20)

        state, events = apply_action(state, advance_day())

        assert state.wars[war_id].result == ATTACKER_WINS
        assert state.provinces[naples].owner_id == alice
        # Naples still paid Bob: income is collected before wars are fought
        assert state.players[bob].resources.gold == 100 + bob_income["gold"]
        types = [e.type for e in events]
        assert types.index(WAR_RESOLVED) > types.index(INCOME_COLLECTED)
        assert check_invariants(state) == []

    def test_pope_reelected(self, game):
        bob = player_id(game, "Bob")
        game.players[bob].resources.faith = 500
        game.papal_actions_used = 1

        state, events = apply_action(game, advance_day())

        assert get_current_pope(state) == bob
        assert state.current_pope_turn == bob
        assert state.papal_actions_used == 0
        assert events[-1].payload["changed"] is True
        assert check_invariants(state) == []


class TestElectPope:

    def test_idempotent(self, game):
        first, _ = apply_action(game, elect_pope())
        second, events = apply_action(first, elect_pope())
        assert get_current_pope(first) == get_current_pope(second)
        assert events[0].payload["changed"] is False

    def test_highest_faith_wins(self, three_player_game):
        state = three_player_game
        carol = player_id(state, "Carol")
        state.players[carol].resources.faith = 11
        state, _ = apply_action(state, elect_pope())
        assert [p.name for p in state.players.values() if p.is_pope] == ["Carol"]

    def test_election_resets_papal_counter(self, game):
        game.papal_actions_used = 1
        state, _ = apply_action(game, elect_pope())
        assert state.papal_actions_used == 0

    def test_no_players(self):
        state, events = apply_action(GameState(), elect_pope())
        assert events == []
        assert state.current_pope_turn is None


class TestAlliances:

    def test_form_and_break(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        state, events = apply_action(game, form_alliance(alice, bob, "  Holy League "))
        alliance_id = events[0].payload["alliance_id"]

        alliance = state.alliances[alliance_id]
        assert alliance.name == "Holy League"
        assert alliance.members == [alice, bob]
        assert state.players[alice].alliances == [alliance_id]
        assert state.players[bob].alliances == [alliance_id]
        assert check_invariants(state) == []

        state, events = apply_action(state, break_alliance(bob, alliance_id))
        assert events[0].type == ALLIANCE_DISSOLVED
        assert events[0].payload["reason"] == "broken"
        assert state.alliances == {}
        assert state.players[alice].alliances == []
        assert state.players[bob].alliances == []

    def test_self_alliance(self, game):
        alice = player_id(game, "Alice")
        assert_rejected(game, form_alliance(alice, alice, "Me"), "themselves")

    def test_break_unknown_alliance(self, game):
        with pytest.raises(NotFoundError):
            apply_action(game, break_alliance(player_id(game, "Alice"), "missing"))


class TestTrade:

    def test_transfer(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        game.players[alice].resources.gold = 50

        state, events = apply_action(game, create_trade_deal(alice, bob, {"gold": 30}, duration=3))

        assert state.players[alice].resources.gold == 20
        assert state.players[bob].resources.gold == 130
        assert events[-1].type == TRADE_COMPLETED
        deal = state.trade_deals[events[-1].payload["trade_id"]]
        assert deal.resources == {"gold": 30}
        assert deal.duration == 3
        assert deal.is_active
        assert deal.id in state.players[alice].trade_deals
        assert deal.id in state.players[bob].trade_deals

    def test_insufficient_funds(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        game.players[alice].resources.gold = 10
        assert_rejected(game, create_trade_deal(alice, bob, {"gold": 30}), "Insufficient")

    def test_multi_resource_bundle(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        state, _ = apply_action(game, create_trade_deal(bob, alice, {"food": 20, "faith": 4}))
        assert state.players[alice].resources.food == 70
        assert state.players[alice].resources.faith == 14
        assert state.players[bob].resources.faith == 6

    def test_bad_bundles(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        assert_rejected(game, create_trade_deal(alice, bob, {"silver": 5}), "Unknown resource")
        assert_rejected(game, create_trade_deal(alice, bob, {"gold": -5}), "negative")


class TestPapalActions:

    def test_ceasefire(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        naples = province_id(game, "Naples")
        state, war_id = declare(game, alice, bob, naples, 20)

        state, events = apply_action(state, use_papal_action(PAPAL_CEASEFIRE, target_player_ids=[bob]))

        assert [e.type for e in events] == [PAPAL_ACTION_USED, WAR_RESOLVED]
        assert events[0].payload["affected"] == [war_id]
        assert events[1].payload["cause"] == "ceasefire"
        war = state.wars[war_id]
        assert war.status == WAR_STATUS_RESOLVED
        assert war.result == DEFENDER_WINS
        assert state.provinces[naples].owner_id == bob
        assert state.provinces[naples].troops == 10
        # Committed troops are not returned
        assert state.players[alice].total_troops == 120
        assert check_invariants(state) == []

        state, events = apply_action(state, advance_day())
        assert WAR_RESOLVED not in [e.type for e in events]

    def test_double_resources(self, game):
        bob, naples = player_id(game, "Bob"), province_id(game, "Naples")
        yield_ = game.provinces[naples].resources.to_dict()

        state, events = apply_action(
            game, use_papal_action(PAPAL_DOUBLE_RESOURCES, target_province_id=naples))

        resources = state.players[bob].resources
        assert resources.gold == 100 + yield_["gold"]
        assert resources.food == 50 + yield_["food"]
        assert resources.faith == 10 + yield_["faith"]
        assert state.papal_actions_used == 1
        assert events[0].payload["affected"] == [naples]

    def test_double_resources_on_neutral_province_uses_action(self, game):
        athens = province_id(game, "Athens")
        state, events = apply_action(
            game, use_papal_action(PAPAL_DOUBLE_RESOURCES, target_province_id=athens))
        assert not is_rejected(events)
        assert state.papal_actions_used == 1
        assert events[0].payload["affected"] == []
        assert state.players == game.players

    def test_excommunicate_dissolves_pair(self, game):
        alice, bob = player_id(game, "Alice"), player_id(game, "Bob")
        state, events = apply_action(game, form_alliance(alice, bob, "Entente"))
        alliance_id = events[0].payload["alliance_id"]

        state, events = apply_action(state, use_papal_action(PAPAL_EXCOMMUNICATE, target_player_ids=[bob]))

        assert alliance_id not in state.alliances
        assert state.players[alice].alliances == []
        assert state.players[bob].alliances == []
        assert events[0].payload["affected"] == [alliance_id]
        assert events[1].type == ALLIANCE_DISSOLVED
        assert events[1].payload["reason"] == "excommunication"
        assert check_invariants(state) == []

    def test_excommunicate_leaves_larger_alliance_standing(self, three_player_game):
        state = three_player_game
        alice, bob, carol = (player_id(state, n) for n in ("Alice", "Bob", "Carol"))
        state, events = apply_action(state, form_alliance(alice, bob, "Triple Entente"))
        alliance_id = events[0].payload["alliance_id"]
        state.alliances[alliance_id].members.append(carol)
        state.players[carol].alliances.append(alliance_id)

        state, events = apply_action(state, use_papal_action(PAPAL_EXCOMMUNICATE, target_player_ids=[bob]))

        assert state.alliances[alliance_id].members == [alice, carol]
        assert state.players[bob].alliances == []
        assert state.players[alice].alliances == [alliance_id]
        assert [e.type for e in events] == [PAPAL_ACTION_USED]
        assert check_invariants(state) == []

    def test_bless_army_compounds(self, game):
        naples = province_id(game, "Naples")
        bless = use_papal_action(PAPAL_BLESS_ARMY, target_province_id=naples)

        state, _ = apply_action(game, bless)
        assert state.provinces[naples].terrain_bonus == pytest.approx(1.5)
        state, _ = apply_action(state, advance_day())
        state, _ = apply_action(state, bless)
        assert state.provinces[naples].terrain_bonus == pytest.approx(2.25)

    def test_once_per_day(self, game):
        naples = province_id(game, "Naples")
        bless = use_papal_action(PAPAL_BLESS_ARMY, target_province_id=naples)
        state, _ = apply_action(game, bless)
        assert_rejected(state, bless, "already acted")

        state, _ = apply_action(state, advance_day())
        state, events = apply_action(state, bless)
        assert not is_rejected(events)

    def test_unknown_type_does_not_use_action(self, game):
        assert_rejected(game, use_papal_action("crusade"), "Unknown papal action")
        assert game.papal_actions_used == 0

    def test_no_pope(self):
        assert_rejected(GameState(), use_papal_action(PAPAL_BLESS_ARMY), "no Pope")

    def test_missing_target(self, game):
        with pytest.raises(NotFoundError):
            apply_action(game, use_papal_action(PAPAL_EXCOMMUNICATE, target_player_ids=["ghost"]))
        with pytest.raises(NotFoundError):
            apply_action(game, use_papal_action(PAPAL_BLESS_ARMY, target_province_id="nowhere"))


class TestInvariants:

    def test_long_sequence_stays_consistent(self, three_player_game):
        state = three_player_game
        alice, bob, carol = (player_id(state, n) for n in ("Alice", "Bob", "Carol"))
        actions = [
            claim_province(alice, province_id(state, "Athens")),
            claim_province(bob, province_id(state, "Thessalonica")),
            recruit_troops(alice, province_id(state, "Athens"), 3),
            declare_war(carol, bob, province_id(state, "Thessalonica"), 25),
            declare_war(bob, alice, province_id(state, "London"), 8),
            form_alliance(alice, carol, "Western Pact"),
            create_trade_deal(carol, alice, {"gold": 15}),
            use_papal_action(PAPAL_BLESS_ARMY, target_province_id=province_id(state, "Rome")),
            advance_day(),
            declare_war(alice, bob, province_id(state, "Lisbon"), 40),
            use_papal_action(PAPAL_CEASEFIRE, target_player_ids=[bob]),
            advance_day(),
            elect_pope(),
        ]
        for action in actions:
            state, events = apply_action(state, action)
            assert check_invariants(state) == [], (action.type, events)
        assert state.game_day == 3
