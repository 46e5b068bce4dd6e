"""End-to-end tests for session lifecycle over the in-memory store."""

import asyncio
import random

import pytest

from memorymatch import match
from memorymatch.config import Settings
from memorymatch.deck import deck_from_symbols
from memorymatch.document import Outcome, Role, SessionStatus, TimerMode
from memorymatch.errors import (
    ActionNotAllowed,
    AlreadyStarted,
    SessionFull,
    SessionNotFound,
    StoreUnavailable,
)
from memorymatch.events import EventType
from memorymatch.opponent import DifficultyProfile, ScriptedOpponent
from memorymatch.session import SessionManager
from memorymatch.store import InMemoryDocumentStore
from memorymatch.view import EMPTY_VIEW

FAST = Settings(reveal_delay=0.0)
PEER_DECK = ["🍎", "🍊", "🍋", "🍋", "🍎", "🍊", "🍇", "🍇"]
TINY_DECK = ["🍎", "🍎", "🍊", "🍊"]
SOLO_DECK = [emoji for emoji in "🐶🐱🐭🐹🐰🦊🐻🐼" for _ in range(2)]


def fixed_deck(symbols):
    return lambda board_size: deck_from_symbols(symbols)


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


async def remote_pair(store, settings=FAST, deck=PEER_DECK):
    host = SessionManager(store, settings, client_id="host", deck_factory=fixed_deck(deck))
    guest = SessionManager(store, settings, client_id="guest", deck_factory=fixed_deck(deck))
    code = await host.create_session()
    await guest.join_session(code)
    await guest.set_ready()
    await host.start_game()
    await wait_for(lambda: guest.document.status is SessionStatus.PLAYING)
    return host, guest, code


def test_solo_game_clears_the_board():
    async def scenario():
        manager = SessionManager(InMemoryDocumentStore(), FAST, deck_factory=fixed_deck(SOLO_DECK))
        await manager.start_solo(4)
        for pair in range(8):
            assert await manager.flip(2 * pair)
            assert await manager.flip(2 * pair + 1)
            await wait_for(lambda: manager.document.moves == pair + 1)

        view = manager.view()
        assert view.status == "ended"
        assert len(view.matched_pair_ids) == 8
        assert view.moves == 8
        assert view.winner == "host"
        assert EventType.GAME_WON in manager.events.types()
        manager.close()

    asyncio.run(scenario())


def test_mismatch_then_match_between_peers():
    async def scenario():
        host, guest, _ = await remote_pair(InMemoryDocumentStore())

        assert await host.flip(0)
        assert guest.view().cards[0]["emoji"] == "🍎"
        assert guest.view().cards[2]["emoji"] is None
        assert await host.flip(1)
        await wait_for(lambda: guest.document.current_turn is Role.GUEST)
        assert guest.document.flipped_cards == []
        assert guest.document.scores.host == guest.document.scores.guest == 0
        assert EventType.MISMATCH in host.events.types()
        assert EventType.MISMATCH in guest.events.types()

        assert await guest.flip(2)
        assert await guest.flip(3)
        await wait_for(lambda: host.document.scores.guest == 1)
        assert host.document.cards[2].matched and host.document.cards[3].matched
        assert host.document.current_turn is Role.GUEST
        assert guest.view().is_local_turn

        host.close()
        guest.close()

    asyncio.run(scenario())


def test_out_of_turn_and_repeat_flips_are_ignored():
    async def scenario():
        host, guest, _ = await remote_pair(InMemoryDocumentStore())
        assert not await guest.flip(0)
        assert await host.flip(0)
        assert not await host.flip(0)
        assert not await host.flip(99)
        assert host.document.flipped_cards == [0]
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_host_disconnect_closes_guest_session():
    async def scenario():
        store = InMemoryDocumentStore()
        host = SessionManager(store, FAST, client_id="host")
        guest = SessionManager(store, FAST, client_id="guest")
        code = await host.create_session()
        await guest.join_session(code)

        host.close()
        await store.disconnect("host")

        assert await store.read(f"rooms/{code}") is None
        assert guest.context is None
        assert guest.view() is EMPTY_VIEW
        assert EventType.SESSION_CLOSED in guest.events.types()

    asyncio.run(scenario())


def test_guest_disconnect_frees_the_slot():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, code = await remote_pair(store)

        guest.close()
        await store.disconnect("guest")

        assert host.document.guest is None
        assert host.document.status is SessionStatus.WAITING
        assert host.document.presence.guest is False
        assert EventType.OPPONENT_LEFT in host.events.types()
        host.close()

    asyncio.run(scenario())


def test_join_errors():
    async def scenario():
        store = InMemoryDocumentStore()
        host = SessionManager(store, FAST, client_id="host")
        code = await host.create_session()
        assert len(code) == 5 and code.isdigit()

        with pytest.raises(SessionNotFound):
            await SessionManager(store, FAST).join_session("00000")

        await SessionManager(store, FAST, client_id="guest").join_session(code)
        with pytest.raises(SessionFull):
            await SessionManager(store, FAST).join_session(code)

        other = SessionManager(store, FAST, client_id="host-2")
        other_code = await other.create_session()
        await store.update(f"rooms/{other_code}", {"status": "ended"})
        with pytest.raises(AlreadyStarted):
            await SessionManager(store, FAST).join_session(other_code)

    asyncio.run(scenario())


def test_room_codes_avoid_collisions():
    async def scenario():
        store = InMemoryDocumentStore()
        first = await SessionManager(store, FAST, rng=random.Random(0)).create_session()
        second = await SessionManager(store, FAST, rng=random.Random(0)).create_session()
        assert first != second

        crowded = Settings(reveal_delay=0.0, code_attempts=1)
        with pytest.raises(StoreUnavailable):
            await SessionManager(store, crowded, rng=random.Random(0)).create_session()

    asyncio.run(scenario())


def test_lobby_rules():
    async def scenario():
        store = InMemoryDocumentStore()
        host = SessionManager(store, FAST, client_id="host", rng=random.Random(4))
        guest = SessionManager(store, FAST, client_id="guest")

        await host.create_session()
        with pytest.raises(ActionNotAllowed):
            await host.create_session()
        with pytest.raises(ActionNotAllowed):
            await host.start_game()

        await guest.join_session(host.code)
        assert EventType.OPPONENT_JOINED in host.events.types()
        with pytest.raises(ActionNotAllowed):
            await host.start_game()
        with pytest.raises(ActionNotAllowed):
            await guest.start_game()
        with pytest.raises(ActionNotAllowed):
            await guest.set_board_size(6)
        with pytest.raises(ValueError):
            await host.set_board_size(5)

        await host.set_board_size(6)
        await guest.set_ready()
        assert host.view().opponent_ready
        await host.start_game()
        assert len(guest.document.cards) == 36
        assert guest.document.board_size == 6
        with pytest.raises(ActionNotAllowed):
            await host.set_board_size(4)
        host.close()
        guest.close()

    asyncio.run(scenario())


async def _finish_tiny_game(host, guest):
    await host.flip(0)
    await host.flip(1)
    await wait_for(lambda: host.document.moves == 1)
    await host.flip(2)
    await host.flip(3)
    await wait_for(lambda: guest.document.status is SessionStatus.ENDED)


def test_rematch_starts_a_fresh_game():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, _ = await remote_pair(store, deck=TINY_DECK)
        await _finish_tiny_game(host, guest)
        assert guest.document.winner is Outcome.HOST
        assert EventType.GAME_LOST in guest.events.types()

        await host.request_rematch()
        assert EventType.REMATCH_REQUESTED in guest.events.types()
        assert host.document.status is SessionStatus.ENDED
        await guest.request_rematch()

        await wait_for(lambda: guest.document.status is SessionStatus.PLAYING)
        document = guest.document
        assert document.scores.host == document.scores.guest == 0
        assert document.moves == 0
        assert document.winner is None
        assert not any(card.matched for card in document.cards)
        assert guest.events.types().count(EventType.GAME_STARTED) == 2
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_return_to_lobby_requires_ready_again():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, _ = await remote_pair(store, deck=TINY_DECK)
        await _finish_tiny_game(host, guest)

        await host.request_rematch()
        await guest.request_return_to_lobby()
        await host.request_return_to_lobby()
        await wait_for(lambda: guest.document.status is SessionStatus.READY)

        assert guest.document.guest.ready is False
        assert guest.document.cards == []
        with pytest.raises(ActionNotAllowed):
            await host.start_game()
        await guest.set_ready()
        await host.start_game()
        assert guest.document.status is SessionStatus.PLAYING
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_leaving_cleans_up():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, code = await remote_pair(store)
        path = f"rooms/{code}"

        await guest.leave_session()
        assert guest.context is None
        assert host.document.guest is None
        assert host.document.status is SessionStatus.WAITING
        assert store.listener_count(path) == 1

        late = SessionManager(store, FAST, client_id="late")
        await late.join_session(code)
        await host.leave_session()
        assert await store.read(path) is None
        assert late.context is None
        assert EventType.SESSION_CLOSED in late.events.types()
        assert store.listener_count(path) == 0

        # Graceful leaves disarm the disconnect hooks.
        await store.disconnect("guest")
        await store.disconnect("host")

    asyncio.run(scenario())


def test_turn_timer_hands_over_an_idle_turn():
    async def scenario():
        settings = Settings(reveal_delay=0.0, turn_seconds=3, tick_interval=0.005)
        host, guest, _ = await remote_pair(InMemoryDocumentStore(), settings)
        await host.flip(0)

        await wait_for(lambda: guest.document.current_turn is Role.GUEST)
        assert guest.document.flipped_cards == []
        assert EventType.TIMER_WARNING in host.events.types()

        await wait_for(lambda: host.document.current_turn is Role.HOST)
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_game_clock_ends_the_game():
    async def scenario():
        settings = Settings(
            reveal_delay=0.0,
            timer_mode=TimerMode.GAME,
            game_seconds=20,
            tick_interval=0.005,
        )
        host, guest, _ = await remote_pair(InMemoryDocumentStore(), settings)
        assert host.document.time_remaining == 20
        await host.flip(2)
        await host.flip(3)

        await wait_for(lambda: guest.document.status is SessionStatus.ENDED)
        assert guest.document.time_remaining == 0
        assert guest.document.winner is Outcome.HOST
        assert EventType.GAME_WON in host.events.types()
        assert EventType.GAME_LOST in guest.events.types()
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_scripted_opponent_plays_the_guest_role():
    async def scenario():
        perfect = DifficultyProfile(memory_rate=1.0, thinking_time=0.0, mistake_rate=0.0)
        manager = SessionManager(
            InMemoryDocumentStore(),
            FAST,
            rng=random.Random(9),
            opponent_factory=lambda difficulty: ScriptedOpponent(profile=perfect, rng=random.Random(1)),
        )
        await manager.start_scripted(4)
        assert manager.document.guest is not None

        async def play_until_over():
            while manager.document.status is not SessionStatus.ENDED:
                document = manager.document
                if document.current_turn is Role.HOST and not document.flipped_cards:
                    available = match.available_indices(document)
                    await manager.flip(available[0])
                    await manager.flip(available[1])
                await asyncio.sleep(0.001)

        await asyncio.wait_for(play_until_over(), timeout=5.0)
        document = manager.document
        assert document.scores.total == 8
        flips_by = {event.payload["by"] for event in manager.events.history if event.event_type is EventType.CARD_FLIPPED}
        assert flips_by == {"host", "guest"}

        await manager.request_rematch()
        await wait_for(lambda: manager.document.status is SessionStatus.PLAYING)
        manager.close()

    asyncio.run(scenario())


def test_solo_rematch_and_lobby_exit():
    async def scenario():
        manager = SessionManager(InMemoryDocumentStore(), FAST, deck_factory=fixed_deck(TINY_DECK))
        await manager.start_solo(2)
        await manager.flip(0)
        await manager.flip(2)
        await wait_for(lambda: manager.document.moves == 1)
        assert manager.document.current_turn is Role.HOST
        await manager.flip(0)
        await manager.flip(1)
        await wait_for(lambda: manager.document.moves == 2)
        await manager.flip(2)
        await manager.flip(3)
        await wait_for(lambda: manager.document.status is SessionStatus.ENDED)

        await manager.request_rematch()
        await wait_for(lambda: manager.document.status is SessionStatus.PLAYING)
        assert manager.document.moves == 0

        await manager.request_return_to_lobby()
        assert manager.context is None

    asyncio.run(scenario())


def test_store_outage_surfaces_as_error_event():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, _ = await remote_pair(store)
        await host.flip(0)
        await host.flip(1)
        store.available = False

        await wait_for(lambda: EventType.STORE_ERROR in host.events.types())
        with pytest.raises(StoreUnavailable):
            await host.flip(2)
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_stale_read_flip_is_overwritten_and_converges():
    async def scenario():
        store = InMemoryDocumentStore()
        host, guest, code = await remote_pair(store)
        path = f"rooms/{code}"
        stale = await store.read(path)
        assert await host.flip(0)

        original_read = store.read

        async def stale_read(target):
            store.read = original_read
            return stale

        store.read = stale_read
        # Both flips validated against an empty flippedCards; last write wins.
        assert await host.flip(1)
        assert host.document.flipped_cards == [1]
        assert guest.document.flipped_cards == [1]
        assert await host.flip(4)
        await wait_for(lambda: guest.document.current_turn is Role.GUEST)
        host.close()
        guest.close()

    asyncio.run(scenario())


def test_closed_session_hooks_spare_a_reused_code():
    async def scenario():
        store = InMemoryDocumentStore()
        host = SessionManager(store, FAST, client_id="host", rng=random.Random(0))
        guest = SessionManager(store, FAST, client_id="guest")
        code = await host.create_session()
        await guest.join_session(code)

        await host.leave_session()
        assert guest.context is None
        assert store.disconnect_action_count("guest") == 0

        new_host = SessionManager(store, FAST, client_id="host-2", rng=random.Random(0))
        assert await new_host.create_session() == code
        await SessionManager(store, FAST, client_id="guest-2").join_session(code)

        await store.disconnect("guest")
        assert new_host.document.guest.id == "guest-2"
        assert new_host.document.status is SessionStatus.READY

        # The closed guest can host again once its old hooks are gone.
        assert await guest.create_session() != code
        assert store.disconnect_action_count("guest") == 2
        new_host.close()
        guest.close()

    asyncio.run(scenario())


def test_guest_mirrors_game_clock_warnings():
    async def scenario():
        settings = Settings(
            reveal_delay=0.0,
            timer_mode=TimerMode.GAME,
            game_seconds=5,
            game_warning_seconds=3,
            tick_interval=0.005,
        )
        host, guest, _ = await remote_pair(InMemoryDocumentStore(), settings)
        await wait_for(lambda: guest.document.status is SessionStatus.ENDED)

        host_warnings = [e for e in host.events.history if e.event_type is EventType.TIMER_WARNING]
        guest_warnings = [e for e in guest.events.history if e.event_type is EventType.TIMER_WARNING]
        assert [e.payload["secondsRemaining"] for e in guest_warnings] == [3, 2, 1, 0]
        assert len(host_warnings) == len(guest_warnings)
        host.close()
        guest.close()

    asyncio.run(scenario())
