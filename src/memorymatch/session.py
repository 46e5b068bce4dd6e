"""Session lifecycle and move orchestration for one party."""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, List, Optional, Set

from . import match
from .config import Settings
from .deck import generate_deck, pairs_for
from .document import (
    Card,
    Mode,
    PartyFlags,
    PartySlot,
    Role,
    SessionDocument,
    SessionStatus,
    TimerMode,
    decode,
    encode,
)
from .errors import (
    ActionNotAllowed,
    AlreadyStarted,
    DocumentDecodeError,
    DocumentExists,
    DocumentNotFound,
    InvalidMove,
    SessionClosed,
    SessionFull,
    SessionNotFound,
    StoreUnavailable,
)
from .events import EventStream, EventType, GameEvent
from .opponent import ScriptedOpponent
from .store import DocumentStore, InMemoryDocumentStore
from .timers import Countdown
from .view import EMPTY_VIEW, ViewModel, build_view

logger = logging.getLogger(__name__)

ROOMS = "rooms"
ROOM_CODE_RANGE = (10000, 99999)
LOCAL_CODE = "local"
SCRIPTED_CLIENT_ID = "scripted-opponent"

DeckFactory = Callable[[int], List[Card]]
OpponentFactory = Callable[[str], ScriptedOpponent]


@dataclass
class SessionContext:
    """Everything one party holds for the room it is in."""

    code: str
    role: Role
    mode: Mode
    store: DocumentStore
    document: Optional[SessionDocument] = None
    opponent: Optional[ScriptedOpponent] = None
    unsubscribers: List[Callable[[], None]] = field(default_factory=list)
    turn_timer: Optional[Countdown] = None
    game_clock: Optional[Countdown] = None
    tasks: Set[asyncio.Task] = field(default_factory=set, repr=False)
    opponent_task: Optional[asyncio.Task] = field(default=None, repr=False)
    rematch_pending: bool = False
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    closed: bool = False

    @property
    def path(self) -> str:
        return f"{ROOMS}/{self.code}"

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=f"{name}-{self.code}")
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def stop_timers(self) -> None:
        for timer in (self.turn_timer, self.game_clock):
            if timer is not None:
                timer.cancel()

    def teardown(self) -> None:
        """Drop subscriptions, timers and in-flight tasks; never touches the store."""
        self.closed = True
        for unsubscribe in self.unsubscribers:
            unsubscribe()
        self.unsubscribers.clear()
        self.stop_timers()
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self.tasks):
            if task is not current:
                task.cancel()
        self.tasks.clear()


class SessionManager:
    """One party's side of a room: intents in, events and view models out.

    Lifecycle intents raise ``MemoryMatchError`` subclasses to the caller.
    Flips that break the turn rules are ignored and return ``False``.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        *,
        client_id: Optional[str] = None,
        rng: Optional[random.Random] = None,
        deck_factory: Optional[DeckFactory] = None,
        opponent_factory: Optional[OpponentFactory] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.client_id = client_id or uuid.uuid4().hex
        self.rng = rng or random.Random()
        self.events = EventStream()
        self.context: Optional[SessionContext] = None
        self._disarming: Optional[asyncio.Task] = None
        self._deck_factory = deck_factory or (lambda size: generate_deck(size, self.rng))
        self._opponent_factory = opponent_factory or (
            lambda difficulty: ScriptedOpponent.for_difficulty(
                difficulty, rng=random.Random(self.rng.random())
            )
        )

    # ---- accessors ----

    @property
    def code(self) -> Optional[str]:
        return self.context.code if self.context else None

    @property
    def role(self) -> Optional[Role]:
        return self.context.role if self.context else None

    @property
    def document(self) -> Optional[SessionDocument]:
        return self.context.document if self.context else None

    def view(self) -> ViewModel:
        ctx = self.context
        if ctx is None or ctx.document is None:
            return EMPTY_VIEW
        return build_view(
            ctx.document,
            code=ctx.code,
            role=ctx.role,
            seconds_remaining=self._seconds_remaining(ctx),
            elapsed_seconds=self._elapsed_seconds(ctx),
        )

    # ---- lifecycle ----

    async def create_session(self) -> str:
        """Host a new remote room and return its five-digit code."""
        self._ensure_idle()
        await self._settle_disarm()
        low, high = ROOM_CODE_RANGE
        for _ in range(self.settings.code_attempts):
            code = str(self.rng.randint(low, high))
            path = f"{ROOMS}/{code}"
            if await self.store.read(path) is not None:
                continue
            document = SessionDocument(
                host=PartySlot(id=self.client_id, ready=True),
                status=SessionStatus.WAITING,
                mode=Mode.REMOTE,
                timer_mode=self.settings.timer_mode,
                board_size=self.settings.board_size,
                presence=PartyFlags(host=True),
                created_at=time.time(),
            )
            try:
                await self.store.create(path, encode(document))
            except DocumentExists:
                continue
            break
        else:
            raise StoreUnavailable("Unable to allocate a room code")

        await self.store.on_disconnect(self.client_id, f"{path}/presence/host", False)
        await self.store.on_disconnect(self.client_id, path, None)
        self._attach(SessionContext(code=code, role=Role.HOST, mode=Mode.REMOTE, store=self.store))
        logger.info("[room-create] code=%s host=%s", code, self.client_id)
        return code

    async def join_session(self, code: str) -> SessionDocument:
        """Claim the guest slot of a waiting room."""
        self._ensure_idle()
        await self._settle_disarm()
        code = code.strip()
        path = f"{ROOMS}/{code}"

        def claim(raw):
            document = decode(raw)
            if document is None:
                raise SessionNotFound(code)
            if document.guest is not None:
                raise SessionFull(code)
            if document.status is not SessionStatus.WAITING:
                raise AlreadyStarted(code)
            claimed = document.model_copy(
                update={
                    "guest": PartySlot(id=self.client_id, ready=False),
                    "status": SessionStatus.READY,
                    "presence": document.presence.model_copy(update={"guest": True}),
                }
            )
            return encode(claimed)

        raw = await self.store.transaction(path, claim)
        await self.store.on_disconnect(self.client_id, f"{path}/presence/guest", False)
        await self.store.on_disconnect(self.client_id, f"{path}/guest", None)
        await self.store.on_disconnect(self.client_id, f"{path}/status", SessionStatus.WAITING.value)
        self._attach(SessionContext(code=code, role=Role.GUEST, mode=Mode.REMOTE, store=self.store))
        logger.info("[room-join] code=%s guest=%s", code, self.client_id)
        return decode(raw)

    async def leave_session(self) -> None:
        """Host leaving deletes the room; guest leaving frees the guest slot."""
        ctx = self.context
        if ctx is None:
            return
        self._detach(ctx)
        logger.info("[room-leave] code=%s role=%s", ctx.code, ctx.role.value)
        self.events.emit(GameEvent.create(EventType.STATE_CHANGED, **EMPTY_VIEW.to_dict()))
        if ctx.mode is not Mode.REMOTE:
            return
        try:
            if ctx.role is Role.HOST:
                await self.store.delete(ctx.path)
            else:
                await self.store.update(
                    ctx.path,
                    {
                        "guest": None,
                        "status": SessionStatus.WAITING.value,
                        "presence/guest": False,
                    },
                )
        except DocumentNotFound:
            logger.debug("[room-leave] code=%s already gone", ctx.code)
        await self.store.cancel_on_disconnect(self.client_id)

    def close(self) -> None:
        """Tear down locally without writing, as when the process goes away."""
        if self.context is not None:
            self._detach(self.context)

    async def set_board_size(self, board_size: int) -> None:
        ctx = self._require_context()
        if ctx.role is not Role.HOST:
            raise ActionNotAllowed("Only the host can change the board size")
        pairs_for(board_size)
        document = await self._read(ctx)
        if document.status not in (SessionStatus.WAITING, SessionStatus.READY):
            raise ActionNotAllowed("The board size is fixed once the game starts")
        await self._write(ctx, {"boardSize": board_size})

    async def set_ready(self, ready: bool = True) -> None:
        ctx = self._require_context()
        if ctx.role is not Role.GUEST:
            raise ActionNotAllowed("Only the guest can toggle ready")
        document = await self._read(ctx)
        if document.status is not SessionStatus.READY:
            raise ActionNotAllowed("Ready can only be toggled in the lobby")
        await self._write(ctx, {"guest/ready": ready})

    async def start_game(self, board_size: Optional[int] = None) -> None:
        ctx = self._require_context()
        if ctx.role is not Role.HOST:
            raise ActionNotAllowed("Only the host can start the game")
        document = await self._read(ctx)
        if document.status is not SessionStatus.READY or document.guest is None:
            raise ActionNotAllowed("Waiting for a guest to join")
        if not document.guest.ready:
            raise ActionNotAllowed("Waiting for the guest to get ready")
        cards = self._deck_factory(board_size or document.board_size)
        await self._write(ctx, match.start_updates(cards, self._time_budget(document)))
        logger.info("[game-start] code=%s pairs=%d", ctx.code, len(cards) // 2)

    async def start_solo(self, board_size: Optional[int] = None) -> None:
        await self._start_local(Mode.NONE, board_size)

    async def start_scripted(self, board_size: Optional[int] = None, difficulty: Optional[str] = None) -> None:
        opponent = self._opponent_factory(difficulty or self.settings.difficulty)
        await self._start_local(Mode.SCRIPTED, board_size, opponent)

    async def request_rematch(self) -> None:
        ctx = self._require_context()
        document = await self._read(ctx)
        if document.status is not SessionStatus.ENDED:
            raise ActionNotAllowed("The game has not ended")
        updates = match.confirmation_updates(ctx.role, play_again=True)
        if ctx.mode is Mode.SCRIPTED:
            updates.update(match.confirmation_updates(Role.GUEST, play_again=True))
        await self._write(ctx, updates)

    async def request_return_to_lobby(self) -> None:
        ctx = self._require_context()
        if ctx.mode is not Mode.REMOTE:
            await self.leave_session()
            return
        document = await self._read(ctx)
        if document.status is not SessionStatus.ENDED:
            raise ActionNotAllowed("The game has not ended")
        await self._write(ctx, match.confirmation_updates(ctx.role, play_again=False))

    # ---- moves ----

    async def flip(self, index: int) -> bool:
        ctx = self._require_context()
        return await self._flip_as(ctx, ctx.role, index)

    async def _flip_as(self, ctx: SessionContext, role: Role, index: int) -> bool:
        document = await self._read(ctx)
        try:
            updates = match.flip_updates(document, role, index)
        except InvalidMove as exc:
            logger.debug("[flip-ignored] code=%s role=%s index=%s reason=%s", ctx.code, role.value, index, exc.reason)
            return False
        await self._write(ctx, updates)
        flipped = updates["flippedCards"]
        if len(flipped) == 2:
            ctx.spawn(self._resolve_after_reveal(ctx, role, list(flipped)), name="resolve")
        return True

    async def _resolve_after_reveal(self, ctx: SessionContext, role: Role, pair: List[int]) -> None:
        await asyncio.sleep(self.settings.reveal_delay)
        try:
            document = await self._read(ctx)
            # Somebody else moved the game on (timeout, leave): nothing to resolve.
            if document.flipped_cards != pair or document.current_turn is not role:
                logger.info("[resolve-stale] code=%s role=%s pair=%s", ctx.code, role.value, pair)
                return
            resolution = match.resolve_pair(document, role, time.time())
            await self._write(ctx, resolution.updates)
        except InvalidMove as exc:
            logger.debug("[resolve-ignored] code=%s reason=%s", ctx.code, exc.reason)
            return
        except SessionClosed:
            return
        except StoreUnavailable as exc:
            self._report(ctx, exc)
            return

        logger.info(
            "[resolve] code=%s role=%s pair=%s match=%s ended=%s",
            ctx.code, role.value, pair, resolution.matched, resolution.ended,
        )
        if not resolution.matched and role is ctx.role:
            self.events.emit(GameEvent.create(EventType.MISMATCH, cards=pair, by=role.value))

    async def _play_scripted_turn(self, ctx: SessionContext) -> None:
        opponent = ctx.opponent
        try:
            await asyncio.sleep(opponent.think_delay())
            document = await self._read(ctx)
            if not _opponent_may_act(document):
                return
            first = opponent.choose_first_card(match.available_indices(document))
            if not await self._flip_as(ctx, Role.GUEST, first):
                return

            await asyncio.sleep(opponent.think_delay())
            document = await self._read(ctx)
            # The human's turn may have begun while the opponent was thinking.
            if not _opponent_may_act(document) or document.flipped_cards != [first]:
                logger.info("[opponent-abort] code=%s first=%s", ctx.code, first)
                return
            second = opponent.choose_second_card(
                first, match.available_indices(document), document.cards[first].emoji
            )
            await self._flip_as(ctx, Role.GUEST, second)
        except SessionClosed:
            return
        except StoreUnavailable as exc:
            self._report(ctx, exc)

    # ---- timers ----

    def _start_timers(self, ctx: SessionContext) -> None:
        ctx.stop_timers()
        document = ctx.document
        if ctx.mode is not Mode.REMOTE or document is None:
            return
        interval = self.settings.tick_interval
        if document.timer_mode is TimerMode.TURN:
            ctx.turn_timer = Countdown(
                self.settings.turn_seconds,
                partial(self._on_turn_tick, ctx),
                partial(self._on_turn_expired, ctx),
                interval=interval,
                name="turn-timer",
            )
            ctx.turn_timer.start()
        elif ctx.role is Role.HOST:
            ctx.game_clock = Countdown(
                document.time_remaining or self.settings.game_seconds,
                partial(self._on_clock_tick, ctx),
                partial(self._on_clock_expired, ctx),
                interval=interval,
                name="game-clock",
            )
            ctx.game_clock.start()

    async def _on_turn_tick(self, ctx: SessionContext, remaining: int) -> None:
        if remaining <= self.settings.turn_warning_seconds:
            self.events.emit(GameEvent.create(EventType.TIMER_WARNING, secondsRemaining=remaining))
        self._emit_state(ctx)

    async def _on_turn_expired(self, ctx: SessionContext) -> None:
        # Only the party whose turn ran out acts on it.
        try:
            document = await self._read(ctx)
            if document.status is not SessionStatus.PLAYING or document.current_turn is not ctx.role:
                return
            logger.info("[turn-timeout] code=%s role=%s", ctx.code, ctx.role.value)
            await self._write(ctx, match.timeout_updates(document, ctx.role))
        except (InvalidMove, SessionClosed):
            return
        except StoreUnavailable as exc:
            self._report(ctx, exc)

    async def _on_clock_tick(self, ctx: SessionContext, remaining: int) -> None:
        if remaining <= self.settings.game_warning_seconds:
            self.events.emit(GameEvent.create(EventType.TIMER_WARNING, secondsRemaining=remaining))
        try:
            await self._write(ctx, {"timeRemaining": remaining})
        except SessionClosed:
            return
        except StoreUnavailable as exc:
            self._report(ctx, exc)

    async def _on_clock_expired(self, ctx: SessionContext) -> None:
        try:
            document = await self._read(ctx)
            if document.status is not SessionStatus.PLAYING:
                return
            logger.info("[time-up] code=%s scores=%s", ctx.code, document.scores.model_dump())
            await self._write(ctx, match.time_up_updates(document))
        except (InvalidMove, SessionClosed):
            return
        except StoreUnavailable as exc:
            self._report(ctx, exc)

    # ---- host-only negotiation ----

    async def _restart(self, ctx: SessionContext) -> None:
        try:
            document = await self._read(ctx)
            if document.status is not SessionStatus.ENDED or not match.rematch_agreed(document):
                ctx.rematch_pending = False
                return
            cards = self._deck_factory(document.board_size)
            await self._write(ctx, match.start_updates(cards, self._time_budget(document)))
            logger.info("[rematch] code=%s", ctx.code)
        except SessionClosed:
            return
        except StoreUnavailable as exc:
            ctx.rematch_pending = False
            self._report(ctx, exc)

    async def _back_to_lobby(self, ctx: SessionContext) -> None:
        try:
            document = await self._read(ctx)
            if document.status is not SessionStatus.ENDED or not match.lobby_agreed(document):
                ctx.rematch_pending = False
                return
            await self._write(ctx, match.lobby_updates(document))
            logger.info("[lobby-return] code=%s", ctx.code)
        except SessionClosed:
            return
        except StoreUnavailable as exc:
            ctx.rematch_pending = False
            self._report(ctx, exc)

    # ---- snapshot handling ----

    def _attach(self, ctx: SessionContext) -> None:
        self.context = ctx
        ctx.unsubscribers.append(ctx.store.subscribe(ctx.path, partial(self._on_snapshot, ctx)))

    def _detach(self, ctx: SessionContext) -> None:
        ctx.teardown()
        if self.context is ctx:
            self.context = None

    def _on_snapshot(self, ctx: SessionContext, raw) -> None:
        if ctx.closed or ctx is not self.context:
            return
        if raw is None:
            self._detach(ctx)
            logger.info("[session-closed] code=%s role=%s", ctx.code, ctx.role.value)
            if ctx.mode is Mode.REMOTE:
                # Hooks armed for this room must not outlive it.
                self._disarming = asyncio.get_running_loop().create_task(
                    ctx.store.cancel_on_disconnect(self.client_id), name=f"disarm-{ctx.code}"
                )
            self.events.emit(GameEvent.create(EventType.SESSION_CLOSED, code=ctx.code))
            self.events.emit(GameEvent.create(EventType.STATE_CHANGED, **EMPTY_VIEW.to_dict()))
            return
        try:
            document = decode(raw)
        except DocumentDecodeError as exc:
            # Keep the last good snapshot; the next write will resync us.
            self._report(ctx, exc)
            return

        previous, ctx.document = ctx.document, document
        self._announce_lifecycle(ctx, previous, document)
        self._mirror_clock(ctx, previous, document)
        for event in match.reconcile(previous, document, ctx.role):
            self._apply(ctx, event)
            self.events.emit(event)
        self._drive(ctx, document)
        self._emit_state(ctx)

    def _announce_lifecycle(
        self, ctx: SessionContext, previous: Optional[SessionDocument], document: SessionDocument
    ) -> None:
        if previous is None:
            return
        other = ctx.role.other
        if ctx.mode is Mode.REMOTE:
            had, has = previous.party(other) is not None, document.party(other) is not None
            if has and not had:
                self.events.emit(GameEvent.create(EventType.OPPONENT_JOINED, role=other.value))
            elif had and not has:
                self.events.emit(GameEvent.create(EventType.OPPONENT_LEFT, role=other.value))
            if (
                document.status is SessionStatus.ENDED
                and document.play_again.of(other)
                and not previous.play_again.of(other)
            ):
                self.events.emit(GameEvent.create(EventType.REMATCH_REQUESTED, role=other.value))

    def _mirror_clock(
        self, ctx: SessionContext, previous: Optional[SessionDocument], document: SessionDocument
    ) -> None:
        """Warn the guest off the host-written game clock."""
        if ctx.role is not Role.GUEST or previous is None:
            return
        if document.timer_mode is not TimerMode.GAME or document.status is not SessionStatus.PLAYING:
            return
        remaining = document.time_remaining
        if remaining != previous.time_remaining and remaining <= self.settings.game_warning_seconds:
            self.events.emit(GameEvent.create(EventType.TIMER_WARNING, secondsRemaining=remaining))

    def _apply(self, ctx: SessionContext, event: GameEvent) -> None:
        """Local side effects of a reconciled event."""
        kind, payload = event.event_type, event.payload
        if kind is EventType.GAME_STARTED:
            ctx.started_at, ctx.finished_at = time.monotonic(), None
            if ctx.opponent is not None:
                ctx.opponent.reset()
            self._start_timers(ctx)
        elif kind is EventType.CARD_FLIPPED:
            if ctx.opponent is not None:
                ctx.opponent.observe(payload["index"], payload["emoji"])
        elif kind in (EventType.GAME_WON, EventType.GAME_LOST, EventType.GAME_TIED):
            ctx.finished_at = time.monotonic()
            ctx.stop_timers()

        if kind is EventType.MATCH_FOUND and ctx.opponent is not None:
            for index in payload["indices"]:
                ctx.opponent.forget(index)
        if kind in (EventType.MATCH_FOUND, EventType.TURN_CHANGED):
            if ctx.turn_timer is not None and ctx.document.status is SessionStatus.PLAYING:
                ctx.turn_timer.reset()

    def _drive(self, ctx: SessionContext, document: SessionDocument) -> None:
        """Actions this party owns in reaction to the latest snapshot."""
        if document.status is not SessionStatus.PLAYING:
            ctx.stop_timers()
            if ctx.opponent_task is not None:
                ctx.opponent_task.cancel()
                ctx.opponent_task = None

        if document.status is not SessionStatus.ENDED:
            ctx.rematch_pending = False
        elif ctx.role is Role.HOST and not ctx.rematch_pending:
            if match.rematch_agreed(document):
                ctx.rematch_pending = True
                ctx.spawn(self._restart(ctx), name="rematch")
            elif match.lobby_agreed(document):
                ctx.rematch_pending = True
                ctx.spawn(self._back_to_lobby(ctx), name="lobby")

        if (
            ctx.mode is Mode.SCRIPTED
            and _opponent_may_act(document)
            and not document.flipped_cards
            and (ctx.opponent_task is None or ctx.opponent_task.done())
        ):
            ctx.opponent_task = ctx.spawn(self._play_scripted_turn(ctx), name="opponent")

    # ---- helpers ----

    async def _start_local(
        self, mode: Mode, board_size: Optional[int], opponent: Optional[ScriptedOpponent] = None
    ) -> None:
        self._ensure_idle()
        cards = self._deck_factory(board_size or self.settings.board_size)
        guest = PartySlot(id=SCRIPTED_CLIENT_ID, ready=True) if mode is Mode.SCRIPTED else None
        document = SessionDocument(
            host=PartySlot(id=self.client_id, ready=True),
            guest=guest,
            status=SessionStatus.READY if guest else SessionStatus.WAITING,
            mode=mode,
            board_size=board_size or self.settings.board_size,
            presence=PartyFlags(host=True, guest=guest is not None),
            created_at=time.time(),
        )
        ctx = SessionContext(
            code=LOCAL_CODE,
            role=Role.HOST,
            mode=mode,
            store=InMemoryDocumentStore(),
            opponent=opponent,
        )
        await ctx.store.create(ctx.path, encode(document))
        self._attach(ctx)
        await self._write(ctx, match.start_updates(cards, 0))
        logger.info("[local-start] mode=%s pairs=%d", mode.value, len(cards) // 2)

    async def _read(self, ctx: SessionContext) -> SessionDocument:
        document = decode(await ctx.store.read(ctx.path))
        if document is None:
            raise SessionClosed(f"Session {ctx.code} no longer exists")
        return document

    async def _write(self, ctx: SessionContext, updates: match.Updates) -> None:
        try:
            await ctx.store.update(ctx.path, updates)
        except DocumentNotFound as exc:
            raise SessionClosed(f"Session {ctx.code} no longer exists") from exc

    def _time_budget(self, document: SessionDocument) -> int:
        return self.settings.game_seconds if document.timer_mode is TimerMode.GAME else 0

    def _seconds_remaining(self, ctx: SessionContext) -> Optional[int]:
        document = ctx.document
        if ctx.mode is not Mode.REMOTE or document is None:
            return None
        if document.timer_mode is TimerMode.GAME:
            return document.time_remaining
        if ctx.turn_timer is None or document.status is not SessionStatus.PLAYING:
            return None
        return ctx.turn_timer.remaining

    @staticmethod
    def _elapsed_seconds(ctx: SessionContext) -> int:
        if ctx.started_at is None:
            return 0
        end = ctx.finished_at if ctx.finished_at is not None else time.monotonic()
        return int(end - ctx.started_at)

    def _emit_state(self, ctx: SessionContext) -> None:
        if ctx is self.context:
            self.events.emit(GameEvent.create(EventType.STATE_CHANGED, **self.view().to_dict()))

    def _report(self, ctx: SessionContext, exc: Exception) -> None:
        logger.warning("[store-error] code=%s role=%s error=%s", ctx.code, ctx.role.value, exc)
        self.events.emit(GameEvent.create(EventType.STORE_ERROR, message=str(exc)))

    async def _settle_disarm(self) -> None:
        task, self._disarming = self._disarming, None
        if task is not None:
            await task

    def _ensure_idle(self) -> None:
        if self.context is not None:
            raise ActionNotAllowed("Leave the current session first")

    def _require_context(self) -> SessionContext:
        if self.context is None:
            raise SessionClosed("Not in a session")
        return self.context


def _opponent_may_act(document: SessionDocument) -> bool:
    return document.status is SessionStatus.PLAYING and document.current_turn is Role.GUEST
