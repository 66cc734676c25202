"""Macrogame playback state machine.

:class:`PlaybackEngine` walks a :class:`MacrogameDefinition` through its
static screens and microgames, posts event points to the session ledger and,
once the flow is done, exposes the conversion screen's offers.

The engine is single-threaded. Every transition happens synchronously in
response to a trigger: a timer firing, a click, or a module callback. Timed
transitions are scheduled through a :class:`Scheduler` and tagged with the
generation of the view they were scheduled in, so a timer that loses a race
against a click (or outlives a teardown) does nothing when it fires.
"""

from __future__ import annotations

import logging
from collections import Counter
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from macroplay.core import audio
from macroplay.core.gating import Resolution, resolve
from macroplay.core.ledger import DebitResult
from macroplay.core.models import (
    ConversionMethod,
    ConversionScreen,
    GateKind,
    MacrogameDefinition,
    MicrogameInstance,
    MicrogameResult,
    ScreenFlowType,
)
from macroplay.core.registry import MicrogameContext, MicrogameModule, MicrogameRegistry
from macroplay.core.scheduler import Scheduler, TimerHandle
from macroplay.core.session import PlaybackSession

logger = logging.getLogger(__name__)

RESULT_DELAY_MS = 1500
DEFAULT_INTRO_SECONDS = 3
DEFAULT_PROMO_SECONDS = 5
SINGLE_GAME_PREVIEW = "single_game"
FALLBACK_MESSAGE = "No conversion screen was configured"


class View(str, Enum):
    LOADING = "loading"
    INTRO = "intro"
    TITLE = "title"
    CONTROLS = "controls"
    COMBINED = "combined"
    GAME = "game"
    RESULT = "result"
    PROMO = "promo"
    END = "end"


class EndContent(str, Enum):
    CONVERSION = "conversion"
    FALLBACK = "fallback"
    REPLAY = "replay"


class InvalidTransition(RuntimeError):
    """Operation not allowed in the engine's current view."""


Listener = Callable[["PlaybackEngine"], None]


class PlaybackEngine:
    """Plays one macrogame definition against a session, driven by triggers and scheduled timers."""

    def __init__(
        self,
        definition: MacrogameDefinition,
        scheduler: Scheduler,
        session: Optional[PlaybackSession] = None,
        registry: Optional[MicrogameRegistry] = None,
        conversion_screen: Optional[ConversionScreen] = None,
        methods: Optional[Mapping[str, ConversionMethod]] = None,
        preview_mode: Optional[str] = None,
        listener: Optional[Listener] = None,
        result_delay_ms: int = RESULT_DELAY_MS,
    ) -> None:
        self._definition = definition
        self._scheduler = scheduler
        self._session = session if session is not None else PlaybackSession()
        self._registry = registry
        self._conversion_screen = conversion_screen
        self._methods = methods
        self._preview_mode = preview_mode
        self._listener = listener
        self._result_delay_ms = result_delay_ms

        self._view = View.LOADING
        self._generation = 0
        self._timers: List[TimerHandle] = []
        self._index = 0
        self._result: Optional[MicrogameResult] = None
        self._results: List[MicrogameResult] = []
        self._overlay_visible = False
        self._waiting = False
        self._module: Optional[MicrogameModule] = None
        self._event_counts: Dict[int, Counter] = {}
        self._torn_down = False

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def definition(self) -> MacrogameDefinition:
        return self._definition

    @property
    def session(self) -> PlaybackSession:
        return self._session

    @property
    def view(self) -> View:
        return self._view

    @property
    def current_flow_index(self) -> int:
        return self._index

    @property
    def total_games(self) -> int:
        return len(self._definition.flow)

    @property
    def active_instance(self) -> Optional[MicrogameInstance]:
        """Flow item being introduced, played or scored; None outside the flow."""
        if 0 <= self._index < len(self._definition.flow):
            return self._definition.flow[self._index]
        return None

    @property
    def active_module(self) -> Optional[MicrogameModule]:
        return self._module

    @property
    def result(self) -> Optional[MicrogameResult]:
        """Result of the most recently finished microgame."""
        return self._result

    @property
    def results(self) -> List[MicrogameResult]:
        return list(self._results)

    @property
    def total_score(self) -> int:
        return self._session.balance()

    @property
    def is_overlay_visible(self) -> bool:
        return self._view is View.GAME and self._overlay_visible

    @property
    def is_waiting(self) -> bool:
        """True until the player first interacts with the running microgame."""
        return self._view is View.GAME and self._waiting

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    @property
    def conversion_screen(self) -> Optional[ConversionScreen]:
        return self._conversion_screen

    @property
    def end_content(self) -> EndContent:
        if self._preview_mode == SINGLE_GAME_PREVIEW:
            return EndContent.REPLAY
        if self._conversion_screen is not None:
            return EndContent.CONVERSION
        return EndContent.FALLBACK

    @property
    def progress_text(self) -> str:
        total = self.total_games
        if self._view is View.INTRO:
            return "Introduction"
        if self._view in (View.TITLE, View.CONTROLS, View.COMBINED, View.GAME, View.RESULT):
            return f"Game {min(self._index + 1, total)} of {total}"
        if self._view is View.PROMO:
            return "Promotion"
        if self._view is View.END:
            return "Reward"
        return ""

    @property
    def music_track(self) -> Optional[str]:
        return audio.resolve_track(self._definition, self._view.value, self._index)

    def set_listener(self, listener: Optional[Listener]) -> None:
        """Callable run with the engine after every state, score or offer change."""
        self._listener = listener

    def event_counts(self) -> Dict[int, Dict[str, int]]:
        """Raw counts of reported events, keyed by flow index."""
        return {index: dict(counts) for index, counts in self._event_counts.items()}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, reset_session: bool = True) -> None:
        """Begin playback from the first screen.

        A from-scratch start zeroes the score and forgets completed offers;
        pass ``reset_session=False`` to keep them.
        """
        if reset_session:
            self._session.reset()
            self._event_counts.clear()
        self._begin()

    def restart(self) -> None:
        """Play again from the top, keeping the session's score and completions."""
        self._begin()

    def teardown(self) -> None:
        """Cancel everything pending; no transition happens after this."""
        self._cancel_timers()
        self._stop_module()
        self._torn_down = True
        logger.debug("Playback of %s torn down in view %s", self._definition.id, self._view.value)

    def _begin(self) -> None:
        self._cancel_timers()
        self._stop_module()
        self._torn_down = False
        self._index = 0
        self._result = None
        self._results = []
        if self._definition.intro_screen.enabled:
            self._enter_intro()
        else:
            self._run_flow()

    # ------------------------------------------------------------------
    # External triggers
    # ------------------------------------------------------------------

    def click(self) -> bool:
        """Click-to-continue on the intro or promo screen. Returns True if it advanced."""
        if self._torn_down:
            return False
        if self._view is View.INTRO and self._definition.intro_screen.click_to_continue:
            self._run_flow()
            return True
        if self._view is View.PROMO and self._definition.promo_screen.click_to_continue:
            self._enter_end()
            return True
        return False

    def report_event(self, event_id: str) -> Optional[int]:
        """Credit the points configured for *event_id*; unknown events are ignored."""
        if self._torn_down or self._view is not View.GAME:
            return None
        instance = self.active_instance
        if instance is None:
            return None
        self._event_counts.setdefault(self._index, Counter())[event_id] += 1
        points = instance.points_for(event_id)
        if points is None:
            logger.debug("Ignoring unknown event %r from %s", event_id, instance.microgame.id)
            return None
        if points < 0:
            logger.warning("Ignoring negative points (%d) for event %r", points, event_id)
            return None
        self._session.ledger.credit(points)
        self._notify()
        return points

    def interact(self) -> None:
        """The player engaged with the microgame; hides the waiting hint."""
        if self._torn_down or self._view is not View.GAME or not self._waiting:
            return
        self._waiting = False
        self._notify()

    def end_game(self, result: MicrogameResult) -> bool:
        """The running microgame finished. Ignored outside the game view."""
        if self._torn_down or self._view is not View.GAME:
            return False
        self._stop_module()
        self._result = result
        self._results.append(result)
        self._set_view(View.RESULT)
        self._schedule(self._result_delay_ms, self._advance_from_result)
        return True

    # ------------------------------------------------------------------
    # Conversion screen
    # ------------------------------------------------------------------

    def resolve_offers(self) -> Resolution:
        """Current gating state of the conversion screen's offers."""
        if self._conversion_screen is None:
            return {}
        return resolve(
            self._conversion_screen,
            self._session.completed,
            self._session.balance(),
            self._definition.point_costs,
            self._methods,
        )

    def complete_offer(self, instance_id: str) -> bool:
        """An unlocked offer reported success (email captured, link opened, ...)."""
        self._require_end("complete_offer")
        state = self.resolve_offers().get(instance_id)
        if state is None or state.locked:
            logger.info("Ignoring success for unavailable offer %s", instance_id)
            return False
        if self._session.mark_completed(instance_id):
            self._notify()
        return True

    def purchase_offer(self, instance_id: str) -> DebitResult:
        """Spend points on a point-gated offer; it unlocks only if the debit succeeds."""
        self._require_end("purchase_offer")
        state = self.resolve_offers().get(instance_id)
        if state is None or state.kind not in (GateKind.POINT_PURCHASE, GateKind.POINT_THRESHOLD):
            raise ValueError(f"{instance_id!r} is not a point-gated offer on this screen")
        if not state.locked:
            return DebitResult(ok=True, total=self._session.balance())
        result = self._session.purchase(instance_id, state.cost or 0)
        if result.ok:
            self._notify()
        return result

    def redeem_points(self, amount: int) -> DebitResult:
        """Raw point debit for the reward screen."""
        self._require_end("redeem_points")
        result = self._session.ledger.debit(amount)
        if result.ok:
            self._notify()
        return result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _enter_intro(self) -> None:
        screen = self._definition.intro_screen
        self._set_view(View.INTRO)
        if not screen.click_to_continue:
            seconds = screen.duration_seconds or DEFAULT_INTRO_SECONDS
            self._schedule(int(seconds * 1000), self._run_flow)

    def _run_flow(self) -> None:
        flow = self._definition.flow
        while self._index < len(flow):
            instance = flow[self._index]
            if self._registry is None or instance.microgame.id in self._registry:
                break
            logger.warning(
                "Skipping flow item %d: no module for microgame %s",
                self._index,
                instance.microgame.id,
            )
            self._index += 1

        if self._index >= len(flow):
            if self._definition.promo_screen.enabled:
                self._enter_promo()
            else:
                self._enter_end()
            return

        config = self._definition.config
        flow_type = config.screen_flow_type
        if flow_type is ScreenFlowType.SEPARATE:
            self._set_view(View.TITLE)
            self._schedule(config.title_screen_duration_ms, self._advance_from_title)
        elif flow_type is ScreenFlowType.COMBINED:
            self._set_view(View.COMBINED)
            self._schedule(
                config.title_screen_duration_ms + config.controls_screen_duration_ms,
                self._enter_game,
            )
        elif flow_type is ScreenFlowType.SKIP:
            self._enter_game()
        elif flow_type is ScreenFlowType.OVERLAY:
            self._enter_game(overlay=True)
        else:
            raise ValueError(f"Unhandled screen flow type: {flow_type!r}")

    def _advance_from_title(self) -> None:
        self._set_view(View.CONTROLS)
        self._schedule(self._definition.config.controls_screen_duration_ms, self._enter_game)

    def _enter_game(self, overlay: bool = False) -> None:
        self._overlay_visible = overlay
        self._waiting = True
        self._set_view(View.GAME)
        if overlay:
            config = self._definition.config
            self._schedule(
                config.title_screen_duration_ms + config.controls_screen_duration_ms,
                self._hide_overlay,
            )
        if self._start_module():
            self._notify()

    def _hide_overlay(self) -> None:
        self._overlay_visible = False
        self._notify()

    def _advance_from_result(self) -> None:
        self._index += 1
        self._run_flow()

    def _enter_promo(self) -> None:
        screen = self._definition.promo_screen
        self._set_view(View.PROMO)
        if not screen.click_to_continue:
            seconds = screen.duration_seconds or DEFAULT_PROMO_SECONDS
            self._schedule(int(seconds * 1000), self._enter_end)

    def _enter_end(self) -> None:
        self._set_view(View.END)

    def _set_view(self, view: View) -> None:
        self._cancel_timers()
        self._generation += 1
        logger.debug("%s: %s -> %s", self._definition.id, self._view.value, view.value)
        self._view = view
        self._notify()

    def _require_end(self, operation: str) -> None:
        if self._torn_down or self._view is not View.END:
            raise InvalidTransition(f"{operation} is only available on the end screen (view: {self._view.value})")

    # ------------------------------------------------------------------
    # Timers and modules
    # ------------------------------------------------------------------

    def _schedule(self, delay_ms: int, action: Callable[[], None]) -> None:
        generation = self._generation

        def fire() -> None:
            if self._torn_down or generation != self._generation:
                return
            action()

        self._timers.append(self._scheduler.call_later(delay_ms, fire))

    def _cancel_timers(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._timers = []

    def _start_module(self) -> bool:
        instance = self.active_instance
        if self._registry is None or instance is None:
            return False
        generation = self._generation

        def current() -> bool:
            return not self._torn_down and generation == self._generation

        def on_end(result: MicrogameResult) -> None:
            if current():
                self.end_game(result)

        def on_report_event(event_id: str) -> None:
            if current():
                self.report_event(event_id)

        def on_interaction() -> None:
            if current():
                self.interact()

        context = MicrogameContext(
            on_end=on_end,
            on_report_event=on_report_event,
            on_interaction=on_interaction,
            game_data=instance.microgame,
            skin_config=instance.skin_data,
            is_overlay_visible=lambda: self.is_overlay_visible,
        )
        self._module = self._registry.create(instance.microgame.id)
        self._module.start(context)
        return True

    def _stop_module(self) -> None:
        module, self._module = self._module, None
        if module is not None:
            module.stop()

    def _notify(self) -> None:
        if self._listener is not None:
            self._listener(self)
