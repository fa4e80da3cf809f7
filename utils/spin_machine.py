"""
Spin lifecycle state machine.

One `SpinMachine` drives one slot machine: it asks the outcome authority for a
result, animates the reels, reveals the final grid, applies feedback and,
when autoplay is on, chains into the next spin. Everything runs on a single
asyncio loop; the only concurrency is the interleaving of timers with the one
in-flight authority call.

The machine owns the grid and the session. Presentation is delegated to a
`SpinPresenter`, whose hooks are awaited in order.
"""
import asyncio
import logging
import math
import random
from collections import deque, namedtuple
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from utils.exceptions import GuardRejection, SlotError, AuthorityUnreachable
from utils.feedback import FeedbackDirector, FeedbackPlan
from utils.game_config import CLUSTER_PATTERN
from utils.grid_synth import GridSynthesizer, copy_grid
from utils.patterns import PatternSelector, cluster_count_for
from utils.power_buckets import PowerBucketer, clamp_power

logger = logging.getLogger(__name__)


class SpinState(Enum):
    IDLE = "idle"
    SPINNING = "spinning"
    REVEALING = "revealing"
    SETTLED = "settled"


class LastOutcome(Enum):
    WIN = "win"
    LOSE = "lose"


REVEAL_COLUMNS = "columns"
REVEAL_DROP = "drop"

SpinRecord = namedtuple("SpinRecord", ["power", "is_win", "payout", "balance"])


@dataclass
class SpinReport:
    """Everything the presenter needs once a spin has settled."""
    outcome: object
    grid: list
    highlights: frozenset
    symbol: Optional[str]
    pattern: Optional[str]
    feedback: FeedbackPlan
    degraded: bool = False


@dataclass
class SpinSession:
    autoplay_enabled: bool = False
    bet_amount: float = 10
    last_outcome: Optional[LastOutcome] = None
    balance: Optional[float] = None
    real_mode: bool = False
    logged_in: bool = False
    min_bet: float = 1
    max_bet: float = 1000
    can_spin: bool = True
    last_error: Optional[SlotError] = None


@dataclass
class MachineSettings:
    rows: int = 5
    cols: int = 7
    column_spin_stagger: float = 0.1
    column_spin_tick: float = 0.07
    frame_interval: float = 0.07
    column_settle_delay: float = 0.15
    column_settle_jitter: float = 0.05
    reveal_mode: str = REVEAL_COLUMNS
    drop_clear_pause: float = 0.3
    drop_column_stagger: float = 0.08
    drop_row_stagger: float = 0.04
    autoplay_pause: float = 5.0
    outcome_timeout: float = 10.0
    idle_glow_interval: float = 0.0
    win_layout: str = "pattern"
    history_size: int = 50
    default_bet: float = 10

    @classmethod
    def from_config(cls, config) -> "MachineSettings":
        return cls(
            rows=config.GRID_ROWS,
            cols=config.GRID_COLS,
            column_spin_stagger=config.COLUMN_SPIN_STAGGER,
            column_spin_tick=config.COLUMN_SPIN_TICK,
            frame_interval=config.FRAME_INTERVAL,
            column_settle_delay=config.COLUMN_SETTLE_DELAY,
            column_settle_jitter=config.COLUMN_SETTLE_JITTER,
            reveal_mode=config.REVEAL_MODE,
            drop_clear_pause=config.DROP_CLEAR_PAUSE,
            drop_column_stagger=config.DROP_COLUMN_STAGGER,
            drop_row_stagger=config.DROP_ROW_STAGGER,
            autoplay_pause=config.AUTOPLAY_PAUSE,
            # The machine gives the authority a little longer than its own HTTP timeout.
            outcome_timeout=config.AUTHORITY_TIMEOUT + 1,
            idle_glow_interval=config.IDLE_GLOW_INTERVAL,
            win_layout=config.WIN_LAYOUT,
            history_size=config.SPIN_HISTORY_SIZE,
            default_bet=config.DEFAULT_BET,
        )


class SpinPresenter:
    """Receives the machine's visible changes. The base class ignores them."""

    async def on_state(self, state: SpinState):
        pass

    async def on_frame(self, grid, highlights=frozenset()):
        pass

    async def on_settled(self, report: SpinReport):
        pass

    async def on_countdown(self, seconds_left: int):
        pass

    async def on_error(self, error: SlotError):
        pass

    async def on_notice(self, message: str):
        pass

    async def on_idle_glow(self, cell):
        pass


class TimerScope:
    """Owns the timer tasks of one state; cancelling the scope stops them all."""

    def __init__(self, name: str):
        self.name = name
        self._tasks = []

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.append(task)
        return task

    @property
    def active(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def cancel_all(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:  # pylint: disable=broad-except
                logger.error("Timer in scope '%s' failed.", self.name, exc_info=True)


# States that share a timer scope; reel timers survive SPINNING -> REVEALING.
_SCOPE_FOR_STATE = {
    SpinState.IDLE: "idle",
    SpinState.SPINNING: "reels",
    SpinState.REVEALING: "reels",
    SpinState.SETTLED: "settled",
}


class SpinMachine:
    """Orchestrates spins end to end for a single player."""

    def __init__(self, authority, presenter: Optional[SpinPresenter] = None,
                 settings: Optional[MachineSettings] = None,
                 rng: Optional[random.Random] = None,
                 synthesizer: Optional[GridSynthesizer] = None,
                 bucketer: Optional[PowerBucketer] = None,
                 feedback: Optional[FeedbackDirector] = None):
        self.authority = authority
        self.presenter = presenter or SpinPresenter()
        self.settings = settings or MachineSettings()
        self.rng = rng or random.Random()
        self.synthesizer = synthesizer or GridSynthesizer(rng=self.rng)
        self.bucketer = bucketer or PowerBucketer(self.synthesizer.symbols)
        self.selector = PatternSelector(self.bucketer)
        self.feedback = feedback or FeedbackDirector()

        self.session = SpinSession(bet_amount=self.settings.default_bet)
        self.state = SpinState.IDLE
        self.history = deque(maxlen=self.settings.history_size)
        self.last_report: Optional[SpinReport] = None

        self._grid = self.synthesizer.random_grid(self.settings.rows, self.settings.cols)
        self._highlights = frozenset()
        self._scopes = {}
        self._column_tasks = []
        self._chain_task: Optional[asyncio.Task] = None
        self._idle_event = asyncio.Event()
        self._idle_event.set()
        self._autoplay_off = asyncio.Event()
        self._counting_down = False
        self._started = False

    # --- Read-only views ---
    @property
    def grid(self) -> list:
        return copy_grid(self._grid)

    @property
    def highlights(self) -> frozenset:
        return self._highlights

    @property
    def spinning(self) -> bool:
        return self.state in (SpinState.SPINNING, SpinState.REVEALING)

    @property
    def autoplay_pending(self) -> bool:
        return self._chain_task is not None and not self._chain_task.done()

    # --- Timer scopes ---
    def _scope(self, name: str) -> TimerScope:
        if name not in self._scopes:
            self._scopes[name] = TimerScope(name)
        return self._scopes[name]

    async def _enter(self, state: SpinState):
        """
        Transitions to `state`, cancelling the timers of the state being left.
        The new state is visible to the guards before the first await.
        """
        old_scope = _SCOPE_FOR_STATE[self.state]
        new_scope = _SCOPE_FOR_STATE[state]
        logger.debug("Spin machine %s -> %s", self.state.value, state.value)
        self.state = state
        if state is not SpinState.IDLE:
            self._idle_event.clear()

        if old_scope != new_scope and old_scope in self._scopes:
            await self._scopes[old_scope].cancel_all()

        if state is SpinState.IDLE:
            self._idle_event.set()
            self._start_idle_glow()
        await self.presenter.on_state(state)

    async def start(self):
        """Starts the idle activity. Safe to call more than once."""
        if not self._started:
            self._started = True
            self._start_idle_glow()

    async def shutdown(self):
        """Stops autoplay and every owned timer."""
        self.session.autoplay_enabled = False
        if self.autoplay_pending:
            self._chain_task.cancel()
            try:
                await self._chain_task
            except asyncio.CancelledError:
                pass
        for scope in list(self._scopes.values()):
            await scope.cancel_all()

    async def wait_until_idle(self):
        await self._idle_event.wait()

    # --- Idle glow ---
    def _start_idle_glow(self):
        if self.settings.idle_glow_interval <= 0:
            return
        scope = self._scope("idle")
        if scope.active == 0:
            scope.spawn(self._idle_glow_loop())

    async def _idle_glow_loop(self):
        while True:
            await asyncio.sleep(self.settings.idle_glow_interval)
            cell = (
                self.rng.randrange(self.settings.rows),
                self.rng.randrange(self.settings.cols),
            )
            await self.presenter.on_idle_glow(cell)

    # --- Guards ---
    def _check_not_busy(self, action: str):
        if self.spinning:
            raise GuardRejection(f"Cannot {action} while the reels are spinning.")

    def _check_can_spin(self, manual: bool):
        self._check_not_busy("spin")
        if manual and self.autoplay_pending:
            raise GuardRejection("Autoplay is running. Turn it off to spin manually.")
        if self.session.real_mode and not self.session.logged_in:
            raise GuardRejection("You must log in to play the real game!")

    # --- Session operations ---
    def _apply_status(self, status):
        self.session.balance = status.balance
        self.session.min_bet = status.min_bet
        self.session.max_bet = status.max_bet
        self.session.can_spin = status.can_spin
        self.session.logged_in = status.is_logged_in
        self.session.bet_amount = self._clamp_bet(self.session.bet_amount)

    def _clamp_bet(self, amount) -> float:
        low, high = self.session.min_bet, self.session.max_bet
        if low > high:
            low, high = high, low
        return max(low, min(high, amount))

    async def refresh_status(self):
        """Queries the authority for balance and bet limits."""
        try:
            status = await self.authority.status(self.session.real_mode)
        except SlotError as e:
            self.session.last_error = e
            logger.error("Status refresh failed: %s", e.message)
            raise
        self._apply_status(status)
        self.session.last_error = None
        logger.info(
            "Status refreshed: balance=%s bet range=%s-%s logged_in=%s mode=%s",
            status.balance, status.min_bet, status.max_bet, status.is_logged_in, status.mode
        )
        return status

    async def switch_mode(self, real: bool):
        self._check_not_busy("switch mode")
        if self.autoplay_pending:
            raise GuardRejection("Turn autoplay off before switching mode.")
        self.session.real_mode = real
        self.session.balance = None
        return await self.refresh_status()

    async def reset_balance(self):
        self._check_not_busy("reset the balance")
        if self.autoplay_pending:
            raise GuardRejection("Turn autoplay off before resetting the balance.")
        try:
            ack = await self.authority.reset_balance(self.session.real_mode)
        except SlotError as e:
            self.session.last_error = e
            logger.error("Balance reset failed: %s", e.message)
            raise
        logger.info("Balance reset acknowledged: %s", str(ack)[:100])
        return await self.refresh_status()

    def set_bet(self, amount) -> float:
        if self.spinning or self.autoplay_pending:
            raise GuardRejection("The bet cannot change while spinning or on autoplay.")
        self.session.bet_amount = self._clamp_bet(amount)
        return self.session.bet_amount

    # --- Autoplay ---
    async def set_autoplay(self, enabled: bool):
        """
        Turns autoplay on or off. Turning it off only raises the flag; the
        spin in progress still settles, but nothing new is chained. A chain
        counting down to its next spin is ended before this returns.
        """
        self.session.autoplay_enabled = enabled
        if not enabled:
            self._autoplay_off.set()
            logger.info("Autoplay disabled; takes effect at the next decision point.")
            # A chain waiting out its pause ends right away.
            if self._counting_down and self._chain_task is not asyncio.current_task():
                await asyncio.wait({self._chain_task})
            return
        self._autoplay_off.clear()
        logger.info("Autoplay enabled.")
        if self.state is SpinState.IDLE and not self.autoplay_pending:
            self._idle_event.clear()
            self._chain_task = asyncio.ensure_future(self._autoplay_loop(pause=0))

    async def _end_autoplay(self, reason: str):
        self.session.autoplay_enabled = False
        logger.info("Autoplay stopped: %s", reason)
        await self.presenter.on_notice(reason)

    async def _inter_spin_pause(self, pause: float) -> bool:
        """Counts down the pause; returns False as soon as autoplay is switched off."""
        self._counting_down = True
        try:
            remaining = pause
            while remaining > 0:
                if not self.session.autoplay_enabled:
                    return False
                await self.presenter.on_countdown(math.ceil(remaining))
                step = min(1.0, remaining)
                try:
                    await asyncio.wait_for(self._autoplay_off.wait(), timeout=step)
                except asyncio.TimeoutError:
                    remaining -= step
                else:
                    if self.session.autoplay_enabled:
                        self._autoplay_off.clear()
            return self.session.autoplay_enabled
        finally:
            self._counting_down = False

    async def _autoplay_loop(self, pause: float):
        try:
            while True:
                if pause > 0 and not await self._inter_spin_pause(pause):
                    break
                if not self.session.autoplay_enabled:
                    break
                try:
                    self._check_can_spin(manual=False)
                except GuardRejection as e:
                    await self._end_autoplay(e.message)
                    break
                outcome = await self._run_spin()
                if outcome is None:
                    break
                if not self._should_chain(outcome):
                    await self._stop_unless_chaining(outcome)
                    break
                pause = self.settings.autoplay_pause
        finally:
            if self.state is SpinState.IDLE:
                self._idle_event.set()
            elif not self.spinning:
                await self._enter(SpinState.IDLE)

    def _should_chain(self, outcome) -> bool:
        return self.session.autoplay_enabled and outcome.can_continue

    async def _stop_unless_chaining(self, outcome):
        """Switches autoplay off when the authority refuses another spin."""
        if self.session.autoplay_enabled and not outcome.can_continue:
            await self._end_autoplay("The game server does not allow another spin.")

    # --- Spinning ---
    async def spin(self):
        """
        Runs one manual spin to completion and returns the outcome, or None if
        the spin failed. Raises GuardRejection without touching anything
        when a spin is not allowed.
        """
        self._check_can_spin(manual=True)
        outcome = await self._run_spin()
        if outcome is not None and self._should_chain(outcome) and not self.autoplay_pending:
            self._chain_task = asyncio.ensure_future(
                self._autoplay_loop(pause=self.settings.autoplay_pause)
            )
            return outcome
        if outcome is not None:
            await self._stop_unless_chaining(outcome)
        if self.state is SpinState.SETTLED:
            await self._enter(SpinState.IDLE)
        return outcome

    async def _spin_column(self, col: int, delay: float):
        await asyncio.sleep(delay)
        rows = self.settings.rows
        while True:
            column = self.synthesizer.random_column(rows)
            for r in range(rows):
                self._grid[r][col] = column[r]
            await asyncio.sleep(self.settings.column_spin_tick)

    async def _frame_pump(self):
        while True:
            await asyncio.sleep(self.settings.frame_interval)
            await self.presenter.on_frame(self.grid)

    def _start_reels(self):
        scope = self._scope("reels")
        self._column_tasks = [
            scope.spawn(self._spin_column(c, c * self.settings.column_spin_stagger))
            for c in range(self.settings.cols)
        ]
        scope.spawn(self._frame_pump())

    async def _request_outcome(self):
        try:
            return await asyncio.wait_for(
                self.authority.spin(self.session.real_mode, self.session.bet_amount),
                timeout=self.settings.outcome_timeout,
            )
        except asyncio.TimeoutError as e:
            raise AuthorityUnreachable(
                "No answer from the game server in time",
                details={"timeout": self.settings.outcome_timeout}
            ) from e

    async def _fail(self, error: SlotError, previous_grid):
        logger.error("Spin failed: %s %s", error.message, error.details)
        await self._scope("reels").cancel_all()
        self._grid = previous_grid
        self.session.autoplay_enabled = False
        self.session.last_error = error
        await self._enter(SpinState.IDLE)
        await self.presenter.on_error(error)

    async def _run_spin(self):
        previous_grid = copy_grid(self._grid)
        self._highlights = frozenset()
        await self._enter(SpinState.SPINNING)
        self._start_reels()
        logger.info(
            "Spin requested: real=%s bet=%s", self.session.real_mode, self.session.bet_amount
        )

        try:
            outcome = await self._request_outcome()
            report = self._compose(outcome)
            await self._enter(SpinState.REVEALING)
            await self._reveal(report.grid)
        except SlotError as e:
            await self._fail(e, previous_grid)
            return None
        except Exception as e:  # pylint: disable=broad-except
            logger.exception("Unexpected error while spinning.")
            await self._fail(
                SlotError("The spin could not be completed", details={"error": repr(e)}),
                previous_grid
            )
            return None

        await self._enter(SpinState.SETTLED)
        await self._settle(outcome, report)
        return outcome

    def _compose(self, outcome) -> SpinReport:
        """Builds the final grid and feedback plan for an outcome."""
        rows, cols = self.settings.rows, self.settings.cols
        power = outcome.winning_power
        symbol = pattern = None

        if outcome.is_win:
            if outcome.symbol in self.bucketer.symbols:
                symbol = outcome.symbol
            else:
                symbol = self.bucketer.symbol_for(clamp_power(power))
            if self.settings.win_layout == CLUSTER_PATTERN:
                pattern = CLUSTER_PATTERN
                result = self.synthesizer.win_grid(
                    rows, cols, pattern, symbol, cluster_count=cluster_count_for(power)
                )
            else:
                pattern = self.selector.pattern_for(power).name
                result = self.synthesizer.win_grid(rows, cols, pattern, symbol)
        else:
            result = self.synthesizer.lose_grid(rows, cols)

        return SpinReport(
            outcome=outcome,
            grid=result.grid,
            highlights=result.highlights,
            symbol=symbol,
            pattern=pattern,
            feedback=self.feedback.plan(outcome.is_win, power),
            degraded=result.degraded,
        )

    # --- Revealing ---
    async def _reveal(self, final_grid):
        if self.settings.reveal_mode == REVEAL_DROP:
            await self._reveal_drop(final_grid)
        else:
            await self._reveal_columns(final_grid)

    async def _reveal_columns(self, final_grid):
        """Stops the reels left to right, one settle delay after another."""
        for c in range(self.settings.cols):
            if c < len(self._column_tasks):
                self._column_tasks[c].cancel()
            for r in range(self.settings.rows):
                self._grid[r][c] = final_grid[r][c]
            await self.presenter.on_frame(self.grid)
            delay = self.settings.column_settle_delay + self.rng.uniform(
                0, self.settings.column_settle_jitter
            )
            await asyncio.sleep(delay)

    async def _reveal_drop(self, final_grid):
        """Clears the board, pauses, then drops each cell in on a column/row stagger."""
        await self._scope("reels").cancel_all()
        rows, cols = self.settings.rows, self.settings.cols
        self._grid = [[None] * cols for _ in range(rows)]
        await self.presenter.on_frame(self.grid)
        await asyncio.sleep(self.settings.drop_clear_pause)

        schedule = sorted(
            (c * self.settings.drop_column_stagger + r * self.settings.drop_row_stagger, c, r)
            for c in range(cols) for r in range(rows)
        )
        elapsed = 0.0
        for at, c, r in schedule:
            if at > elapsed:
                await asyncio.sleep(at - elapsed)
                elapsed = at
            self._grid[r][c] = final_grid[r][c]
            await self.presenter.on_frame(self.grid)

    # --- Settling ---
    async def _settle(self, outcome, report: SpinReport):
        self._grid = copy_grid(report.grid)
        self._highlights = report.highlights if outcome.is_win else frozenset()
        if outcome.new_balance is not None:
            self.session.balance = outcome.new_balance
        self.session.last_outcome = LastOutcome.WIN if outcome.is_win else LastOutcome.LOSE
        self.session.last_error = None
        if self.session.real_mode and outcome.is_logged_in is not None:
            self.session.logged_in = outcome.is_logged_in
        self.history.append(
            SpinRecord(outcome.winning_power, outcome.is_win, outcome.payout, self.session.balance)
        )
        self.last_report = report
        logger.info(
            "Spin settled: win=%s power=%s payout=%s balance=%s pattern=%s",
            outcome.is_win, outcome.winning_power, outcome.payout,
            self.session.balance, report.pattern
        )
        try:
            await self.presenter.on_settled(report)
        except Exception:  # pylint: disable=broad-except
            # The outcome is already applied; the machine still has to leave SETTLED.
            logger.exception("Presenter failed to show the settled spin.")
