import asyncio
import random

import pytest

from utils.authority import MachineStatus, SpinOutcome
from utils.exceptions import AuthorityUnreachable, GuardRejection, MalformedResponse, SlotError
from utils.feedback import TIER_MAJOR
from utils.grid_synth import has_adjacent_match
from utils.patterns import PatternSelector, resolve_pattern
from utils.spin_machine import (
    REVEAL_DROP, LastOutcome, MachineSettings, SpinMachine, SpinPresenter, SpinState
)


def fast_settings(**overrides):
    values = dict(
        column_spin_stagger=0.0,
        column_spin_tick=0.001,
        frame_interval=0.001,
        column_settle_delay=0.0,
        column_settle_jitter=0.0,
        drop_clear_pause=0.0,
        drop_column_stagger=0.001,
        drop_row_stagger=0.0005,
        autoplay_pause=0.0,
        outcome_timeout=1.0,
    )
    values.update(overrides)
    return MachineSettings(**values)


def make_outcome(is_win=False, power=0, payout=0, new_balance=None, can_continue=False, **extra):
    return SpinOutcome(
        is_win=is_win, winning_power=power, payout=payout,
        new_balance=new_balance, can_continue=can_continue, **extra
    )


class FakeAuthority:
    """Answers spins from a script; the last scripted answer repeats."""

    def __init__(self, outcomes=None, status=None, gate=None, delay=0.0):
        self.outcomes = list(outcomes or [make_outcome()])
        self.status_result = status or MachineStatus(
            balance=100, min_bet=1, max_bet=1000, can_spin=True, mode="demo", is_logged_in=False
        )
        self.gate = gate
        self.delay = delay
        self.spin_calls = []
        self.status_calls = 0
        self.reset_calls = 0

    async def spin(self, real, bet_amount):
        self.spin_calls.append((real, bet_amount))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def status(self, real):
        self.status_calls += 1
        return self.status_result

    async def reset_balance(self, real):
        self.reset_calls += 1
        return "Balance reset"


class RecordingPresenter(SpinPresenter):
    def __init__(self):
        self.machine = None
        self.states = []
        self.frames = []
        self.settled = []
        self.errors = []
        self.notices = []
        self.countdowns = []
        self.glows = []
        self.glow_outside_idle = 0
        self.on_revealing = None

    async def on_state(self, state):
        self.states.append(state)
        if state is SpinState.REVEALING and self.on_revealing is not None:
            await self.on_revealing()

    async def on_frame(self, grid, highlights=frozenset()):
        self.frames.append((self.machine.state, grid))

    async def on_settled(self, report):
        self.settled.append(report)

    async def on_countdown(self, seconds_left):
        self.countdowns.append(seconds_left)

    async def on_error(self, error):
        self.errors.append(error)

    async def on_notice(self, message):
        self.notices.append(message)

    async def on_idle_glow(self, cell):
        if self.machine.state is not SpinState.IDLE:
            self.glow_outside_idle += 1
        self.glows.append(cell)


def build_machine(authority, seed=7, **overrides):
    presenter = RecordingPresenter()
    machine = SpinMachine(
        authority, presenter, settings=fast_settings(**overrides), rng=random.Random(seed)
    )
    presenter.machine = machine
    return machine, presenter


def test_losing_spin_settles_with_clean_grid():
    async def scenario():
        authority = FakeAuthority([make_outcome(False, power=77, new_balance=90)])
        machine, presenter = build_machine(authority)
        machine.session.balance = 100

        outcome = await machine.spin()

        assert outcome.is_win is False
        assert machine.state is SpinState.IDLE
        assert presenter.states == [
            SpinState.SPINNING, SpinState.REVEALING, SpinState.SETTLED, SpinState.IDLE
        ]
        assert not has_adjacent_match(machine.grid)
        assert machine.highlights == frozenset()
        assert machine.session.balance == 90
        assert machine.session.last_outcome is LastOutcome.LOSE
        assert len(machine.history) == 1
        assert presenter.settled[0].symbol is None

    asyncio.run(scenario())


def test_winning_spin_paints_pattern_with_bucket_symbol():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=90, payout=500, new_balance=600)])
        machine, presenter = build_machine(authority)

        await machine.spin()

        report = presenter.settled[0]
        expected = PatternSelector(machine.bucketer).pattern_for(90).name
        assert report.pattern == expected
        assert report.symbol == machine.bucketer.symbol_for(90)
        assert machine.highlights == resolve_pattern(expected, 5, 7)
        for r, c in machine.highlights:
            assert machine.grid[r][c] == report.symbol
        assert report.feedback.tier == TIER_MAJOR
        assert machine.session.balance == 600
        assert machine.session.last_outcome is LastOutcome.WIN
        assert machine.history[-1].payout == 500

    asyncio.run(scenario())


def test_server_symbol_is_used_when_in_catalog():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=10, symbol="katana")])
        machine, presenter = build_machine(authority)
        await machine.spin()
        assert presenter.settled[0].symbol == "katana"

    asyncio.run(scenario())


def test_unknown_server_symbol_falls_back_to_bucket():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=10, symbol="banana")])
        machine, presenter = build_machine(authority)
        await machine.spin()
        assert presenter.settled[0].symbol == machine.bucketer.symbol_for(10)

    asyncio.run(scenario())


def test_cluster_layout():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=60)])
        machine, presenter = build_machine(authority, win_layout="cluster")
        await machine.spin()
        report = presenter.settled[0]
        assert report.pattern == "cluster"
        assert report.highlights
        for r, c in report.highlights:
            assert report.grid[r][c] == report.symbol

    asyncio.run(scenario())


def test_second_spin_while_spinning_is_rejected_without_side_effects():
    async def scenario():
        gate = asyncio.Event()
        authority = FakeAuthority([make_outcome(False, new_balance=95)], gate=gate)
        machine, _ = build_machine(authority)
        machine.session.balance = 100

        first = asyncio.ensure_future(machine.spin())
        await asyncio.sleep(0.01)
        assert machine.state is SpinState.SPINNING

        with pytest.raises(GuardRejection):
            await machine.spin()
        assert machine.state is SpinState.SPINNING
        assert machine.session.balance == 100
        assert len(authority.spin_calls) == 1

        gate.set()
        await first
        assert machine.session.balance == 95

    asyncio.run(scenario())


def test_disabling_autoplay_while_revealing_lets_spin_settle_and_stops_chain():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=30, new_balance=150, can_continue=True)])
        machine, presenter = build_machine(authority)
        machine.session.balance = 100

        async def turn_off():
            await machine.set_autoplay(False)
        presenter.on_revealing = turn_off

        await machine.set_autoplay(True)
        await machine.wait_until_idle()

        assert len(authority.spin_calls) == 1
        assert machine.session.balance == 150
        assert machine.session.autoplay_enabled is False
        assert machine.state is SpinState.IDLE
        assert len(presenter.settled) == 1

    asyncio.run(scenario())


def test_autoplay_chains_until_server_says_stop():
    async def scenario():
        authority = FakeAuthority([
            make_outcome(False, new_balance=90, can_continue=True),
            make_outcome(True, power=50, new_balance=120, can_continue=True),
            make_outcome(False, new_balance=110, can_continue=False),
        ])
        machine, presenter = build_machine(authority)

        await machine.set_autoplay(True)
        await machine.wait_until_idle()

        assert len(authority.spin_calls) == 3
        assert machine.session.balance == 110
        assert [record.is_win for record in machine.history] == [False, True, False]
        assert presenter.states[-1] is SpinState.IDLE
        assert machine.session.autoplay_enabled is False
        assert len(presenter.notices) == 1
        assert not machine.autoplay_pending

    asyncio.run(scenario())


def test_autoplay_pause_counts_down():
    async def scenario():
        authority = FakeAuthority([
            make_outcome(False, can_continue=True),
            make_outcome(False, can_continue=False),
        ])
        machine, presenter = build_machine(authority, autoplay_pause=0.02)

        await machine.set_autoplay(True)
        await machine.wait_until_idle()

        assert len(authority.spin_calls) == 2
        assert presenter.countdowns == [1]

    asyncio.run(scenario())


def test_manual_spin_chains_into_autoplay():
    async def scenario():
        authority = FakeAuthority([
            make_outcome(False, can_continue=True),
            make_outcome(False, can_continue=False),
        ])
        machine, _ = build_machine(authority)
        machine.session.autoplay_enabled = True

        await machine.spin()
        assert machine.autoplay_pending
        with pytest.raises(GuardRejection):
            await machine.spin()

        await machine.wait_until_idle()
        assert len(authority.spin_calls) == 2

    asyncio.run(scenario())


def test_timeout_returns_to_idle_and_restores_everything():
    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=99, new_balance=9999)], delay=5)
        machine, presenter = build_machine(authority, outcome_timeout=0.05)
        machine.session.balance = 100
        before = machine.grid

        await machine.set_autoplay(True)
        await machine.wait_until_idle()

        assert machine.state is SpinState.IDLE
        assert machine.session.autoplay_enabled is False
        assert machine.session.balance == 100
        assert machine.grid == before
        assert isinstance(machine.session.last_error, AuthorityUnreachable)
        assert len(presenter.errors) == 1
        assert presenter.settled == []
        assert len(machine.history) == 0
        assert presenter.states == [SpinState.SPINNING, SpinState.IDLE]

    asyncio.run(scenario())


def test_malformed_response_is_recoverable():
    async def scenario():
        authority = FakeAuthority([
            MalformedResponse("bad payload"),
            make_outcome(False, new_balance=80),
        ])
        machine, presenter = build_machine(authority)

        assert await machine.spin() is None
        assert isinstance(presenter.errors[0], MalformedResponse)
        assert machine.state is SpinState.IDLE

        outcome = await machine.spin()
        assert outcome is not None
        assert machine.session.last_error is None
        assert machine.session.balance == 80

    asyncio.run(scenario())


def test_real_mode_requires_login():
    async def scenario():
        authority = FakeAuthority()
        machine, presenter = build_machine(authority)
        machine.session.real_mode = True
        machine.session.logged_in = False

        with pytest.raises(GuardRejection):
            await machine.spin()
        assert authority.spin_calls == []
        assert presenter.states == []

        machine.session.logged_in = True
        await machine.spin()
        assert authority.spin_calls == [(True, machine.session.bet_amount)]

    asyncio.run(scenario())


def test_autoplay_stops_with_notice_when_guard_fails():
    async def scenario():
        authority = FakeAuthority()
        machine, presenter = build_machine(authority)
        machine.session.real_mode = True

        await machine.set_autoplay(True)
        await machine.wait_until_idle()

        assert authority.spin_calls == []
        assert machine.session.autoplay_enabled is False
        assert presenter.notices

    asyncio.run(scenario())


def test_status_refresh_is_idempotent():
    async def scenario():
        status = MachineStatus(
            balance=250, min_bet=5, max_bet=50, can_spin=True, mode="demo", is_logged_in=True
        )
        authority = FakeAuthority(status=status)
        machine, presenter = build_machine(authority)

        await machine.refresh_status()
        first = (machine.session.balance, machine.session.min_bet, machine.session.max_bet,
                 machine.session.logged_in, machine.session.bet_amount)
        await machine.refresh_status()
        second = (machine.session.balance, machine.session.min_bet, machine.session.max_bet,
                  machine.session.logged_in, machine.session.bet_amount)

        assert first == second == (250, 5, 50, True, 10)
        assert authority.status_calls == 2
        assert machine.state is SpinState.IDLE
        assert presenter.states == []

    asyncio.run(scenario())


def test_bet_is_clamped_to_table_limits():
    async def scenario():
        status = MachineStatus(
            balance=250, min_bet=5, max_bet=50, can_spin=True, mode="demo", is_logged_in=True
        )
        machine, _ = build_machine(FakeAuthority(status=status))
        await machine.refresh_status()

        assert machine.set_bet(500) == 50
        assert machine.set_bet(1) == 5
        assert machine.set_bet(20) == 20

    asyncio.run(scenario())


def test_switch_mode_and_reset_refresh_status():
    async def scenario():
        authority = FakeAuthority()
        machine, _ = build_machine(authority)

        await machine.switch_mode(True)
        assert machine.session.real_mode is True
        assert authority.status_calls == 1

        await machine.reset_balance()
        assert authority.reset_calls == 1
        assert authority.status_calls == 2

    asyncio.run(scenario())


def test_session_changes_rejected_while_busy():
    async def scenario():
        gate = asyncio.Event()
        authority = FakeAuthority(gate=gate)
        machine, _ = build_machine(authority)

        task = asyncio.ensure_future(machine.spin())
        await asyncio.sleep(0.01)
        with pytest.raises(GuardRejection):
            machine.set_bet(20)
        with pytest.raises(GuardRejection):
            await machine.switch_mode(True)
        with pytest.raises(GuardRejection):
            await machine.reset_balance()
        assert authority.status_calls == 0
        assert authority.reset_calls == 0

        gate.set()
        await task

    asyncio.run(scenario())


def test_drop_reveal_fills_cells_in_stagger_order():
    async def scenario():
        authority = FakeAuthority([make_outcome(False)])
        machine, presenter = build_machine(authority, reveal_mode=REVEAL_DROP)
        await machine.spin()

        revealing = [grid for state, grid in presenter.frames if state is SpinState.REVEALING]
        start = next(
            i for i, grid in enumerate(revealing)
            if all(cell is None for row in grid for cell in row)
        )
        frames = revealing[start:]

        order = []
        for previous, current in zip(frames, frames[1:]):
            filled = [
                (c, r) for r in range(5) for c in range(7)
                if previous[r][c] is None and current[r][c] is not None
            ]
            assert len(filled) == 1
            order.extend(filled)

        settings = machine.settings
        expected = [
            (c, r) for _, c, r in sorted(
                (c * settings.drop_column_stagger + r * settings.drop_row_stagger, c, r)
                for c in range(7) for r in range(5)
            )
        ]
        assert order == expected
        assert frames[-1] == presenter.settled[0].grid

    asyncio.run(scenario())


def test_column_reveal_stops_left_to_right():
    async def scenario():
        authority = FakeAuthority([make_outcome(False)])
        machine, presenter = build_machine(authority)
        await machine.spin()

        final = presenter.settled[0].grid
        revealing = [grid for state, grid in presenter.frames if state is SpinState.REVEALING]
        assert len(revealing) >= 7

        def column(grid, c):
            return [grid[r][c] for r in range(5)]

        first_stop = []
        for c in range(7):
            index = next(i for i, grid in enumerate(revealing) if column(grid, c) == column(final, c))
            # A stopped column never moves again.
            assert all(column(grid, c) == column(final, c) for grid in revealing[index:])
            first_stop.append(index)
        assert first_stop == sorted(first_stop)
        assert revealing[-1] == final

    asyncio.run(scenario())


def test_idle_glow_only_runs_while_idle():
    async def scenario():
        gate = asyncio.Event()
        authority = FakeAuthority([make_outcome(False)], gate=gate)
        machine, presenter = build_machine(authority, idle_glow_interval=0.002)

        await machine.start()
        await asyncio.sleep(0.03)
        assert presenter.glows

        task = asyncio.ensure_future(machine.spin())
        await asyncio.sleep(0.01)
        glows_before = len(presenter.glows)
        await asyncio.sleep(0.03)
        assert len(presenter.glows) == glows_before

        gate.set()
        await task
        await asyncio.sleep(0.03)
        assert len(presenter.glows) > glows_before
        assert presenter.glow_outside_idle == 0

        await machine.shutdown()

    asyncio.run(scenario())


def test_shutdown_cancels_pending_autoplay():
    async def scenario():
        authority = FakeAuthority([make_outcome(False, can_continue=True)])
        machine, _ = build_machine(authority, autoplay_pause=10)

        await machine.set_autoplay(True)
        await asyncio.sleep(0.05)
        assert machine.autoplay_pending

        await machine.shutdown()
        assert not machine.autoplay_pending
        assert len(authority.spin_calls) == 1

    asyncio.run(scenario())


def test_simultaneous_spins_with_idle_glow_reach_the_authority_once():
    async def scenario():
        gate = asyncio.Event()
        authority = FakeAuthority([make_outcome(False)], gate=gate)
        machine, _ = build_machine(authority, idle_glow_interval=0.01)
        await machine.start()
        await asyncio.sleep(0.02)

        first = asyncio.ensure_future(machine.spin())
        second = asyncio.ensure_future(machine.spin())
        await asyncio.sleep(0.01)
        gate.set()
        results = await asyncio.gather(first, second, return_exceptions=True)

        assert sum(isinstance(result, GuardRejection) for result in results) == 1
        assert len(authority.spin_calls) == 1
        assert machine.state is SpinState.IDLE

        await machine.shutdown()

    asyncio.run(scenario())


def test_unexpected_error_returns_to_idle_and_stops_the_reels():
    async def scenario():
        authority = FakeAuthority([
            ValueError("cannot convert float NaN to integer"),
            make_outcome(False, new_balance=80),
        ])
        machine, presenter = build_machine(authority)
        machine.session.balance = 100
        before = machine.grid

        assert await machine.spin() is None
        assert machine.state is SpinState.IDLE
        assert machine._scope("reels").active == 0
        assert machine.grid == before
        assert machine.session.balance == 100
        assert isinstance(presenter.errors[0], SlotError)
        assert machine.session.last_error is presenter.errors[0]

        assert await machine.spin() is not None
        assert machine.session.balance == 80

    asyncio.run(scenario())


def test_presenter_failure_on_settle_still_returns_to_idle():
    class BrokenPresenter(RecordingPresenter):
        async def on_settled(self, report):
            raise RuntimeError("render failed")

    async def scenario():
        authority = FakeAuthority([make_outcome(True, power=40, new_balance=140)])
        presenter = BrokenPresenter()
        machine = SpinMachine(authority, presenter, settings=fast_settings(), rng=random.Random(3))
        presenter.machine = machine

        outcome = await machine.spin()

        assert outcome.is_win is True
        assert machine.state is SpinState.IDLE
        assert machine.session.balance == 140

    asyncio.run(scenario())


def test_manual_spin_turns_autoplay_off_when_server_refuses_more():
    async def scenario():
        authority = FakeAuthority([make_outcome(False, can_continue=False)])
        machine, presenter = build_machine(authority)
        machine.session.autoplay_enabled = True

        await machine.spin()

        assert machine.session.autoplay_enabled is False
        assert not machine.autoplay_pending
        assert presenter.notices
        assert machine.state is SpinState.IDLE

    asyncio.run(scenario())


def test_disabling_autoplay_during_countdown_frees_manual_spins_at_once():
    async def scenario():
        authority = FakeAuthority([make_outcome(False, can_continue=True)])
        machine, presenter = build_machine(authority, autoplay_pause=10)

        await machine.set_autoplay(True)
        for _ in range(100):
            if presenter.countdowns:
                break
            await asyncio.sleep(0.01)
        assert presenter.countdowns

        loop = asyncio.get_running_loop()
        started = loop.time()
        await machine.set_autoplay(False)
        assert loop.time() - started < 0.5
        assert not machine.autoplay_pending
        assert machine.state is SpinState.IDLE

        await machine.spin()
        assert len(authority.spin_calls) == 2

    asyncio.run(scenario())
