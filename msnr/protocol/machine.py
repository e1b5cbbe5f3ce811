"""
Run State Machine.

The cycle/phase sequencing of a test run, implemented as a pure function:
    step(state, event) -> (new_state, actions)

No I/O, no clock. The engine executes the returned actions and reports
their outcome as the next event.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable

from .state import RunState, Stage
from .events import (
    Event,
    StartRun,
    Connected,
    AmplifierSet,
    SettleElapsed,
    MeasurementComplete,
    SummaryEmitted,
    Disconnected,
    RunFailed,
)
from .actions import (
    Action,
    Connect,
    Disconnect,
    EmitPhaseStart,
    SetAmplifier,
    Settle,
    Measure,
    EmitSummary,
    Log,
)


StepResult = tuple[RunState, list[Action]]


class RunProtocol:
    """
    Pure functional state machine for one test run.

    Usage:
        state = RunState()
        state, actions = RunProtocol.step(state, StartRun(cycles=2))
        # engine executes actions...
        state, actions = RunProtocol.step(state, Connected())
        # etc.
    """

    @staticmethod
    def step(state: RunState, event: Event) -> StepResult:
        handler = _HANDLERS.get((state.stage, type(event)))
        if handler:
            return handler(state, event)

        handler = _GLOBAL_HANDLERS.get(type(event))
        if handler:
            return handler(state, event)

        # Not expected here: no state change, no actions
        return (state, [])


# =============================================================================
# Stage-specific handlers
# =============================================================================

def _begin_phase(state: RunState, cycle: int, lna_on: bool) -> StepResult:
    label = "ON" if lna_on else "OFF"
    return (
        replace(
            state,
            stage=Stage.TOGGLE_ON if lna_on else Stage.TOGGLE_OFF,
            cycle=cycle,
            lna_on=lna_on,
        ),
        [
            Log("info", f"[RunProtocol] Cycle {cycle + 1}/{state.total_cycles}: LNA {label} phase"),
            EmitPhaseStart(cycle, lna_on),
            SetAmplifier(lna_on),
        ],
    )


def _summarize(state: RunState) -> StepResult:
    return (
        replace(state, stage=Stage.SUMMARIZE),
        [
            Log("info", "[RunProtocol] All cycles complete"),
            EmitSummary(),
        ],
    )


def _handle_idle_start(state: RunState, event: StartRun) -> StepResult:
    return (
        replace(
            state,
            stage=Stage.CONNECTING,
            total_cycles=max(0, event.cycles),
            cycle=0,
            lna_on=False,
            last_error=None,
        ),
        [
            Log("info", f"[RunProtocol] Starting run ({event.cycles} cycles)"),
            Connect(),
        ],
    )


def _handle_connecting_connected(state: RunState, event: Connected) -> StepResult:
    state = replace(state, connected=True)
    if state.total_cycles == 0:
        return _summarize(state)
    return _begin_phase(state, cycle=0, lna_on=False)


def _handle_toggle_amplifier_set(state: RunState, event: AmplifierSet) -> StepResult:
    if event.enabled != state.lna_on:
        return (state, [Log("warn", f"[RunProtocol] Ignoring stale LNA result ({event.enabled})")])
    return (replace(state, stage=Stage.SETTLE), [Settle()])


def _handle_settle_elapsed(state: RunState, event: SettleElapsed) -> StepResult:
    return (
        replace(state, stage=Stage.MEASURE_ON if state.lna_on else Stage.MEASURE_OFF),
        [Measure(state.cycle, state.lna_on)],
    )


def _phase_complete(state: RunState, event: MeasurementComplete) -> Log:
    label = "ON" if state.lna_on else "OFF"
    return Log("info", f"[RunProtocol] LNA {label} phase complete ({event.samples} samples)")


def _handle_measure_off_complete(state: RunState, event: MeasurementComplete) -> StepResult:
    new_state, actions = _begin_phase(state, cycle=state.cycle, lna_on=True)
    return (new_state, [_phase_complete(state, event), *actions])


def _handle_measure_on_complete(state: RunState, event: MeasurementComplete) -> StepResult:
    next_cycle = state.cycle + 1
    if next_cycle < state.total_cycles:
        new_state, actions = _begin_phase(state, cycle=next_cycle, lna_on=False)
    else:
        new_state, actions = _summarize(state)
    return (new_state, [_phase_complete(state, event), *actions])


def _handle_summary_emitted(state: RunState, event: SummaryEmitted) -> StepResult:
    return (replace(state, stage=Stage.DISCONNECT), [Disconnect()])


def _handle_disconnected(state: RunState, event: Disconnected) -> StepResult:
    return (
        replace(state, stage=Stage.DONE, connected=False),
        [Log("info", "[RunProtocol] Run complete")],
    )


# =============================================================================
# Global handlers (stage-agnostic)
# =============================================================================

def _handle_run_failed(state: RunState, event: RunFailed) -> StepResult:
    if state.is_terminal:
        return (state, [])

    actions: list[Action] = [Log("error", f"[RunProtocol] Run failed: {event.reason}")]
    if state.connected:
        actions.append(Disconnect())
    return (
        replace(state, stage=Stage.FAILED, connected=False, last_error=event.reason),
        actions,
    )


# =============================================================================
# Handler dispatch tables
# =============================================================================

_HANDLERS: dict[tuple[Stage, type], Callable[[RunState, Event], StepResult]] = {
    (Stage.IDLE, StartRun): _handle_idle_start,
    (Stage.CONNECTING, Connected): _handle_connecting_connected,

    # OFF phase
    (Stage.TOGGLE_OFF, AmplifierSet): _handle_toggle_amplifier_set,
    (Stage.MEASURE_OFF, MeasurementComplete): _handle_measure_off_complete,

    # ON phase
    (Stage.TOGGLE_ON, AmplifierSet): _handle_toggle_amplifier_set,
    (Stage.MEASURE_ON, MeasurementComplete): _handle_measure_on_complete,

    (Stage.SETTLE, SettleElapsed): _handle_settle_elapsed,

    # Wrap-up
    (Stage.SUMMARIZE, SummaryEmitted): _handle_summary_emitted,
    (Stage.DISCONNECT, Disconnected): _handle_disconnected,
}

_GLOBAL_HANDLERS: dict[type, Callable[[RunState, Event], StepResult]] = {
    RunFailed: _handle_run_failed,
}
