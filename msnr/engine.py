"""
msnr Engine - Executes run protocol actions.

The engine bridges the pure functional run protocol to concrete parts:
- Transport (RadioTransport or any ITransport)
- Amplifier controller (remote LNA write-then-verify)
- Statistics, route validation and the record sink
- Host callbacks (progress snapshots, log sink)

The engine is host-agnostic: a CLI, a UI shell or a test drives it the same
way, by calling run() with a progress callback.
"""
from __future__ import annotations

import base64
import binascii
import threading
import time
from collections import deque
from typing import Sequence

import numpy as np

from .amplifier import AmplifierController
from .config import Config, Topology
from .errors import MsnrError, TransportError
from .log import LogSink, null_logger
from .nodes import format_node_id, parse_node_id
from .progress import (
    PHASE_DONE,
    RUNNING_PROGRESS_CAP,
    ProgressCallback,
    ProgressState,
    phase_name,
)
from .protocol import (
    RunProtocol,
    RunState,
    Stage,
    Event,
    Action,
    StartRun,
    Connected,
    AmplifierSet,
    SettleElapsed,
    MeasurementComplete,
    SummaryEmitted,
    Disconnected,
    RunFailed,
    Connect,
    Disconnect,
    EmitPhaseStart,
    SetAmplifier,
    Settle,
    Measure,
    EmitSummary,
    Log,
)
from .records import RecordSink, TracerouteRecord, open_record_sink
from .session import AdminSession, SessionKeyStore
from .stats import AverageStats, PhaseStats
from .transport.frames import Frame, decode_route
from .transport.interface import ITransport
from .validation import validate_relay_route

# Client signing identity (base64 X25519 private key)
CLIENT_IDENTITY_B64 = "EP7uGaSlaoJHVp5wYVzv5O6fQQNx+q8yb9OshyMANmU="

QUARTER_DB = 4.0


class Engine:
    """
    Runs the LNA off/on comparison.

    Usage:
        engine = Engine(config, transport, logger=python_logger())
        engine.run(lambda progress: print(progress.status_message))
        print(engine.average_stats())
    """

    def __init__(
        self,
        config: Config,
        transport: ITransport,
        logger: LogSink | None = None,
        record_sink: RecordSink | None = None,
        identity_b64: str = CLIENT_IDENTITY_B64,
    ):
        self._config = config
        self._transport = transport
        self._logger = logger or null_logger
        self._sink = record_sink or open_record_sink(config)
        self._identity_b64 = identity_b64

        # Protocol state
        self._state = RunState()

        # Per-run bookkeeping
        self._keys = SessionKeyStore(logger=self._logger)
        self._stats_off = PhaseStats()
        self._stats_on = PhaseStats()
        self._cancel = threading.Event()

        self._session: AdminSession | None = None
        self._amplifier: AmplifierController | None = None
        self._on_progress: ProgressCallback = lambda progress: None

        self.accepted_samples = 0
        self.rejected_samples = 0

    # === Properties ===

    @property
    def state(self) -> RunState:
        """Current run state (read-only)."""
        return self._state

    @property
    def stage(self) -> Stage:
        return self._state.stage

    @property
    def session_keys(self) -> SessionKeyStore:
        return self._keys

    def average_stats(self) -> AverageStats:
        return AverageStats.from_phases(self._stats_off, self._stats_on)

    # === Host control ===

    def cancel(self) -> None:
        """Ask a running run() to stop at its next wait. Thread-safe."""
        self._cancel.set()

    def run(self, on_progress: ProgressCallback) -> None:
        """
        Execute the whole run.

        Returns normally once the terminal snapshot has been emitted and the
        link closed. Any fatal condition is raised as an MsnrError.
        """
        if self._state.stage is not Stage.IDLE:
            raise MsnrError("Engine has already run; create a new Engine for each run")
        self._on_progress = on_progress
        pending: deque[Event] = deque([StartRun(cycles=self._config.cycles)])

        while pending:
            event = pending.popleft()
            self._state, actions = RunProtocol.step(self._state, event)
            for action in actions:
                try:
                    follow_up = self._execute(action)
                except BaseException as e:
                    self._fail(e)
                    raise
                if follow_up is not None:
                    pending.append(follow_up)

    def _fail(self, error: BaseException) -> None:
        reason = str(error) or type(error).__name__
        self._state, actions = RunProtocol.step(self._state, RunFailed(reason=reason))
        for action in actions:
            match action:
                case Log(level, message):
                    self._logger(level, message)
                case Disconnect():
                    self._disconnect()

    # === Action Execution ===

    def _execute(self, action: Action) -> Event | None:
        """Execute a single action; returns the event reporting its outcome."""

        match action:
            case Log(level, message):
                self._logger(level, message)
                return None

            case Connect():
                self._connect()
                return Connected()

            case EmitPhaseStart(cycle, lna_on):
                self._emit_phase_start(cycle, lna_on)
                return None

            case SetAmplifier(enable):
                self._require_amplifier().set_mode(enable)
                return AmplifierSet(enabled=enable)

            case Settle():
                self._require_session().sleep(self._config.timings.settle_s)
                return SettleElapsed()

            case Measure(cycle, lna_on):
                samples = self._measure(cycle, lna_on)
                return MeasurementComplete(samples=samples)

            case EmitSummary():
                self._emit_summary()
                return SummaryEmitted()

            case Disconnect():
                self._disconnect()
                return Disconnected()

            case _:
                self._logger("warn", f"[Engine] Unknown action: {action}")
                return None

    # === Link ===

    def _connect(self) -> None:
        frames = self._transport.connect()
        self._session = AdminSession(
            self._transport, frames, self._keys, logger=self._logger, cancel_event=self._cancel,
        )
        self._amplifier = AmplifierController(self._config, self._session, logger=self._logger)
        self._install_identity()

    def _install_identity(self) -> None:
        try:
            private_key = base64.b64decode(self._identity_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            self._logger("error", f"[Engine] Error decoding private key: {e}")
            return
        self._logger("info", "[Engine] Injecting user identity (client-side signing)...")
        try:
            self._transport.set_identity(private_key)
        except ValueError as e:
            self._logger("error", f"[Engine] Rejected identity key material: {e}")

    def _disconnect(self) -> None:
        try:
            self._transport.disconnect()
        except Exception as e:
            self._logger("warn", f"[Engine] Warning: failed to disconnect cleanly: {e}")

    def _require_session(self) -> AdminSession:
        if self._session is None:
            raise TransportError("Not connected")
        return self._session

    def _require_amplifier(self) -> AmplifierController:
        if self._amplifier is None:
            raise TransportError("Not connected")
        return self._amplifier

    # === Progress ===

    @property
    def _total_phases(self) -> int:
        return max(1, self._config.cycles * 2)

    @property
    def _phase_secs(self) -> int:
        return self._config.phase_duration_ms // 1000

    def _emit(self, progress: ProgressState) -> None:
        self._on_progress(progress)

    def _emit_phase_start(self, cycle: int, lna_on: bool) -> None:
        passed = self._state.phases_passed
        remaining_phases = self._total_phases - passed
        self._emit(ProgressState(
            total_progress=passed / self._total_phases,
            current_round_progress=0.0,
            status_message=(
                f"Cycle {cycle + 1}/{self._config.cycles}: "
                f"Starting Phase {passed % 2 + 1} ({phase_name(lna_on)})"
            ),
            eta_seconds=remaining_phases * self._phase_secs,
            phase=phase_name(lna_on),
        ))

    def _global_progress(self, round_progress: float) -> float:
        return min((self._state.phases_passed + round_progress) / self._total_phases, RUNNING_PROGRESS_CAP)

    def _emit_tick(self, cycle: int, lna_on: bool, elapsed_secs: int) -> None:
        total_steps = max(1, self._phase_secs)
        round_progress = min(elapsed_secs / total_steps, 1.0)

        future_phases = self._total_phases - self._state.phases_passed - 1
        eta = max(0, total_steps - elapsed_secs) + future_phases * self._phase_secs

        self._emit(ProgressState(
            total_progress=self._global_progress(round_progress),
            current_round_progress=round_progress,
            status_message=(
                f"Cycle {cycle + 1}: {phase_name(lna_on)} - Step {elapsed_secs}/{total_steps}"
            ),
            eta_seconds=eta,
            phase=phase_name(lna_on),
        ))

    def _emit_summary(self) -> None:
        stats = self.average_stats()
        self._emit(ProgressState(
            total_progress=1.0,
            current_round_progress=1.0,
            status_message="Test Completed",
            eta_seconds=0,
            phase=PHASE_DONE,
            average_stats=stats,
        ))
        for line in stats.summary_lines():
            self._logger("info", line)

    # === Measurement ===

    def _measure(self, cycle: int, lna_on: bool) -> int:
        """
        One measurement window, driven by a fixed tick.

        Ticks fire at whole seconds since the window opened (0, 1, 2, ...)
        and the window closes at the phase duration. Frames are handled as
        they arrive in between.
        """
        session = self._require_session()
        tick_s = self._config.timings.tick_s
        interval_secs = self._config.interval_ms // 1000
        duration_s = self._config.phase_duration_s
        destination = self._config.traceroute_destination

        self._logger("info", f"[Engine] Measuring {phase_name(lna_on)} for {duration_s:.0f}s")
        accepted_before = self.accepted_samples

        start = time.monotonic()
        next_tick = start
        while True:
            now = time.monotonic()
            if now - start >= duration_s:
                break

            if now >= next_tick:
                next_tick += tick_s
                session.check_cancelled()
                elapsed_secs = int(now - start)
                self._emit_tick(cycle, lna_on, elapsed_secs)
                if interval_secs > 0 and elapsed_secs % interval_secs == 0 and destination:
                    try:
                        self._transport.run_traceroute(destination)
                    except Exception as e:
                        self._logger("error", f"[Engine] Error sending traceroute: {e}")
                continue

            frame = session.next_frame(min(next_tick, start + duration_s) - now)
            if frame is not None:
                self._handle_frame(frame, cycle, lna_on)

        return self.accepted_samples - accepted_before

    def _handle_frame(self, frame: Frame, cycle: int, lna_on: bool) -> None:
        route = decode_route(frame)
        if route is None:
            return
        self._logger("info", f"[Engine] Traceroute response received ({phase_name(lna_on)})")
        if self._process_sample(cycle, lna_on, list(route.route), route.snr_towards, route.snr_back):
            self.accepted_samples += 1
        else:
            self.rejected_samples += 1

    def _process_sample(
        self,
        cycle: int,
        lna_on: bool,
        hops: list[int],
        raw_towards: Sequence[int],
        raw_back: Sequence[int],
    ) -> bool:
        timings = self._config.timings
        towards = np.asarray(raw_towards, dtype=np.float64) / QUARTER_DB
        back = np.asarray(raw_back, dtype=np.float64) / QUARTER_DB

        both = np.concatenate([towards, back])
        if np.isclose(both, timings.snr_floor_db, rtol=0.0, atol=timings.snr_floor_epsilon).any():
            self._logger("info", f"[Engine] Skipping traceroute sample (SNR hit {timings.snr_floor_db:.0f} dB floor).")
            return False

        roof_to_mtn = float(towards[1]) if towards.size > 1 else None
        mtn_to_roof = float(back[0]) if back.size > 0 else None

        relay = self._config.topology is Topology.RELAY
        if relay and not self._route_is_valid(hops):
            return False

        bucket = self._stats_on if lna_on else self._stats_off
        bucket.add_sample(roof_to_mtn, mtn_to_roof)

        snr_towards = towards.tolist()
        snr_back = back.tolist()
        self._emit(ProgressState(
            total_progress=self._global_progress(0.0),
            current_round_progress=0.0,
            status_message=f"Received Result ({phase_name(lna_on)})",
            eta_seconds=0,
            phase=phase_name(lna_on),
            snr_towards=snr_towards,
            snr_back=snr_back,
            average_stats=self.average_stats(),
        ))

        if relay:
            self._persist(cycle, lna_on, hops, snr_towards, snr_back)
        else:
            self._logger("info", f"[Engine] SNR towards: {snr_towards}")
            self._logger("info", f"[Engine] SNR back: {snr_back}")
        return True

    def _route_is_valid(self, hops: list[int]) -> bool:
        roof_num = self._config.roof_num
        verdict = validate_relay_route(hops, roof_num)
        if not verdict:
            self._logger("warn", f"[Engine] VALIDATION FAIL: {verdict.reason} | Route {hops}")
            return False

        local = self._amplifier.local_node_id if self._amplifier else None
        local_num = parse_node_id(local) if local else self._config.local_num
        self._logger(
            "info",
            f"[Engine] VALIDATION PASS: Local({format_node_id(local_num)}) -> "
            f"Roof({format_node_id(roof_num)}), {verdict.reason}",
        )
        return True

    def _persist(
        self,
        cycle: int,
        lna_on: bool,
        hops: list[int],
        snr_towards: list[float],
        snr_back: list[float],
    ) -> None:
        if len(snr_towards) >= 2 and len(snr_back) >= 2:
            self._logger("info", "[Engine] --- SNR DATA (Roof <-> Mtn) ---")
            self._logger("info", f"[Engine] Roof -> Mtn : {snr_towards[1]:.2f} dB")
            self._logger("info", f"[Engine] Mtn  -> Roof: {snr_back[0]:.2f} dB")

        record = TracerouteRecord.from_sample(cycle, phase_name(lna_on), hops, snr_towards, snr_back)
        try:
            self._sink.append(record)
        except OSError as e:
            self._logger("error", f"[Engine] Error writing record: {e}")
        else:
            self._logger("debug", "[Engine] Data saved.")
