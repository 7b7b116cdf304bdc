# File: gotostar_guide.py
"""
Timed guide pulses for the GotoStar controller.

The controller has no timed pulse command. A pulse is a move command
(":Mn#" etc.) followed, after the requested duration, by the matching stop
command (":Qn#" etc.). Each direction has its own busy flag and timer, so
pulses on different directions run concurrently while a second pulse in a
busy direction is declined.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from gotostar_exceptions import GotoStarError, InvalidArgumentError, QueryFailedError
from gotostar_types import GuideDirections


GUIDE_MODE_COMMAND = ':RG#'


@dataclass
class _AxisState:
    """Per-direction pulse bookkeeping. Guarded by the scheduler lock."""
    move_command: str
    stop_command: str
    busy: bool = False
    generation: int = 0
    timer: Optional[threading.Timer] = None


class GuidePulseScheduler:
    """
    Runs move/stop guide pulses on top of a RequestReplyEngine.

    Args:
        engine: Anything with a ``send_only(command)`` method
        is_slewing: Callable returning True while the mount slews
        logger: Optional logger instance. If None, creates module logger.
    """

    # Hardware command mappings
    AXIS_COMMANDS = {
        GuideDirections.guideNorth: (':Mn#', ':Qn#'),
        GuideDirections.guideSouth: (':Ms#', ':Qs#'),
        GuideDirections.guideEast: (':Me#', ':Qe#'),
        GuideDirections.guideWest: (':Mw#', ':Qw#'),
    }

    def __init__(self, engine, is_slewing: Callable[[], bool],
                 logger: Optional[logging.Logger] = None):
        self._engine = engine
        self._is_slewing = is_slewing
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        # Held while a move is dispatched so abort_all waits for it
        self._dispatch_lock = threading.RLock()
        self._axes: Dict[GuideDirections, _AxisState] = {
            direction: _AxisState(move, stop)
            for direction, (move, stop) in self.AXIS_COMMANDS.items()
        }

    def start_pulse(self, direction: GuideDirections, duration_ms: int) -> bool:
        """
        Start a guide pulse and return without waiting for it to finish.

        Args:
            direction: Guide direction (North/South/East/West)
            duration_ms: Pulse length in milliseconds, 0 or more

        Returns:
            bool: True if the pulse was started, False if it was declined
            because the mount is slewing or the direction is already pulsing

        Raises:
            InvalidArgumentError: Unknown direction or negative duration
            QueryFailedError: The slewing state could not be read
            TransportError: The move command could not be written
        """
        try:
            direction = GuideDirections(direction)
        except ValueError:
            raise InvalidArgumentError(f"Invalid guide direction: {direction}") from None

        if duration_ms < 0:
            raise InvalidArgumentError(f"Pulse duration cannot be negative: {duration_ms}")

        try:
            slewing = self._is_slewing()
        except GotoStarError as ex:
            self._logger.error(f"Pulse guide {direction.name}: slew state unavailable: {ex}")
            raise QueryFailedError(f"Cannot determine slew state before {direction.name} pulse") from ex

        if slewing:
            self._logger.info(f"Pulse guide {direction.name} declined: mount is slewing")
            return False

        self._engine.send_only(GUIDE_MODE_COMMAND)

        state = self._axes[direction]
        with self._dispatch_lock:
            with self._lock:
                if state.busy:
                    self._logger.info(f"Pulse guide {direction.name} declined: already active")
                    return False
                state.busy = True
                state.generation += 1
                generation = state.generation

            try:
                self._engine.send_only(state.move_command)
            except GotoStarError:
                with self._lock:
                    if state.generation == generation:
                        state.busy = False
                raise

            with self._lock:
                aborted = state.generation != generation
                if not aborted:
                    timer = threading.Timer(duration_ms / 1000.0, self._on_timer, args=(direction,))
                    timer.daemon = True
                    state.timer = timer
                    timer.start()

            if aborted:
                # abort_all ran while the move was in flight
                self._logger.info(f"Pulse guide {direction.name} aborted while starting")
                self._send_stop(direction)
                return True

        self._logger.debug(f"Pulse guide {direction.name} started for {duration_ms} msec")
        return True

    def is_guiding(self) -> bool:
        """True while any direction has a pulse in progress."""
        with self._lock:
            return any(state.busy for state in self._axes.values())

    def is_direction_busy(self, direction: GuideDirections) -> bool:
        with self._lock:
            return self._axes[GuideDirections(direction)].busy

    def abort_all(self) -> None:
        """Stop every pulse in progress now, sending its stop command."""
        with self._dispatch_lock:
            with self._lock:
                active = []
                for direction, state in self._axes.items():
                    if state.timer is not None:
                        state.timer.cancel()
                        state.timer = None
                    if state.busy:
                        state.generation += 1
                        active.append(direction)

            for direction in active:
                self._logger.info(f"Aborting pulse guide {direction.name}")
                self._stop_axis(direction)

    def _on_timer(self, direction: GuideDirections) -> None:
        state = self._axes[direction]
        with self._lock:
            # Superseded by abort_all or a newer pulse
            if state.timer is not threading.current_thread():
                return
            state.timer = None
        self._stop_axis(direction)

    def _stop_axis(self, direction: GuideDirections) -> None:
        """Send the stop command and release the direction. Never raises."""
        try:
            self._send_stop(direction)
        finally:
            with self._lock:
                self._axes[direction].busy = False

    def _send_stop(self, direction: GuideDirections) -> None:
        try:
            self._engine.send_only(self._axes[direction].stop_command)
            self._logger.debug(f"Pulse guide {direction.name} stopped")
        except GotoStarError as ex:
            self._logger.error(f"Failed to stop pulse guide {direction.name}: {ex}")
