# File: gotostar_serial.py
"""
Serial transport and request/reply engine for the GotoStar controller.

The transport owns the port and a background reader thread that hands every
burst of received text to a callback. The engine sits on top of it and
turns the asynchronous stream into strictly ordered command/reply exchanges.

Example:
    >>> with RequestReplyEngine(logger=logger) as engine:
    ...     engine.open('/dev/ttyUSB0')
    ...     ra = engine.send_command(':GR#', CommandType.STRING)
"""

import logging
import queue
import threading
import time
from typing import Callable, Optional, Union

import serial

from gotostar_exceptions import (
    NotConnectedError,
    OpenFailedError,
    ReplyTimeoutError,
    WriteFailedError,
)
from gotostar_types import CommandType


# Constants
DEFAULT_BAUDRATE = 9600
READ_TIMEOUT = 0.1
REPLY_TIMEOUT = 2.0
SETTLE_TIME = 0.03
READER_JOIN_TIMEOUT = 1.0
TERMINATOR = '#'
ENCODING = 'ascii'
CONFIRMATION = '1'


class SerialTransport:
    """
    Byte channel to the controller: 9600-8-N-1, no flow control.

    Writes are fire and forget. Received bytes are collected by a daemon
    reader thread which, once something arrives, waits a short settle delay
    and drains whatever else is pending, so a reply split across several
    hardware reads is delivered in a single ``on_receive(text)`` call.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._serial: Optional[serial.Serial] = None
        self._reader: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._on_receive: Optional[Callable[[str], None]] = None

    @property
    def is_open(self) -> bool:
        """Check if the port is open."""
        with self._lock:
            return self._serial is not None and self._serial.is_open

    def open(self, port: str, on_receive: Callable[[str], None],
             baudrate: int = DEFAULT_BAUDRATE) -> None:
        """
        Open the port and start the reader thread.

        Args:
            port: Serial port path (e.g., '/dev/ttyUSB0' or 'COM3')
            on_receive: Called from the reader thread with each received text
            baudrate: Communication baud rate

        Raises:
            ValueError: If port is empty
            OpenFailedError: If the port cannot be opened or configured
        """
        if not port or not isinstance(port, str):
            raise ValueError("Port must be a non-empty string")

        with self._lock:
            if self.is_open:
                self._logger.warning(f"Serial port already open, reopening on {port}")
                self.close()

            try:
                self._serial = serial.Serial(
                    port=port,
                    baudrate=baudrate,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    timeout=READ_TIMEOUT,
                    xonxoff=False,
                    rtscts=False,
                    dsrdtr=False
                )

                if not self._serial.is_open:
                    self._serial.open()

            except (serial.SerialException, OSError, ValueError) as ex:
                self._serial = None
                self._logger.error(f"Failed to open serial connection on {port}: {ex}")
                raise OpenFailedError(f"Cannot open {port}: {ex}") from ex

            self._on_receive = on_receive
            self._stop_event.clear()
            self._reader = threading.Thread(
                target=self._reader_loop,
                args=(self._serial,),
                name=f"GotoStarReader-{port}",
                daemon=True
            )
            self._reader.start()

            self._logger.info(f"Serial connection opened: {port} @ {baudrate} baud")

    def close(self) -> None:
        """Stop the reader and release the port. Safe to call repeatedly."""
        with self._lock:
            self._stop_event.set()
            reader, self._reader = self._reader, None

            if self._serial:
                try:
                    if self._serial.is_open:
                        self._serial.close()
                        self._logger.info("Serial connection closed")
                except (serial.SerialException, OSError) as ex:
                    self._logger.warning(f"Error closing serial connection: {ex}")
                finally:
                    self._serial = None

            self._on_receive = None

        if reader and reader is not threading.current_thread():
            reader.join(READER_JOIN_TIMEOUT)
            if reader.is_alive():
                self._logger.warning("Serial reader thread did not stop in time")

    def write(self, data: str) -> None:
        """
        Write text to the port without waiting for anything back.

        Raises:
            NotConnectedError: If the port is not open
            WriteFailedError: If the write fails
        """
        with self._lock:
            if not self.is_open:
                raise NotConnectedError("Serial port not connected")

            try:
                self._serial.write(data.encode(ENCODING))
                self._serial.flush()
            except (serial.SerialException, OSError) as ex:
                self._logger.error(f"Serial write of {data} failed: {ex}")
                raise WriteFailedError(f"Write failed for {data}: {ex}") from ex

    def _reader_loop(self, port: serial.Serial) -> None:
        """Collect incoming bursts and hand them to the receive callback."""
        self._logger.debug("Serial reader started")

        while not self._stop_event.is_set():
            try:
                data = port.read(port.in_waiting or 1)
                if not data:
                    continue

                # Let the rest of the reply arrive before delivering
                time.sleep(SETTLE_TIME)
                pending = port.in_waiting
                if pending:
                    data += port.read(pending)

            except (serial.SerialException, OSError, TypeError, AttributeError) as ex:
                if not self._stop_event.is_set():
                    self._logger.error(f"Serial read failed, reader stopping: {ex}")
                break

            text = data.decode(ENCODING, errors='replace')
            callback = self._on_receive
            if callback is None:
                continue

            try:
                callback(text)
            except Exception as ex:
                self._logger.error(f"Receive callback failed for '{text}': {ex}")

        self._logger.debug("Serial reader stopped")


class RequestReplyEngine:
    """
    One command/reply exchange at a time over a SerialTransport.

    Exchanges are totally ordered by a single lock; concurrent callers
    block on it. The reader thread posts deliveries on a queue and the
    calling thread waits on that queue with a bounded timeout. Nothing is
    retried: a command whose reply timed out may still have been executed
    by the controller.
    """

    def __init__(self, transport: Optional[SerialTransport] = None,
                 logger: Optional[logging.Logger] = None,
                 verbose: bool = False,
                 reply_timeout: float = REPLY_TIMEOUT):
        """
        Args:
            transport: Channel to use. A SerialTransport is created if None.
            logger: Optional logger instance. If None, creates module logger.
            verbose: Log every command and reply at DEBUG level
            reply_timeout: Default seconds to wait for a reply
        """
        self._logger = logger or logging.getLogger(__name__)
        self._transport = transport or SerialTransport(self._logger)
        self._lock = threading.Lock()
        self._replies: "queue.Queue[str]" = queue.Queue()
        self._verbose = verbose
        self._reply_timeout = reply_timeout
        self._link_confirmed = False

    def __enter__(self) -> 'RequestReplyEngine':
        """Context manager entry - connection must be established separately."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def is_connected(self) -> bool:
        return self._transport.is_open

    @property
    def link_confirmed(self) -> bool:
        """True once a reply arrived, False again after a reply timeout."""
        return self._link_confirmed

    def open(self, port: str) -> None:
        """Open the transport on port. Raises OpenFailedError on failure."""
        self._link_confirmed = False
        self._drain_stale()
        self._transport.open(port, self._on_receive)

    def close(self) -> None:
        """Close the transport. Safe to call repeatedly."""
        self._transport.close()
        self._link_confirmed = False

    def send_only(self, command: str) -> None:
        """
        Send a command for which no reply is awaited.

        Raises:
            NotConnectedError: If the port is not open
            WriteFailedError: If the write fails
        """
        with self._lock:
            self._write(command)

    def send_and_await_reply(self, command: str, timeout: Optional[float] = None) -> str:
        """
        Send a command and wait for its reply.

        Deliveries left over from earlier exchanges are discarded before the
        write. A delivery that lacks the '#' terminator is topped up with any
        fragment that arrives within one settle interval.

        Args:
            command: Command string (e.g., ':GR#')
            timeout: Seconds to wait, defaults to the engine's reply timeout

        Returns:
            str: Reply text as received

        Raises:
            NotConnectedError: If the port is not open
            WriteFailedError: If the write fails
            ReplyTimeoutError: If nothing arrives before the deadline
        """
        if timeout is None:
            timeout = self._reply_timeout

        with self._lock:
            self._drain_stale()
            self._write(command)

            try:
                reply = self._replies.get(timeout=timeout)
            except queue.Empty:
                self._link_confirmed = False
                self._logger.warning(f"No reply to {command} within {timeout}s")
                raise ReplyTimeoutError(f"No reply to {command} within {timeout}s") from None

            while TERMINATOR not in reply:
                try:
                    reply += self._replies.get(timeout=SETTLE_TIME)
                except queue.Empty:
                    break

            self._link_confirmed = True
            if self._verbose:
                self._logger.debug(f"Reply to {command}: {reply}")
            return reply

    def send_command(self, command: str,
                     command_type: CommandType = CommandType.STRING) -> Union[str, bool, None]:
        """
        Send a command and interpret the reply according to command_type.

        Returns:
            None for BLIND, the reply text for STRING, reply == "1" for BOOL

        Raises:
            ValueError: If command does not start with ':' and end with '#'
        """
        if not command or not isinstance(command, str):
            raise ValueError("Command must be a non-empty string")

        if not command.startswith(':') or not command.endswith(TERMINATOR):
            raise ValueError("Command must start with ':' and end with '#'")

        if command_type == CommandType.BLIND:
            self.send_only(command)
            return None

        reply = self.send_and_await_reply(command)
        if command_type == CommandType.BOOL:
            return reply.rstrip(TERMINATOR) == CONFIRMATION
        return reply

    def _write(self, command: str) -> None:
        if self._verbose:
            self._logger.debug(f"Sending {command}")
        self._transport.write(command)

    def _drain_stale(self) -> None:
        """Discard deliveries nobody asked for."""
        while True:
            try:
                stale = self._replies.get_nowait()
            except queue.Empty:
                return
            if self._verbose:
                self._logger.debug(f"Discarding stale data: {stale}")

    def _on_receive(self, text: str) -> None:
        self._replies.put(text)
