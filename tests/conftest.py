"""
Shared pytest fixtures for GotoStar driver tests.

This module provides common fixtures used across unit and integration tests,
including mock loggers, serial ports, a scripted controller that answers
commands from a reply table, and mount instances wired to it.
"""

import pytest
from unittest.mock import Mock, MagicMock, patch
import threading
import time
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from gotostar_exceptions import NotConnectedError
from gotostar_types import MountSettings


class ScriptedController:
    """Stands in for SerialTransport and answers like a GotoStar controller.

    Replies are looked up by exact command text. A reply may be a string,
    a list of strings (delivered as separate fragments), a callable taking
    the command, or absent (the controller stays silent). Every write is
    recorded as (command, start, end) using time.monotonic().
    """

    def __init__(self, replies=None, write_delay=0.0):
        self.replies = dict(replies or {})
        self.write_delay = write_delay
        self.writes = []
        self.open_port = None
        self.open_count = 0
        self.close_count = 0
        self._on_receive = None
        self._is_open = False
        self._record_lock = threading.Lock()

    @property
    def is_open(self):
        return self._is_open

    @property
    def commands(self):
        with self._record_lock:
            return [command for command, _, _ in self.writes]

    def open(self, port, on_receive, baudrate=9600):
        self.open_port = port
        self.open_count += 1
        self._on_receive = on_receive
        self._is_open = True

    def close(self):
        self.close_count += 1
        self._is_open = False

    def write(self, data):
        if not self._is_open:
            raise NotConnectedError("Serial port not connected")

        start = time.monotonic()
        if self.write_delay:
            time.sleep(self.write_delay)
        end = time.monotonic()
        with self._record_lock:
            self.writes.append((data, start, end))

        reply = self.replies.get(data)
        if callable(reply):
            reply = reply(data)
        if reply is None:
            return
        for fragment in (reply if isinstance(reply, (list, tuple)) else [reply]):
            self._on_receive(fragment)


# Typical replies of a mount parked at the pole, tracking, not slewing
DEFAULT_REPLIES = {
    ':V#': '1.0#',
    ':Vs#': 'GotoStar 2.1#',
    ':GA#': '+21*18:00#',
    ':GZ#': ' 180*00:00#',
    ':GR#': '12:30:15.5#',
    ':GD#': '+45*30:00#',
    ':pS#': 'East#',
    ':Gt#': '+52*30:00#',
    ':Gg#': '-004*54:00#',
    ':GG#': 'E01#',
    ':GS#': '06:15:30#',
    ':GL#': '21:45:10#',
    ':SE?#': '0',
    ':GTR#': '0',
    ':GGS#': '1',
}


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns:
        Mock logger with standard logging methods.
    """
    logger = Mock()
    logger.debug = Mock()
    logger.info = Mock()
    logger.warning = Mock()
    logger.error = Mock()
    logger.critical = Mock()
    return logger


@pytest.fixture
def mock_serial_port():
    """Mock serial port for testing without hardware.

    Reads return nothing after a short pause so the reader thread idles
    the way it would on a quiet line.

    Yields:
        MagicMock serial port instance.
    """
    def quiet_read(size=1):
        time.sleep(0.01)
        return b''

    with patch('serial.Serial') as mock:
        instance = MagicMock()
        instance.is_open = True
        instance.in_waiting = 0
        instance.timeout = 0.1
        instance.read = Mock(side_effect=quiet_read)
        instance.write = Mock(return_value=0)
        instance.flush = Mock()
        instance.close = Mock()
        mock.return_value = instance
        yield instance


@pytest.fixture
def controller():
    """Scripted controller with the default reply table."""
    return ScriptedController(DEFAULT_REPLIES)


@pytest.fixture
def settings():
    """Mount settings with a short reply timeout to keep timeout tests quick."""
    return MountSettings(port='COM7', verbose=True, reply_timeout=0.2)


@pytest.fixture
def mount(settings, mock_logger, controller):
    """Connected GotoStarMount talking to the scripted controller.

    The tracking sample interval and guide-rate settle delay are zeroed.
    """
    from GotoStarDevice import GotoStarMount

    device = GotoStarMount(settings, mock_logger, transport=controller)
    device._tracking_sample_interval = 0
    device._guide_rate_settle_time = 0
    device.connect()
    yield device
    device.disconnect()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or a deadline passes.

    Returns:
        Function (predicate, timeout=2.0) -> bool
    """
    def _wait(predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()
    return _wait


# Utility fixtures

@pytest.fixture
def temp_toml_file(tmp_path):
    """Create temporary TOML config file.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary config file.
    """
    config_content = f'''
[device]
dev_port = '/dev/ttyUSB0'

[driver]
verbose_logging = true
reply_timeout = 1.5

[logging]
log_to_stdout = false
max_size_mb = 2
num_keep_logs = 3
log_file = '{(tmp_path / "gotostar.log").as_posix()}'
'''
    config_file = tmp_path / 'GotoStarconfig.toml'
    config_file.write_text(config_content)
    return config_file
