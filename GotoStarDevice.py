# File: GotoStarDevice.py
"""GotoStar mount facade: typed operations over the serial protocol."""

import logging
import math
import threading
import time
from datetime import datetime, timezone
from logging import Logger
from typing import Callable, Optional, TypeVar

from astropy.time import Time

import gotostar_codec as codec
from gotostar_exceptions import (
    GotoStarError,
    InvalidArgumentError,
    ProtocolError,
)
from gotostar_guide import GuidePulseScheduler
from gotostar_serial import RequestReplyEngine, SerialTransport
from gotostar_types import CommandType, DriveRates, GuideDirections, MountSettings, PierSide


T = TypeVar('T')

TRACKING_SAMPLE_INTERVAL = 1.2
TRACKING_EPSILON = 1e-7
GUIDE_RATE_SETTLE_TIME = 0.2


class GotoStarMount:
    """
    High level access to a GotoStar mount controller.

    Every operation is a single exchange (or a short fixed sequence of
    exchanges) with the controller. Failures are reported by raising one of
    the GotoStarError subclasses; nothing is retried.

    Example:
        >>> with GotoStarMount(MountSettings(port='/dev/ttyUSB0')) as mount:
        ...     mount.connect()
        ...     print(mount.get_right_ascension(), mount.get_declination())
    """

    # Tracking rate <-> controller code
    TRACKING_RATE_CODES = {
        DriveRates.driveSidereal: '0',
        DriveRates.driveSolar: '1',
        DriveRates.driveLunar: '2',
    }

    PIER_SIDE_REPLIES = {
        'East#': PierSide.pierEast,
        'West#': PierSide.pierWest,
    }

    def __init__(self, settings: MountSettings, logger: Optional[Logger] = None,
                 transport: Optional[SerialTransport] = None) -> None:
        """
        Args:
            settings: Port and protocol options
            logger: Optional logger instance. If None, creates module logger.
            transport: Channel to use instead of a real serial port
        """
        self._settings = settings
        self._logger = logger or logging.getLogger(__name__)
        self._engine = RequestReplyEngine(
            transport=transport,
            logger=self._logger,
            verbose=settings.verbose,
            reply_timeout=settings.reply_timeout
        )
        self._guider = GuidePulseScheduler(self._engine, self.is_slewing, self._logger)

        self._lock = threading.Lock()
        self._site_latitude: Optional[float] = None
        self._site_longitude: Optional[float] = None

        self._tracking_sample_interval = TRACKING_SAMPLE_INTERVAL
        self._guide_rate_settle_time = GUIDE_RATE_SETTLE_TIME

    def __enter__(self) -> 'GotoStarMount':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    # Lifecycle

    @property
    def connected(self) -> bool:
        return self._engine.is_connected

    @property
    def link_confirmed(self) -> bool:
        """True once the controller has answered, False after a reply timeout."""
        return self._engine.link_confirmed

    def connect(self) -> None:
        """
        Open the serial channel named in the settings.

        Raises:
            OpenFailedError: If the port cannot be opened
        """
        self._logger.info(f"Connecting to GotoStar mount on {self._settings.port}")
        self._engine.open(self._settings.port)

    def disconnect(self) -> None:
        """Stop any guide pulses, then close the channel. Safe to call repeatedly."""
        self._guider.abort_all()
        self._engine.close()
        self._logger.info("Disconnected from GotoStar mount")

    def test_connection(self) -> str:
        """
        Check that a GotoStar controller answers on the port.

        Requests the command language version (":V#") and then the
        controller version (":Vs#").

        Returns:
            str: Controller version string without the terminator
        """
        language = self._request(':V#', 'command language version')
        self._logger.debug(f"Command language version: {language}")
        version = self._request(':Vs#', 'controller version')
        self._logger.info(f"GotoStar controller version: {version}")
        return version.rstrip('#')

    # Position and time

    def get_altitude(self) -> float:
        """Current altitude in degrees."""
        return self._query(':GA#', codec.parse_signed_dms, 'altitude')

    def get_azimuth(self) -> float:
        """Current azimuth in degrees."""
        return self._query(':GZ#', codec.parse_signed_dms, 'azimuth')

    def get_right_ascension(self) -> float:
        """Current right ascension in hours."""
        return self._query(':GR#', codec.parse_time_hms, 'right ascension')

    def get_declination(self) -> float:
        """Current declination in degrees."""
        return self._query(':GD#', codec.parse_signed_dms, 'declination')

    def get_side_of_pier(self) -> PierSide:
        """
        Side of the pier the optical tube is on.

        Raises:
            ProtocolError: If the reply is neither "East#" nor "West#"
        """
        return self._query(':pS#', self._parse_pier_side, 'side of pier')

    def get_sidereal_time(self) -> float:
        """
        Local sidereal time in hours.

        Falls back to a computed value when the mount cannot be queried.
        """
        try:
            return self._query(':GS#', codec.parse_clock_time, 'sidereal time')
        except GotoStarError as ex:
            self._logger.warning(f"Mount sidereal time unavailable, calculating locally: {ex}")
            return self.calculate_sidereal_time()

    def calculate_sidereal_time(self, when: Optional[datetime] = None) -> float:
        """
        Calculate local mean sidereal time using AstroPy.

        Uses the cached site longitude; Greenwich is assumed when no
        longitude is known yet.

        Args:
            when: UTC datetime for calculation (defaults to current time)

        Returns:
            float: Local sidereal time in hours (0-24)
        """
        if when is None:
            when = datetime.now(timezone.utc)

        if not isinstance(when, datetime):
            raise InvalidArgumentError(f"Time must be datetime object, got {type(when)}")

        with self._lock:
            longitude = self._site_longitude
        if longitude is None:
            self._logger.warning("Site longitude unknown, using Greenwich sidereal time")
            longitude = 0.0

        gmst = Time(when).sidereal_time('mean', 'greenwich').hour
        longitude_hours = longitude / 15.0
        lst = (gmst + longitude_hours) % 24

        self._logger.debug(f"Calculated LST: {lst:.6f}h (GMST: {gmst:.6f}h, Lon: {longitude_hours:.6f}h)")
        return lst

    def get_local_time(self) -> float:
        """Controller local time in decimal hours."""
        return self._query(':GL#', codec.parse_clock_time, 'local time')

    def get_utc_offset(self) -> int:
        """Site UTC offset in hours, West negative."""
        return self._query(':GG#', codec.parse_utc_offset, 'UTC offset')

    def set_utc_offset(self, hours: int) -> None:
        """
        Set the site UTC offset.

        Raises:
            InvalidArgumentError: If hours is not an integer in [-12, 14]
            ProtocolError: If the controller does not confirm
        """
        if not self._is_utc_offset(hours):
            raise InvalidArgumentError(f"UTC offset must be an integer from -12 to 14, got {hours}")

        self._confirm(f":SG {codec.format_utc_offset(hours)}#", 'UTC offset')
        self._logger.info(f"UTC offset set to {hours:+d}h")

    # Site location

    def get_site_latitude(self) -> float:
        """Site latitude in degrees, read from the mount on first use."""
        with self._lock:
            if self._site_latitude is not None:
                return self._site_latitude

        latitude = self._query(':Gt#', codec.parse_signed_dms, 'site latitude')
        with self._lock:
            # A set that completed during the query wins
            if self._site_latitude is None:
                self._site_latitude = latitude
            return self._site_latitude

    def set_site_latitude(self, latitude: float) -> None:
        """
        Set the site latitude.

        Args:
            latitude: Degrees, -90 to +90

        Raises:
            InvalidArgumentError: If latitude is out of range
            ProtocolError: If the controller does not confirm
        """
        if not self._is_number(latitude) or not -90.0 <= latitude <= 90.0:
            raise InvalidArgumentError(f"Latitude {latitude} outside valid range -90 to 90")

        self._confirm(f":St {codec.format_signed_dms(latitude)}#", 'site latitude')
        with self._lock:
            self._site_latitude = latitude
        self._logger.info(f"Site latitude set to {latitude}")

    def get_site_longitude(self) -> float:
        """Site longitude in degrees, read from the mount on first use."""
        with self._lock:
            if self._site_longitude is not None:
                return self._site_longitude

        longitude = self._query(':Gg#', codec.parse_signed_dms, 'site longitude')
        with self._lock:
            if self._site_longitude is None:
                self._site_longitude = longitude
            return self._site_longitude

    def set_site_longitude(self, longitude: float) -> None:
        """
        Set the site longitude.

        Args:
            longitude: Degrees, -180 to +180

        Raises:
            InvalidArgumentError: If longitude is out of range
            ProtocolError: If the controller does not confirm
        """
        if not self._is_number(longitude) or not -180.0 <= longitude <= 180.0:
            raise InvalidArgumentError(f"Longitude {longitude} outside valid range -180 to 180")

        self._confirm(f":Sg {codec.format_signed_dms(longitude, wide=True)}#", 'site longitude')
        with self._lock:
            self._site_longitude = longitude
        self._logger.info(f"Site longitude set to {longitude}")

    # Tracking

    def get_tracking_rate(self) -> DriveRates:
        """
        The current tracking rate of the mount.

        Raises:
            ProtocolError: If the mount returns an unknown rate code
        """
        return self._query(':GTR#', self._parse_tracking_rate, 'tracking rate')

    def set_tracking_rate(self, rate: DriveRates) -> None:
        """
        Set the tracking rate. The controller also starts tracking.

        Args:
            rate: Sidereal, Solar or Lunar

        Raises:
            InvalidArgumentError: If the rate is not supported
            ProtocolError: If the controller does not confirm
        """
        try:
            rate = DriveRates(rate)
        except ValueError:
            raise InvalidArgumentError(f"Invalid tracking rate: {rate}") from None

        code = self.TRACKING_RATE_CODES.get(rate)
        if code is None:
            raise InvalidArgumentError(f"Unsupported tracking rate: {rate.name}")

        self._confirm(f":STR{code}#", 'tracking rate')
        self._logger.info(f"Tracking rate set to {rate.name}")

    def get_tracking(self) -> bool:
        """
        Infer whether the mount is tracking from two RA samples.

        The controller has no tracking query. While tracking, RA stays
        constant; otherwise it drifts with sidereal time. A slew or guide
        pulse during sampling reads as not tracking.
        """
        first = self.get_right_ascension()
        time.sleep(self._tracking_sample_interval)
        second = self.get_right_ascension()

        change_minutes = abs((second - first) * 60.0)
        tracking = change_minutes < TRACKING_EPSILON
        self._logger.debug(f"RA change {change_minutes:.7f} min, tracking: {tracking}")
        return tracking

    def set_tracking(self, on: bool) -> None:
        """Switch tracking on or off. The controller sends no reply."""
        self._send_blind(':STON#' if on else ':STOFF#', 'tracking')
        self._logger.info(f"Tracking {'enabled' if on else 'disabled'}")

    # Guide rate

    def get_guide_rate(self) -> float:
        """Guide rate in degrees/second."""
        return self._query(':GGS#', codec.code_to_guide_rate, 'guide rate')

    def set_guide_rate(self, rate: float) -> None:
        """
        Set the guide rate to the nearest supported factor of sidereal.

        Changing the guide rate garbles the controller's UTC offset, so the
        offset is read first and written back after a short settle delay.

        Args:
            rate: Guide rate in degrees/second

        Raises:
            InvalidArgumentError: If rate is negative or not finite
            ProtocolError: If the mount reports a UTC offset outside -12 to 14
        """
        if not self._is_number(rate) or rate < 0:
            raise InvalidArgumentError(f"Guide rate must be a finite non-negative number: {rate}")

        code = codec.guide_rate_to_code(rate)
        utc_offset = self.get_utc_offset()
        if not self._is_utc_offset(utc_offset):
            self._logger.error(f"Mount reported UTC offset {utc_offset}, guide rate left unchanged")
            raise ProtocolError(f"UTC offset {utc_offset} from mount cannot be restored")

        self._send_blind(f":SGS{code}#", 'guide rate')
        time.sleep(self._guide_rate_settle_time)
        self.set_utc_offset(utc_offset)

        self._logger.info(f"Guide rate set to factor {codec.GUIDE_RATE_FACTORS[code]} of sidereal")

    # Slewing and guiding

    def is_slewing(self) -> bool:
        """
        True while the mount is slewing.

        Raises:
            ProtocolError: If the reply is not "0" or "1"
        """
        return self._query(':SE?#', self._parse_slewing, 'slew state')

    def abort_slew(self) -> None:
        """Stop motion on all axes if the mount is slewing, and any guide pulses."""
        if self.is_slewing():
            self._send_blind(':Q#', 'abort slew')
            self._logger.info("Slew aborted")
        self._guider.abort_all()

    def pulse_guide(self, direction: GuideDirections, duration: int) -> bool:
        """
        Start a guide pulse and return immediately.

        Args:
            direction: Guide direction (North/South/East/West)
            duration: Duration in milliseconds

        Returns:
            bool: False if declined because the mount is slewing or the
            direction already has a pulse in progress

        Raises:
            InvalidArgumentError: Invalid direction or negative duration
            QueryFailedError: Slew state could not be determined
        """
        return self._guider.start_pulse(direction, duration)

    def is_pulse_guiding(self) -> bool:
        return self._guider.is_guiding()

    def abort_guiding(self) -> None:
        """Stop all guide pulses in progress."""
        self._guider.abort_all()

    # Internals

    def _request(self, command: str, description: str) -> str:
        try:
            return self._engine.send_command(command, CommandType.STRING)
        except GotoStarError as ex:
            self._logger.error(f"Failed to retrieve {description}: {ex}")
            raise

    def _query(self, command: str, parse: Callable[[str], T], description: str) -> T:
        """Send command, parse the reply, translate parse failures to ProtocolError."""
        reply = self._request(command, description)
        try:
            value = parse(reply)
        except ValueError as ex:
            self._logger.error(f"Unexpected {description} reply to {command}: '{reply}'")
            raise ProtocolError(f"Unexpected reply to {command}: '{reply}'") from ex

        self._logger.debug(f"Current {description}: {value}")
        return value

    def _confirm(self, command: str, description: str) -> None:
        """Send a set command and require the "1" confirmation."""
        try:
            confirmed = self._engine.send_command(command, CommandType.BOOL)
        except GotoStarError as ex:
            self._logger.error(f"Failed to set {description}: {ex}")
            raise
        if not confirmed:
            self._logger.error(f"Mount rejected {description} with {command}")
            raise ProtocolError(f"Mount did not confirm {command}")

    def _send_blind(self, command: str, description: str) -> None:
        try:
            self._engine.send_command(command, CommandType.BLIND)
        except GotoStarError as ex:
            self._logger.error(f"Failed to send {description} command {command}: {ex}")
            raise

    def _parse_pier_side(self, reply: str) -> PierSide:
        side = self.PIER_SIDE_REPLIES.get(reply)
        if side is None:
            raise ValueError(f"Unknown pier side: '{reply}'")
        return side

    def _parse_tracking_rate(self, reply: str) -> DriveRates:
        code = reply.rstrip('#')
        for rate, rate_code in self.TRACKING_RATE_CODES.items():
            if rate_code == code:
                return rate
        raise ValueError(f"Unknown tracking rate code: '{reply}'")

    @staticmethod
    def _parse_slewing(reply: str) -> bool:
        state = reply.rstrip('#')
        if state not in ('0', '1'):
            raise ValueError(f"Unknown slew state: '{reply}'")
        return state == '1'

    @staticmethod
    def _is_utc_offset(hours) -> bool:
        return (isinstance(hours, int) and not isinstance(hours, bool)
                and -12 <= hours <= 14)

    @staticmethod
    def _is_number(value) -> bool:
        return (isinstance(value, (int, float)) and not isinstance(value, bool)
                and math.isfinite(value))
