# File: gotostar_types.py
"""Minimal type definitions for the GotoStar driver."""

from dataclasses import dataclass
from enum import IntEnum


class CommandType(IntEnum):
    """Serial command response types."""
    BLIND = 0    # No response expected
    BOOL = 1     # Single character "1"/"0" response
    STRING = 2   # Text response, usually terminated with '#'


class GuideDirections(IntEnum):
    """Guide pulse directions (ASCOM numbering)."""
    guideNorth = 0
    guideSouth = 1
    guideEast = 2
    guideWest = 3


class DriveRates(IntEnum):
    """Tracking rates (ASCOM numbering)."""
    driveSidereal = 0
    driveLunar = 1
    driveSolar = 2
    driveKing = 3


class PierSide(IntEnum):
    """Side of the pier the optical tube is on."""
    pierUnknown = -1
    pierEast = 0
    pierWest = 1


@dataclass(frozen=True)
class MountSettings:
    """Everything the core needs from its configuration store."""
    port: str
    verbose: bool = False
    reply_timeout: float = 2.0
