# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# GotoStarControl.py - Command line front end
#
# Probes a GotoStar controller, prints mount status, or issues a guide pulse.
#
# -----------------------------------------------------------------------------

import argparse
import sys
import time

import log
from GotoStarConfig import GotoStarConfig, GotoStarConfigError
from GotoStarDevice import GotoStarMount
from gotostar_exceptions import GotoStarError
from gotostar_types import GuideDirections

DIRECTIONS = {
    'north': GuideDirections.guideNorth,
    'south': GuideDirections.guideSouth,
    'east': GuideDirections.guideEast,
    'west': GuideDirections.guideWest,
}


class GotoStarControl:
    """Runs one command-line action against a mount"""

    def __init__(self, mount: GotoStarMount, out=None):
        self.mount = mount
        self.out = out or sys.stdout

    def _print(self, text: str) -> None:
        print(text, file=self.out)

    def probe(self) -> int:
        """Report the controller version, as the setup dialog's test button does"""
        version = self.mount.test_connection()
        self._print(f"GotoStar controller version: {version}")
        return 0

    def status(self) -> int:
        """Print position, site and rate information"""
        m = self.mount
        self._print(f"Right ascension: {m.get_right_ascension():.5f} h")
        self._print(f"Declination:     {m.get_declination():.5f} deg")
        self._print(f"Altitude:        {m.get_altitude():.5f} deg")
        self._print(f"Azimuth:         {m.get_azimuth():.5f} deg")
        self._print(f"Side of pier:    {m.get_side_of_pier().name}")
        self._print(f"Latitude:        {m.get_site_latitude():.5f} deg")
        self._print(f"Longitude:       {m.get_site_longitude():.5f} deg")
        self._print(f"Sidereal time:   {m.get_sidereal_time():.5f} h")
        self._print(f"UTC offset:      {m.get_utc_offset():+d} h")
        self._print(f"Tracking rate:   {m.get_tracking_rate().name}")
        self._print(f"Guide rate:      {m.get_guide_rate():.6f} deg/s")
        self._print(f"Slewing:         {m.is_slewing()}")
        return 0

    def guide(self, direction: str, duration: int) -> int:
        """Issue one guide pulse and wait for it to finish"""
        if not self.mount.pulse_guide(DIRECTIONS[direction], duration):
            self._print(f"Guide pulse {direction} declined")
            return 1

        while self.mount.is_pulse_guiding():
            time.sleep(0.05)
        self._print(f"Guide pulse {direction} for {duration} msec done")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='GotoStar Mount Control')
    parser.add_argument('--config', help='Path to GotoStarconfig.toml')
    parser.add_argument('--port', help='Serial port, overrides the configuration')
    parser.add_argument('--verbose', action='store_true',
                        help='Log every command and reply')

    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('probe', help='Check that the controller answers')
    sub.add_parser('status', help='Print mount status')
    guide = sub.add_parser('guide', help='Issue a guide pulse')
    guide.add_argument('direction', choices=sorted(DIRECTIONS))
    guide.add_argument('duration', type=int, help='Pulse length in milliseconds')
    return parser


def main(argv=None) -> int:
    """Entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = GotoStarConfig(config_file=args.config)
    except GotoStarConfigError as ex:
        print(f"Configuration error: {ex}", file=sys.stderr)
        return 2

    if args.port:
        config.dev_port = args.port
    if args.verbose:
        config.verbose_logging = True

    logger = log.init_logging(config)

    try:
        settings = config.settings()
    except GotoStarConfigError as ex:
        print(f"Configuration error: {ex}", file=sys.stderr)
        return 2

    try:
        with GotoStarMount(settings, logger) as mount:
            mount.connect()
            control = GotoStarControl(mount)
            if args.command == 'probe':
                return control.probe()
            elif args.command == 'status':
                return control.status()
            return control.guide(args.direction, args.duration)
    except GotoStarError as ex:
        logger.error(f"{args.command} failed: {ex}")
        print(f"Error: {ex}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested...")
        return 0


if __name__ == '__main__':
    sys.exit(main())
