#!/usr/bin/env python3
"""
ACR122U NFC Bridge - Main Application

This is the entry point of the bridge. It initializes logging, the NFC bridge,
PC/SC reader monitoring (or a simulated reader) and the API server, then waits
until it is interrupted.
"""

import argparse
import sys
import time

from .config import CONFIG, nfc_settings
from .modules.api import api_server
from .modules.nfc import nfc_controller
from .modules.nfc.authentication import primary_password_candidate
from .modules.nfc.layouts import LAYOUTS_BY_NAME
from .modules.nfc.simulated_tag import SimulatedCard, SimulatedTag
from .utils.event_bus import event_bus
from .utils.exceptions import ConfigurationError
from .utils.logger import get_logger, set_global_log_level, setup_logger

logger = get_logger(__name__)

SIMULATED_READER_NAME = "ACS ACR122U PICC Interface (simulated)"

# Running components, set by initialize_components()
_monitor = None


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog='acr122u-bridge',
        description="Bridge between an ACR122U NFC reader and web clients")
    parser.add_argument('--host', help=f"API host (default: {CONFIG['api']['host']})")
    parser.add_argument('--port', type=int, help=f"API port (default: {CONFIG['api']['port']})")
    parser.add_argument('--debug', action='store_true', help="Enable debug level logging")
    parser.add_argument('--simulate', action='store_true',
                        help="Run against a simulated NTAG instead of PC/SC hardware")
    parser.add_argument('--simulate-family', default='NTAG215', choices=sorted(LAYOUTS_BY_NAME),
                        help="Tag family of the simulated tag (default: NTAG215)")
    parser.add_argument('--simulate-password',
                        help="Password already set on the simulated tag (protects from page 4)")
    return parser.parse_args(argv)


def _simulated_tag(args):
    if args.simulate_password:
        candidate = primary_password_candidate(args.simulate_password)
        return SimulatedTag(args.simulate_family, password=candidate.password_bytes, auth0=0x04)
    return SimulatedTag(args.simulate_family)


def initialize_components(args):
    """Initialize all application components."""
    global _monitor

    logger.info("Initializing ACR122U NFC Bridge components...")

    settings = nfc_settings()
    bridge = nfc_controller.initialize(event_bus=event_bus, settings=settings)

    # Start API server in a separate thread
    api_server.initialize(bridge=bridge, bus=event_bus)
    api_server.start()

    if args.simulate:
        logger.info(f"Using simulated {args.simulate_family} tag")
        bridge.reader_attached(SIMULATED_READER_NAME)
        bridge.card_inserted(SIMULATED_READER_NAME, SimulatedCard(SIMULATED_READER_NAME, _simulated_tag(args)))
    else:
        # pyscard needs the PC/SC library, so it is only imported for real hardware
        from .modules.nfc.pcsc_monitor import PCSCMonitor

        _monitor = PCSCMonitor(bridge, reader_filter=settings['reader_filter'])
        _monitor.start()

    logger.info("All components initialized successfully")


def main_loop():
    """Wait for reader events until interrupted."""
    logger.info("Entering main application loop")

    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Application shutdown requested")
    finally:
        shutdown()


def shutdown():
    """Perform graceful shutdown of all components."""
    global _monitor

    logger.info("Shutting down ACR122U NFC Bridge...")

    if _monitor is not None:
        _monitor.stop()
        _monitor = None

    # Stop API server
    api_server.stop()

    # Shutdown NFC bridge
    nfc_controller.shutdown()

    logger.info("Shutdown complete")


def main(argv=None):
    args = parse_args(argv)

    if args.host:
        CONFIG['api']['host'] = args.host
    if args.port:
        CONFIG['api']['port'] = args.port

    setup_logger(log_file=CONFIG['logging']['file'] or None, level=CONFIG['logging']['level'],
                 max_bytes=CONFIG['logging']['max_bytes'],
                 backup_count=CONFIG['logging']['backup_count'])
    if args.debug:
        set_global_log_level('DEBUG')

    try:
        initialize_components(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e.message}")
        return 2
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1

    main_loop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
