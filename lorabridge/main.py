"""
LoRa Bridge entry point.

Bridges the host CoT network (UDP CoT datagrams) with the LoRa modem process.

Usage:
    python -m lorabridge.main [--config bridge.json] [--log-dir logs] [--log-level DEBUG]

Property of Uncompromising Sensors LLC.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

import orjson

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cotkit.logging import configureLogging, getLogger, installServiceContextFilter, setServiceContext
from lorabridge.bridgeManager import BridgeManager, identityFromConfig
from lorabridge.config import loadConfig
from lorabridge.core.hostBus import ContactDirectory, UdpCotBus


def parseArgs(argv=None):
    parser = argparse.ArgumentParser(description='LoRa Bridge - CoT over LoRa')
    parser.add_argument('--config', default=None, help='Path to bridge config (JSON)')
    parser.add_argument('--log-dir', default=None, help='Log directory (default $LORABRIDGE_LOG_DIR or ./logs)')
    parser.add_argument('--log-level', default=None, help='DEBUG, INFO, WARNING, ERROR')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parseArgs(argv)

    # Config first so its logging section applies; load errors are reported once logging is up
    config, usedDefaults = loadConfig(args.config)
    logConfig = config.get('logging', {})
    configureLogging(
        logDir=args.log_dir or logConfig.get('logDir'),
        level=args.log_level or logConfig.get('level', 'INFO'),
        console=logConfig.get('console', True)
    )
    log = getLogger('lorabridge.main')
    if args.config and usedDefaults:
        config, _ = loadConfig(args.config, log)

    identity = identityFromConfig(config)
    setServiceContext('lorabridge', identity.deviceUid, identity.callsign)
    installServiceContextFilter(log)

    log.info("=" * 60)
    log.info("LoRa Bridge")
    log.info("=" * 60)
    log.info(f"Config: {args.config or 'defaults'}")

    hostConfig = config.get('hostBus', {})
    bus = UdpCotBus(hostConfig['rxUri'], hostConfig['txUri'])
    directory = ContactDirectory()
    bus.subscribe(directory.observe)

    manager = BridgeManager(config, bus, directory)

    stopEvent = threading.Event()

    def handleSignal(signum, frame):
        log.info("[Main] Shutdown signal received", signal=signum)
        stopEvent.set()

    signal.signal(signal.SIGINT, handleSignal)
    signal.signal(signal.SIGTERM, handleSignal)

    if not bus.start():
        log.error("[Main] Host bus did not start")
        return 1

    exitCode = 0
    try:
        if not manager.start():
            log.error("[Main] Bridge did not start")
            exitCode = 1
        else:
            log.info("[Main] Bridge running (Ctrl+C to stop)")
            while not stopEvent.wait(1.0):
                pass
    finally:
        manager.stop()
        bus.stop()
        log.info("[Main] Final status " + orjson.dumps(manager.status(), default=str).decode())
        log.info("[Main] LoRa Bridge stopped")

    return exitCode


if __name__ == '__main__':
    sys.exit(main())
