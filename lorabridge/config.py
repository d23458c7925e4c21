"""Bridge configuration: JSON file deep-merged over immutable defaults."""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import orjson

from lorabridge.core.contract import DEFAULT_RADIO_TYPE_FILTER, DEFAULT_TRACKER_HIGH_WATER_MARK

ConfigResult = Tuple[dict, bool]

DEFAULT_CONFIG = {
    "_comment_identity": "deviceUid must be unique per node; it marks locally generated chat for echo suppression.",
    "_comment_channel": "rxUri/txUri face the LoRa modem process. udp:// is the default; nng+ipc:// and nng+tcp:// also work.",
    "identity": {
        "deviceUid": "LORABRIDGE-0001",
        "callsign": "LORA-1",
        "lat": 0.0,
        "lon": 0.0,
        "hae": 9999999.0
    },
    "channel": {
        "rxUri": "udp://127.0.0.1:1383",
        "txUri": "udp://127.0.0.1:1382",
        "workers": 2,
        "queueSize": 100,
        "joinTimeoutSeconds": 0.5,
        "recvBufferBytes": 4096
    },
    "codec": {
        "compactor": "deflate"
    },
    "sync": {
        "trackerHighWaterMark": DEFAULT_TRACKER_HIGH_WATER_MARK,
        "radioTypeFilter": list(DEFAULT_RADIO_TYPE_FILTER)
    },
    "database": {
        "path": "data/lorabridge.db"
    },
    "hostBus": {
        "rxUri": "udp://127.0.0.1:4242",
        "txUri": "udp://127.0.0.1:4243"
    },
    "logging": {
        "logDir": None,
        "level": "INFO",
        "console": True
    }
}

_REQUIRED_SECTIONS = ('identity', 'channel', 'codec', 'sync', 'database', 'hostBus', 'logging')


def defaultConfig() -> dict:
    return copy.deepcopy(DEFAULT_CONFIG)


def mergeConfig(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive merge; dicts merge key by key, everything else replaces"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = mergeConfig(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def validateConfig(config: dict) -> None:
    if not isinstance(config, dict):
        raise ValueError('config is not a JSON object')
    for section in _REQUIRED_SECTIONS:
        if not isinstance(config.get(section), dict):
            raise ValueError(f"Missing '{section}' section")

    if not config['identity'].get('deviceUid'):
        raise ValueError("identity.deviceUid is required")

    channel = config['channel']
    workers = channel.get('workers')
    if not isinstance(workers, int) or not 1 <= workers <= 4:
        raise ValueError(f"channel.workers must be 1-4, got {workers!r}")
    if not isinstance(channel.get('queueSize'), int) or channel['queueSize'] < 1:
        raise ValueError("channel.queueSize must be a positive integer")
    for key in ('rxUri', 'txUri'):
        if '://' not in str(channel.get(key, '')):
            raise ValueError(f"channel.{key} must be a URI")

    highWaterMark = config['sync'].get('trackerHighWaterMark')
    if not isinstance(highWaterMark, int) or highWaterMark < 1:
        raise ValueError("sync.trackerHighWaterMark must be a positive integer")
    if not isinstance(config['sync'].get('radioTypeFilter'), list):
        raise ValueError("sync.radioTypeFilter must be a list")


def loadConfig(path: Optional[str | Path], log: Optional[object] = None) -> ConfigResult:
    """
    Load a bridge config file, falling back to the defaults on any error.

    Returns:
        (config, usedDefaults)
    """
    if path is None:
        return defaultConfig(), True

    configPath = Path(path)
    try:
        loaded = orjson.loads(configPath.read_bytes())
        if not isinstance(loaded, dict):
            raise ValueError('config is not a JSON object')
        config = mergeConfig(DEFAULT_CONFIG, loaded)
        validateConfig(config)
        if log:
            log.info('Loaded bridge config', configPath=str(configPath))
        return config, False
    except Exception as exc:
        if log:
            log.error('Failed to load bridge config, using defaults', configPath=str(configPath),
                      errorClass=type(exc).__name__, errorMsg=str(exc))
        return defaultConfig(), True
