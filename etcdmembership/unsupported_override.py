"""Detection of the unsupported, unsafe etcd override in operator config."""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

from .models import StaticPodOperatorSpec

log = logging.getLogger(__name__)

UNSUPPORTED_UNSAFE_ETCD_KEY = "useUnsupportedUnsafeNonHANonProductionUnstableEtcd"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def parse_bool(value: str) -> bool:
    """Parse a boolean the strict way: 1, t, true, 0, f, false and their case forms."""
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean syntax: {value!r}")


def _decode(raw: Any) -> Any:
    text = raw.decode() if isinstance(raw, (bytes, bytearray)) else raw
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        log.warning("unsupported config is not YAML: %s", exc)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"decode of unsupported config failed: {exc}") from exc


def is_unsupported_unsafe_etcd(spec: StaticPodOperatorSpec) -> bool:
    """Return True if the unsafe etcd override is set to a true value."""
    raw = spec.unsupported_config_overrides
    if raw is None:
        return False
    config = _decode(raw)
    if config is None:
        return False
    if not isinstance(config, dict):
        raise ValueError(
            f"decode of unsupported config failed: expected a mapping, got {type(config).__name__}"
        )
    if UNSUPPORTED_UNSAFE_ETCD_KEY not in config:
        return False
    value = config[UNSUPPORTED_UNSAFE_ETCD_KEY]
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return parse_bool(value)
    return False