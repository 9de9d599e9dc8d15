"""
Transport codec — settings in, compact QR-sized JSON out, and back.

Wire format:

    {"v": 1, "t": <epoch ms>, "m": "theme"|"full"|"custom",
     "d": {"s": {<alias>: value}, "i": {<alias>: value}, "w"?: <wallpaper>}}

With a password the whole document above is encrypted and wrapped:

    {"v": 1, "t": <epoch ms>, "m": <mode>, "e": true, "d": "<packed envelope>"}

Decoding treats every payload as hostile. Unknown aliases and values
that fail their schema check are dropped one by one; the decode as a
whole only fails for problems with the envelope itself.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from typing import Any, Optional

from . import crypto
from .errors import (
    MalformedInput,
    MissingTimestamp,
    PasswordRequired,
    UnknownMode,
    UnsupportedVersion,
)
from .models import DecodeResult, EncodeResult, ExportMode
from .schema import ICON_REGISTRY, SETTINGS_REGISTRY, SchemaRegistry

logger = logging.getLogger("cjsync.codec")

PROTOCOL_VERSION = 1
MAX_TRANSPORT_CHARS = 2000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def _select(values: dict[str, Any], registry: SchemaRegistry, mode: ExportMode) -> dict[str, Any]:
    """Pick the entries a mode exports."""
    if mode == ExportMode.CUSTOM:
        return dict(values)
    if mode == ExportMode.THEME:
        allowed = set(registry.appearance_keys())
    else:
        allowed = set(registry.keys())
    return {k: v for k, v in values.items() if k in allowed}


def _alias(values: dict[str, Any], registry: SchemaRegistry) -> dict[str, Any]:
    return {registry.alias_for(k): v for k, v in values.items()}


def _unalias(
    values: dict[str, Any],
    registry: SchemaRegistry,
    dropped: list[str],
) -> dict[str, Any]:
    """Map aliases back to keys, dropping anything unknown or invalid."""
    result: dict[str, Any] = {}
    for alias, value in values.items():
        field = registry.by_alias(alias)
        if field is None:
            dropped.append(f"{registry.name}.{alias} (unknown alias)")
            continue
        if not field.accepts(value):
            dropped.append(f"{registry.name}.{field.key} (invalid)")
            continue
        result[field.key] = value
    return result


def _valid_wallpaper(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    body = value.split(",", 1)[1] if value.startswith("data:") else value
    try:
        base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def encode(
    settings: dict[str, Any],
    icon_config: dict[str, Any],
    mode: ExportMode | str = ExportMode.FULL,
    password: Optional[str] = None,
    *,
    wallpaper: Optional[str] = None,
    limit: int = MAX_TRANSPORT_CHARS,
    iterations: Optional[int] = None,
) -> EncodeResult:
    """Encode settings and icon configuration as a transport payload.

    Args:
        settings: Live settings keyed by full name.
        icon_config: Live icon configuration keyed by full name.
        mode: theme (appearance fields only), full (every registered
            field) or custom (exactly the supplied keys).
        password: Encrypt the payload when given.
        wallpaper: Optional wallpaper data URL to carry along.
        limit: Transport capacity in characters.
        iterations: PBKDF2 work factor override.

    Returns:
        EncodeResult: Payload string, its size, and whether it overflows.
    """
    mode = ExportMode(mode)
    body: dict[str, Any] = {
        "s": _alias(_select(settings, SETTINGS_REGISTRY, mode), SETTINGS_REGISTRY),
        "i": _alias(_select(icon_config, ICON_REGISTRY, mode), ICON_REGISTRY),
    }
    if wallpaper:
        body["w"] = wallpaper

    timestamp = _now_ms()
    payload = _dumps({"v": PROTOCOL_VERSION, "t": timestamp, "m": mode.value, "d": body})

    if password:
        packed = crypto.encrypt_packed(payload, password, iterations)
        payload = _dumps({
            "v": PROTOCOL_VERSION,
            "t": timestamp,
            "m": mode.value,
            "e": True,
            "d": packed,
        })

    size = len(payload)
    logger.debug(
        "Encoded %s payload: %d settings, %d icon fields, %d chars (encrypted=%s)",
        mode.value, len(body["s"]), len(body["i"]), size, bool(password),
    )
    return EncodeResult(payload=payload, size=size, is_over_limit=size > limit)


def _parse(text: str) -> dict[str, Any]:
    try:
        obj = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"Invalid JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise MalformedInput("Payload is not a JSON object")
    return obj


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate(payload: dict[str, Any]) -> ExportMode:
    """Check the top-level fields of a parsed payload.

    Returns:
        ExportMode: The payload's mode.

    Raises:
        UnsupportedVersion: Version missing, not an integer, or out of range.
        MissingTimestamp: Timestamp missing or not numeric.
        UnknownMode: Mode not one of theme/full/custom.
    """
    version = payload.get("v")
    if not isinstance(version, int) or isinstance(version, bool) or not 1 <= version <= PROTOCOL_VERSION:
        raise UnsupportedVersion(f"Unsupported protocol version: {version!r}", version=version)

    if not _is_number(payload.get("t")):
        raise MissingTimestamp("Payload has no timestamp")

    try:
        return ExportMode(payload.get("m"))
    except ValueError:
        raise UnknownMode(f"Unknown export mode: {payload.get('m')!r}") from None


def decode(
    text: str,
    password: Optional[str] = None,
    *,
    iterations: Optional[int] = None,
) -> DecodeResult:
    """Decode and sanitize a transport payload.

    Args:
        text: Payload string as read from a QR code or file.
        password: Password for encrypted payloads.
        iterations: PBKDF2 work factor override.

    Returns:
        DecodeResult: Sanitized settings and icon configuration.

    Raises:
        MalformedInput: Bad JSON or bad shape.
        PasswordRequired: Encrypted payload, no password given.
        InvalidPassword: Encrypted payload, authentication failed.
        MissingTimestamp, UnsupportedVersion, UnknownMode: Bad header.
    """
    payload = _parse(text)
    encrypted = payload.get("e") is True

    if encrypted:
        if not password:
            raise PasswordRequired()
        inner = crypto.decrypt_packed(payload.get("d"), password, iterations)
        payload = _parse(inner)
        if payload.get("e") is True:
            raise MalformedInput("Nested encrypted payload")

    mode = validate(payload)

    body = payload.get("d")
    if not isinstance(body, dict):
        raise MalformedInput("Payload has no data object")

    raw_settings = body.get("s") or {}
    raw_icons = body.get("i") or {}
    if not isinstance(raw_settings, dict) or not isinstance(raw_icons, dict):
        raise MalformedInput("Settings and icon data must be objects")

    dropped: list[str] = []
    settings = _unalias(raw_settings, SETTINGS_REGISTRY, dropped)
    icon_config = _unalias(raw_icons, ICON_REGISTRY, dropped)

    wallpaper = body.get("w")
    if wallpaper is not None and not _valid_wallpaper(wallpaper):
        dropped.append("wallpaper (invalid)")
        wallpaper = None

    if dropped:
        logger.debug("Dropped %d field(s) during decode: %s", len(dropped), ", ".join(dropped))

    return DecodeResult(
        settings=settings,
        icon_config=icon_config,
        wallpaper=wallpaper,
        mode=mode,
        version=payload["v"],
        timestamp=payload["t"],
        encrypted=encrypted,
        dropped=dropped,
    )
