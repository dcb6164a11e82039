"""
Conversion of controller payloads into telemetry samples.

The controller answers in JSON or XHTML depending on firmware and request
hints, so both are accepted. Joint fields are parsed leniently: a missing or
malformed field becomes ``0.0`` instead of discarding the whole sample.
"""

import json
import logging
import math
import re
import xml.etree.ElementTree as ET
from ._types import TelemetrySample, JOINT_COUNT
from ._errors import ParseError

_log = logging.getLogger(__name__)

JOINT_KEYS = tuple(f"j{i+1}" for i in range(JOINT_COUNT))

SUBSCRIPTION_HREF_RE = re.compile(r"(?:^|/)(?:subscription|poll)/([^/?#\s]+)/?$")

def parse_payload(raw, expected_subscription_id = None, timestamp = None):
    """
    Parse a raw event or polling payload.

    :param raw: payload text (``bytes`` are decoded as UTF-8)
    :param expected_subscription_id: when set, the payload must carry this
        subscription id, otherwise it is ignored
    :param timestamp: capture timestamp, defaults to now
    :return: ``TelemetrySample`` or ``None`` if the payload is valid but not
        for this client or carries no joint state
    :raises ParseError: payload is empty, or neither JSON nor XML
    """
    text = _payload_text(raw)
    if text.startswith("{") or text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ParseError(f"Invalid JSON payload: {e}") from e
        return _parse_json(data, expected_subscription_id, timestamp)
    if text.startswith("<"):
        root = parse_xml(text)
        return _parse_xml(root, expected_subscription_id, timestamp)
    raise ParseError(f"Unrecognized payload format: {text[:40]!r}")

def _payload_text(raw):
    if raw is None:
        raise ParseError("Empty payload")
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    text = raw.lstrip("\ufeff").strip()
    if not text:
        raise ParseError("Empty payload")
    return text

def parse_xml(text):
    try:
        return ET.fromstring(text)
    except ET.ParseError as e:
        raise ParseError(f"Invalid XML payload: {e}") from e

def local_name(tag):
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]

def joint_value(value):
    if value is None:
        return 0.
    if isinstance(value, bool):
        _log.debug("Ignoring boolean joint value %r", value)
        return 0.
    try:
        # float() ignores the host locale, "12,5" is rejected rather than misread
        v = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        _log.debug("Malformed joint value %r, using 0", value)
        return 0.
    if not math.isfinite(v):
        _log.debug("Non-finite joint value %r, using 0", value)
        return 0.
    return v

def _json_state(data):
    if isinstance(data, list):
        return _json_state(data[0]) if data else None
    if not isinstance(data, dict):
        return None
    if any(k in data for k in JOINT_KEYS):
        return data
    embedded = data.get("_embedded")
    if isinstance(embedded, dict):
        for key in ("_state", "resources"):
            items = embedded.get(key)
            if isinstance(items, list) and items and isinstance(items[0], dict):
                if any(k in items[0] for k in JOINT_KEYS):
                    return items[0]
    state = data.get("state")
    if isinstance(state, (dict, list)):
        return _json_state(state)
    return None

def _parse_json(data, expected_subscription_id, timestamp):
    if expected_subscription_id is not None:
        sub = data.get("subscription") if isinstance(data, dict) else None
        if sub is None or str(sub) != str(expected_subscription_id):
            _log.debug("Ignoring message for subscription %r", sub)
            return None
    state = _json_state(data)
    if state is None:
        return None
    return TelemetrySample.create([joint_value(state.get(k)) for k in JOINT_KEYS], timestamp)

def xml_subscription_id(root):
    for el in root.iter():
        name = local_name(el.tag)
        if name == "subscription" and el.text and el.text.strip():
            return el.text.strip()
        attr = el.get("subscription")
        if attr:
            return attr.strip()
        if name == "a" and el.get("rel") in ("group", "self"):
            m = SUBSCRIPTION_HREF_RE.search(el.get("href", ""))
            if m:
                return m.group(1)
        if "subscription" in el.get("class", "").split() and el.text and el.text.strip():
            return el.text.strip()
    return None

def _parse_xml(root, expected_subscription_id, timestamp):
    if expected_subscription_id is not None:
        sub = xml_subscription_id(root)
        if sub is None or sub != str(expected_subscription_id):
            _log.debug("Ignoring XML message for subscription %r", sub)
            return None

    values = {}
    for el in root.iter():
        for key in [local_name(el.tag)] + el.get("class", "").split():
            if key in JOINT_KEYS and key not in values:
                values[key] = el.text
    if not values:
        return None
    return TelemetrySample.create([joint_value(values.get(k)) for k in JOINT_KEYS], timestamp)
