import json
import logging
import httpx
from contextlib import suppress
from ._types import Subscription
from ._errors import ParseError
from ._parser import parse_xml, xml_subscription_id, SUBSCRIPTION_HREF_RE

_log = logging.getLogger(__name__)

SUBSCRIPTION_PATH = "/subscription"

def extract_subscription_id(body, location = None):
    """
    Find the subscription id in a creation response. The body is probed as
    XML, then JSON, then plain text. The ``Location`` header is the last resort.
    """
    text = (body or "").strip()
    if text:
        sub_id = _id_from_xml(text)
        if sub_id is None:
            sub_id = _id_from_json(text)
        if sub_id is None:
            sub_id = _id_from_text(text)
        if sub_id is not None:
            return sub_id
    if location:
        m = SUBSCRIPTION_HREF_RE.search(location)
        if m:
            return m.group(1)
    return None

def _id_from_xml(text):
    if not text.startswith("<"):
        return None
    try:
        root = parse_xml(text)
    except ParseError:
        _log.debug("Subscription response is not well formed XML")
        return None
    return xml_subscription_id(root)

def _id_from_json(text):
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    sub = data.get("subscription")
    if sub is not None and not isinstance(sub, (dict, list)) and str(sub).strip():
        return str(sub).strip()
    links = data.get("_links")
    if isinstance(links, dict) and isinstance(links.get("self"), dict):
        m = SUBSCRIPTION_HREF_RE.search(str(links["self"].get("href", "")))
        if m:
            return m.group(1)
    return None

def _id_from_text(text):
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if line[0] in "<{[" or "error" in line.lower() or any(c.isspace() for c in line):
            return None
        return line
    return None

class SubscriptionManager:
    def __init__(self, http_client, endpoint, options):
        self._http = http_client
        self._endpoint = endpoint
        self._options = options
        self._active = []

    @property
    def active(self):
        return list(self._active)

    async def create_subscription(self, resource):
        """
        Try each candidate path of ``resource`` in order, return the first
        accepted ``Subscription`` or ``None`` if all are rejected.
        """
        priority = int(self._options.subscription_priority)
        for path in self._options.resource_paths(resource, self._endpoint.task_name):
            sub = await self._try_create(resource, path, priority)
            if sub is not None:
                self._active.append(sub)
                return sub
        _log.error("All resource paths failed for subscription to %s", resource)
        return None

    async def _try_create(self, resource, path, priority):
        form = {"resources": "1", "1": path, "1-p": str(priority)}
        _log.debug("Attempting subscription for %s with path %s", resource, path)
        try:
            res = await self._http.post(SUBSCRIPTION_PATH, data=form, timeout=self._options.request_timeout_s)
        except httpx.HTTPError as e:
            _log.warning("Subscription request for %s failed: %s", path, e)
            return None
        if not res.is_success:
            _log.warning("Subscription path %s rejected: HTTP %d", path, res.status_code)
            return None
        location = res.headers.get("Location")
        sub_id = extract_subscription_id(res.text, location)
        if sub_id is None:
            _log.warning("No subscription id in response for path %s", path)
            return None
        _log.info("Created subscription %s for %s using %s", sub_id, resource, path)
        return Subscription(resource, path, priority, sub_id, location)

    async def delete_subscription(self, subscription):
        """Best effort, failures are logged and never raised"""
        with suppress(ValueError):
            self._active.remove(subscription)
        try:
            res = await self._http.delete(f"{SUBSCRIPTION_PATH}/{subscription.subscription_id}",
                timeout=self._options.request_timeout_s)
            if not res.is_success:
                _log.warning("Failed to delete subscription %s: HTTP %d", subscription.subscription_id,
                    res.status_code)
        except Exception as e:
            _log.warning("Failed to delete subscription %s: %s", subscription.subscription_id, e)

    async def delete_all(self):
        for sub in list(self._active):
            await self.delete_subscription(sub)
