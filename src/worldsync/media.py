"""Out-of-line storage for media posted inline as data URLs."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Set

from .errors import CapacityExceededError, MediaNotFoundError
from .models import MEDIA_FIELDS, FeedItem, new_identifier

logger = logging.getLogger(__name__)

MAX_MEDIA_BYTES = 10 * 1024 * 1024
LOCATOR_PREFIX = "/media/"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_DATA_URL = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)
_LOCATOR = re.compile(r"/media/([^/?]+)")


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class MediaRef:
    """Decoded bytes stored under a generated reference id."""

    id: str
    kind: MediaKind
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def locator(self) -> str:
        return locator_for(self.id)


def locator_for(ref_id: str) -> str:
    return f"{LOCATOR_PREFIX}{ref_id}"


def cited_ids(values: Iterable[str | None]) -> Set[str]:
    """Collect every reference id cited by a locator inside ``values``."""

    cited: Set[str] = set()
    for value in values:
        if isinstance(value, str):
            cited.update(_LOCATOR.findall(value))
    return cited


def _absolute(value: Any, base_url: str) -> Any:
    if isinstance(value, str) and value.startswith(LOCATOR_PREFIX):
        return f"{base_url.rstrip('/')}{value}"
    return value


def absolutize_item(payload: Mapping[str, Any], base_url: str) -> Dict[str, Any]:
    """Return a copy of a feed item payload with absolute media URLs."""

    result = dict(payload)
    for wire_name in MEDIA_FIELDS.values():
        if wire_name in result:
            result[wire_name] = _absolute(result[wire_name], base_url)
    return result


def absolutize_message(payload: Mapping[str, Any], base_url: str) -> Dict[str, Any]:
    """Return a copy of a direct message payload with absolute media URLs."""

    result = absolutize_item(payload, base_url)
    if result.get("contentType") in MEDIA_FIELDS:
        result["content"] = _absolute(result.get("content"), base_url)
    return result


class MediaStore:
    """Hold decoded media in memory and rewrite payloads to locators.

    Inline payloads use the ``data:<mime>;base64,<body>`` convention. Only
    payloads whose mime major type matches the field they arrive in are
    extracted; anything else (remote URLs, existing locators, malformed data
    URLs) passes through untouched.
    """

    def __init__(
        self, max_bytes: int = MAX_MEDIA_BYTES, *, strict: bool = False
    ) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be greater than zero.")
        self._max_bytes = max_bytes
        self._strict = strict
        self._refs: Dict[str, MediaRef] = {}

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._refs

    def __len__(self) -> int:
        return len(self._refs)

    def ids(self) -> List[str]:
        return list(self._refs)

    def store_data_url(self, data_url: str, kind: MediaKind) -> MediaRef | None:
        """Decode and store ``data_url``.

        Returns:
            The stored reference, or ``None`` when ``data_url`` is not a
            base64 data URL.

        Raises:
            CapacityExceededError: If the decoded payload exceeds the limit.
        """

        match = _DATA_URL.match(data_url)
        if match is None:
            logger.debug("Ignoring malformed data URL for %s media", kind.value)
            return None

        content_type, body = match.groups()
        try:
            content = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            logger.debug("Ignoring undecodable %s payload", kind.value)
            return None

        if len(content) > self._max_bytes:
            raise CapacityExceededError(len(content), self._max_bytes)

        ref = MediaRef(
            id=new_identifier(),
            kind=kind,
            content=content,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
        )
        self._refs[ref.id] = ref
        logger.info(
            "Stored %s media %s (%d bytes)", kind.value, ref.id, len(content)
        )
        return ref

    def extract(self, item: FeedItem) -> FeedItem:
        """Return a copy of ``item`` with inline media replaced by locators."""

        processed = item.copy()
        for kind_name, value in item.media.items():
            processed.media[kind_name] = self._rewrite(value, MediaKind(kind_name))
        return processed

    def extract_content(self, content: str, content_type: str | None) -> str:
        """Rewrite a direct message body when it is inline media."""

        if content_type not in MEDIA_FIELDS or not isinstance(content, str):
            return content
        return self._rewrite(content, MediaKind(content_type))

    def serve(self, ref_id: str) -> MediaRef:
        try:
            return self._refs[ref_id]
        except KeyError as exc:
            raise MediaNotFoundError(ref_id) from exc

    def sweep(self, cited: Set[str]) -> List[str]:
        """Delete every reference not in ``cited`` and return the removed ids."""

        removed = [ref_id for ref_id in self._refs if ref_id not in cited]
        for ref_id in removed:
            del self._refs[ref_id]
        logger.info(
            "Media sweep removed %d references, %d remain",
            len(removed),
            len(self._refs),
        )
        return removed

    def _rewrite(self, value: str, kind: MediaKind) -> str:
        if not value.startswith(f"data:{kind.value}/"):
            return value
        try:
            ref = self.store_data_url(value, kind)
        except CapacityExceededError as exc:
            if self._strict:
                raise
            logger.warning("Dropping inline %s media: %s", kind.value, exc)
            return value
        return value if ref is None else ref.locator


__all__ = [
    "LOCATOR_PREFIX",
    "MAX_MEDIA_BYTES",
    "MediaKind",
    "MediaRef",
    "MediaStore",
    "absolutize_item",
    "absolutize_message",
    "cited_ids",
    "locator_for",
]
