"""Normalize provider output values into media references.

Providers report "where is my video" in several shapes: inline bytes, a
``data:`` URL, a plain URL string, a stream-like file object, or lists and
dicts wrapping any of those. ``to_media_refs`` is the single place that tells
them apart; the downloader consumes the result without further shape checks.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any

from clipchain.schemas.media import InlineMedia, MediaRef, StreamMedia, UriMedia

logger = logging.getLogger(__name__)

_DICT_KEYS = ("video", "url", "output", "uri")


def to_media_refs(
    output: Any,
    *,
    mime_type: str = "video/mp4",
    headers: Mapping[str, str] | None = None,
) -> list[MediaRef]:
    """Flatten a provider output value into an ordered list of media refs.

    Unrecognized values are skipped (and logged), so an empty list means the
    provider returned nothing playable.
    """
    headers = dict(headers or {})

    if output is None:
        return []

    if isinstance(output, (InlineMedia, StreamMedia, UriMedia)):
        return [output]

    if isinstance(output, (bytes, bytearray, memoryview)):
        data = bytes(output)
        return [InlineMedia(data, mime_type)] if data else []

    if isinstance(output, str):
        return _from_string(output, mime_type, headers)

    if isinstance(output, Mapping):
        for key in _DICT_KEYS:
            if key in output:
                return to_media_refs(output[key], mime_type=mime_type, headers=headers)
        logger.warning("Unrecognized output mapping keys: %s", list(output.keys())[:10])
        return []

    if isinstance(output, (list, tuple)):
        refs: list[MediaRef] = []
        for item in output:
            refs.extend(to_media_refs(item, mime_type=mime_type, headers=headers))
        return refs

    # File-like outputs (e.g. replicate FileOutput) are async-iterable and
    # usually carry the URL they stream from.
    url = _url_of(output)
    if hasattr(output, "__aiter__"):
        fallback = UriMedia(url, mime_type, headers) if url else None
        return [StreamMedia(_reopen(output), mime_type, fallback)]
    if url:
        return [UriMedia(url, mime_type, headers)]

    logger.warning("Unrecognized output type: %s", type(output).__name__)
    return []


def _from_string(value: str, mime_type: str, headers: dict[str, str]) -> list[MediaRef]:
    if value.startswith("data:"):
        header, _, payload = value.partition(",")
        declared = header[5:].split(";")[0] or mime_type
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Discarding malformed data URL output")
            return []
        return [InlineMedia(data, declared)] if data else []
    if value.startswith(("https:", "http:")):
        return [UriMedia(value, mime_type, headers)]
    logger.warning("Discarding non-URL string output (%d chars)", len(value))
    return []


def _url_of(obj: Any) -> str | None:
    url = getattr(obj, "url", None)
    if callable(url):
        url = url()
    if url is None:
        return None
    url = str(url)
    return url if url.startswith(("https:", "http:")) else None


def _reopen(obj: Any):
    def source() -> AsyncIterator[bytes]:
        return obj.__aiter__()
    return source
