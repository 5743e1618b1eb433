"""Plate recognition client.

The recognition service is an opaque HTTP API: an image goes in, zero or
more candidate plates with confidence scores come out.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from anprtoll._constants import USER_AGENT
from anprtoll._redact import redact_for_log
from anprtoll.config import TollConfig
from anprtoll.exceptions import TollUpstreamError
from anprtoll.models.sighting import PlateRead

_logger = logging.getLogger(__name__)

_SERVICE = "recognition"


class PlateReader(Protocol):
    """Structural recognition interface used by the engine.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`PlateRecognizerClient`) concrete.
    """

    async def read_plates(self, image: bytes) -> list[PlateRead]:
        ...


def parse_recognition_response(body: Any) -> list[PlateRead]:
    """Turn a ``plate-reader`` response into candidates, best first.

    A body without ``results`` means nothing was detected.
    """
    if not isinstance(body, dict):
        raise TollUpstreamError("Recognition response is not a JSON object", service=_SERVICE)
    results = body.get("results")
    if not isinstance(results, list):
        return []
    reads: list[PlateRead] = []
    for item in results:
        if not isinstance(item, dict):
            continue
        plate = item.get("plate")
        if not isinstance(plate, str) or not plate.strip():
            continue
        reads.append(PlateRead(plate=plate, score=item.get("score"), raw=item))
    return reads


class PlateRecognizerClient:
    """HTTP client for the Plate Recognizer ``plate-reader`` endpoint."""

    def __init__(self, config: TollConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        headers = {"user-agent": USER_AGENT}
        if self._config.recognizer_token:
            headers["authorization"] = f"Token {self._config.recognizer_token}"
        return headers

    async def read_plates(self, image: bytes) -> list[PlateRead]:
        """Upload one frame and return its candidate plates.

        Raises
        ------
        TollUpstreamError
            On network errors, non-2xx replies or invalid JSON.
        """
        url = self._config.recognizer_url
        form = aiohttp.FormData()
        form.add_field("upload", image, filename="frame.jpg", content_type="image/jpeg")

        _logger.debug("POST %s %s", url, redact_for_log({"upload": image, **self._headers()}))

        try:
            async with self._http.post(url, data=form, headers=self._headers()) as resp:
                text = await resp.text()
                if resp.status not in (200, 201):
                    raise TollUpstreamError(
                        f"HTTP {resp.status} from plate reader: {text[:200]}",
                        service=_SERVICE,
                        status_code=resp.status,
                    )
        except TollUpstreamError:
            raise
        except aiohttp.ClientError as exc:
            raise TollUpstreamError(f"Plate reader request failed: {exc}", service=_SERVICE) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TollUpstreamError(f"Invalid JSON from plate reader: {text[:200]}", service=_SERVICE) from exc

        _logger.debug("Plate reader response: %s", redact_for_log(body))
        return parse_recognition_response(body)
