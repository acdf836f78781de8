"""Executor for user-configured generic HTTP API steps."""

from __future__ import annotations

import asyncio
import ipaddress
import json
import logging
import re
import socket
from typing import Any, Dict, List, Optional

import httpx

from ..constants import MAX_ERROR_BODY_CHARS, MAX_TEXT_OUTPUT_CHARS
from ..contracts import FileInput, GenericHttpStep, KeyValue, MediaType, StepOutput
from ..templating import expand_input
from .base import StepExecutor

logger = logging.getLogger(__name__)

BLOCKED_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "0.0.0.0",
        "::1",
        "metadata.google.internal",
        "169.254.169.254",
    }
)
BLOCKED_SUFFIXES = (".local", ".internal")
QUERY_METHODS = frozenset({"GET", "DELETE"})

_PATH_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_FILE_NAMES = {
    MediaType.IMAGE: "api-image.png",
    MediaType.VIDEO: "api-video.mp4",
    MediaType.AUDIO: "api-audio.mp3",
    MediaType.DOCUMENT: "api-doc",
}


class UnsafeURLError(ValueError):
    """Raised when a URL targets a scheme or host that may not be called."""


def _numeric_ipv4(host: str) -> Optional[ipaddress.IPv4Address]:
    """Parse shorthand IPv4 hosts such as ``127.1``, ``2130706433`` or ``0x7f000001``.

    Follows the WHATWG host parser: up to four dot separated parts, each
    decimal, ``0x`` hexadecimal or ``0``-prefixed octal, the last part filling
    the remaining bytes.
    """
    parts = host.split(".")
    if parts and parts[-1] == "" and len(parts) > 1:
        parts.pop()
    if not parts or len(parts) > 4:
        return None

    numbers: List[int] = []
    for part in parts:
        if part[:2].lower() == "0x":
            digits, base = part[2:], 16
        elif len(part) > 1 and part.startswith("0"):
            digits, base = part[1:], 8
        else:
            digits, base = part, 10
        if not digits and base == 16:
            numbers.append(0)
            continue
        try:
            numbers.append(int(digits, base))
        except ValueError:
            return None

    *head, last = numbers
    if any(n > 255 for n in head) or last >= 256 ** (5 - len(numbers)):
        return None
    value = last
    for position, n in enumerate(head):
        value += n << (8 * (3 - position))
    return ipaddress.IPv4Address(value)


def _check_address(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> None:
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    if (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    ):
        raise UnsafeURLError("Private IP ranges are not allowed")


def _check_host(host: str) -> None:
    host = host.lower().strip("[]")
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        raise UnsafeURLError("This host is not allowed for security reasons")
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = _numeric_ipv4(host)
    if address is not None:
        _check_address(address)


async def check_resolved_host(url: str) -> None:
    """Resolve the URL's host and reject it if any address is not public."""
    parsed = httpx.URL(url)
    port = parsed.port or (443 if parsed.scheme == "https" else 80)
    try:
        infos = await asyncio.to_thread(
            socket.getaddrinfo, parsed.host, port, type=socket.SOCK_STREAM
        )
    except socket.gaierror as e:
        raise UnsafeURLError(f"Could not resolve API host {parsed.host}") from e
    for info in infos:
        _check_address(ipaddress.ip_address(info[4][0].split("%", 1)[0]))


def sanitize_api_url(raw: str) -> str:
    """Validate an outbound API URL and return it normalized."""
    try:
        url = httpx.URL(raw.strip())
    except httpx.InvalidURL as e:
        raise UnsafeURLError("Invalid API URL") from e
    if url.scheme not in ("http", "https"):
        raise UnsafeURLError("Only HTTP(S) URLs are allowed")
    if not url.host:
        raise UnsafeURLError("Invalid API URL")
    _check_host(url.host)
    return str(url)


def sanitize_output_url(raw: str) -> str:
    """Return ``raw`` if it is a safe http(s) URL, otherwise an empty string."""
    if not raw or not raw.strip():
        return ""
    try:
        return sanitize_api_url(raw)
    except UnsafeURLError:
        return ""


def extract_path(data: Any, path: str) -> Any:
    """Look up a dotted path such as ``data.items[0].url``."""
    current = data
    for name, index in _PATH_TOKEN_RE.findall(path):
        if name:
            if not isinstance(current, dict) or name not in current:
                return None
            current = current[name]
        else:
            position = int(index)
            if not isinstance(current, list) or position >= len(current):
                return None
            current = current[position]
    return current


def _pairs(pairs: List[KeyValue], input_text: str) -> Dict[str, str]:
    return {pair.key: expand_input(pair.value, input_text) for pair in pairs if pair.key}


def _error(message: str) -> StepOutput:
    return StepOutput(text=f"[Custom API error: {message}]", error=message)


class GenericHttpExecutor(StepExecutor):
    async def execute(self, step: GenericHttpStep, step_input: StepOutput) -> StepOutput:
        if not step.url:
            return _error("no URL configured")
        try:
            url = sanitize_api_url(step.url)
            await check_resolved_host(url)
        except UnsafeURLError as e:
            logger.error(f"Rejected API URL for step {step.id}: {e}")
            return _error(str(e))

        method = (step.method or "POST").upper()
        headers = {"Content-Type": "application/json"}
        headers.update(_pairs(step.headers, step_input.text))
        params = _pairs(step.query_params, step_input.text)

        request: Dict[str, Any] = {"headers": headers}
        if method in QUERY_METHODS:
            request["params"] = params
        else:
            request["content"] = json.dumps(params)

        logger.info(f"{method} {url} for step {step.id}")
        try:
            response = await self._clients.http.request(method, url, **request)
        except httpx.HTTPError as e:
            logger.error(f"API call for step {step.id} failed: {e}")
            return _error(str(e) or type(e).__name__)

        if response.is_error:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            message = f"{response.status_code}: {body}"
            return StepOutput(text=f"[Custom API error {message}]", error=message)

        if "application/json" not in response.headers.get("content-type", ""):
            return StepOutput(text=response.text[:MAX_TEXT_OUTPUT_CHARS])

        try:
            data = response.json()
        except ValueError:
            return _error("malformed JSON response")

        if not step.result_fields:
            return StepOutput(text=json.dumps(data)[:MAX_TEXT_OUTPUT_CHARS])
        return self._map_fields(step, data)

    @staticmethod
    def _map_fields(step: GenericHttpStep, data: Any) -> StepOutput:
        lines: List[str] = []
        files: List[FileInput] = []
        for field in step.result_fields:
            raw = extract_path(data, field.key)
            value = "" if raw is None else (raw if isinstance(raw, str) else _stringify(raw))

            if field.type == "text":
                if value:
                    lines.append(value[:MAX_TEXT_OUTPUT_CHARS])
                continue

            url = sanitize_output_url(value)
            if not url:
                continue
            lines.append(url)
            if field.type != "url":
                media_type = MediaType(field.type)
                files.append(FileInput(url=url, media_type=media_type, name=_FILE_NAMES[media_type]))

        return StepOutput(text="\n".join(lines), files=files)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


__all__ = [
    "GenericHttpExecutor",
    "UnsafeURLError",
    "check_resolved_host",
    "extract_path",
    "sanitize_api_url",
    "sanitize_output_url",
]
