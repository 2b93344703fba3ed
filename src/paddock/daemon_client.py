"""Client side of the coordinator protocol, with direct-write fallback.

Hook processes try the daemon first. If it is absent or misbehaves, they
apply the mutation themselves through their own StoreService and flush.
That fallback is not a lock: two fallback writers can still race, and the
last one to reach the disk wins.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from paddock import protocol
from paddock.config import DAEMON_TIMEOUT_SECONDS, SOCKET_PATH
from paddock.store import StoreService

log = logging.getLogger(__name__)

VIA_DAEMON = "daemon"
VIA_DIRECT = "direct"


class DaemonUnavailable(Exception):
    """The daemon could not be reached or did not answer properly."""


def is_daemon_running(socket_path: Path = SOCKET_PATH) -> bool:
    return Path(socket_path).exists()


async def _exchange(request: dict[str, Any], socket_path: Path) -> dict[str, Any]:
    reader, writer = await asyncio.open_unix_connection(str(socket_path), limit=protocol.MAX_LINE_BYTES)
    try:
        writer.write(protocol.encode(request))
        await writer.drain()
        line = await reader.readline()
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except ConnectionError:
            pass
    if not line:
        raise DaemonUnavailable("daemon connection closed")
    try:
        response = protocol.decode(line)
    except ValueError as e:
        raise DaemonUnavailable("invalid response from daemon") from e
    if not isinstance(response, dict) or "ok" not in response:
        raise DaemonUnavailable("invalid response from daemon")
    return response


async def send_to_daemon(
    request: dict[str, Any],
    socket_path: Path = SOCKET_PATH,
    timeout: float = DAEMON_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """Send one request and return the daemon's response.

    Raises DaemonUnavailable when the socket is missing, the connection
    fails, the exchange exceeds *timeout*, or the reply is malformed.
    """
    socket_path = Path(socket_path)
    if not socket_path.exists():
        raise DaemonUnavailable("daemon socket not found")
    try:
        return await asyncio.wait_for(_exchange(request, socket_path), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise DaemonUnavailable("daemon request timed out") from e
    except OSError as e:
        raise DaemonUnavailable(str(e)) from e


async def is_daemon_reachable(
    socket_path: Path = SOCKET_PATH, timeout: float = DAEMON_TIMEOUT_SECONDS,
) -> bool:
    """True if something accepts connections on *socket_path*."""
    socket_path = Path(socket_path)
    if not socket_path.exists():
        return False
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_unix_connection(str(socket_path)), timeout=timeout,
        )
    except (asyncio.TimeoutError, OSError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except ConnectionError:
        pass
    return True


async def submit(
    request: dict[str, Any],
    service: StoreService,
    socket_path: Path = SOCKET_PATH,
    timeout: float = DAEMON_TIMEOUT_SECONDS,
) -> str:
    """Hand *request* to the daemon, or apply it directly if the daemon is unavailable.

    Returns VIA_DAEMON or VIA_DIRECT. A request the daemon answered with
    ``ok: false`` is retried locally too; if it fails there as well the
    error is raised as ValueError.
    """
    try:
        response = await send_to_daemon(request, socket_path, timeout)
    except DaemonUnavailable as e:
        log.debug("Daemon unavailable (%s), writing directly", e)
    else:
        if response.get("ok"):
            return VIA_DAEMON
        log.debug("Daemon rejected request (%s), writing directly", response.get("error"))

    response = protocol.apply_request(service, request)
    service.flush()
    if not response["ok"]:
        raise ValueError(response["error"])
    return VIA_DIRECT
