"""Coordinator daemon: serializes store mutations from many hook processes.

Listens on a unix socket. Every connection carries exactly one request line
and gets exactly one response line back before the daemon closes it.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from paddock import protocol
from paddock.config import SOCKET_PATH, ensure_dir
from paddock.daemon_client import is_daemon_reachable
from paddock.store import StoreService

log = logging.getLogger(__name__)

READ_TIMEOUT_SECONDS = 5.0


class CoordinatorDaemon:
    """Unix-socket server applying requests to one StoreService, strictly in arrival order."""

    def __init__(self, service: StoreService, socket_path: Path = SOCKET_PATH) -> None:
        self.service = service
        self.socket_path = Path(socket_path)
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def serving(self) -> bool:
        return self._server is not None

    async def start(self) -> bool:
        """Bind the socket. Returns False if this or another daemon is already listening."""
        if self._server is not None:
            return False
        if self.socket_path.exists():
            if await is_daemon_reachable(self.socket_path):
                log.warning("Another daemon is already listening on %s", self.socket_path)
                return False
            # Stale socket left behind by a crashed daemon
            try:
                self.socket_path.unlink()
            except OSError as e:
                log.warning("Could not remove stale socket %s: %s", self.socket_path, e)

        ensure_dir(self.socket_path.parent)
        self._server = await asyncio.start_unix_server(
            self._handle_client, path=str(self.socket_path), limit=protocol.MAX_LINE_BYTES,
        )
        os.chmod(self.socket_path, 0o600)
        log.info("Daemon listening on %s", self.socket_path)
        return True

    async def stop(self) -> None:
        """Flush pending writes, stop listening and remove the socket file."""
        server = self._server
        if server is None:
            return
        self._server = None
        self.service.flush()
        server.close()
        await server.wait_closed()
        try:
            self.socket_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning("Could not remove socket %s: %s", self.socket_path, e)
        log.info("Daemon stopped")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            try:
                line = await asyncio.wait_for(reader.readline(), timeout=READ_TIMEOUT_SECONDS)
            except (asyncio.LimitOverrunError, ValueError):
                response = protocol.error("request too large")
            else:
                if not line:
                    return
                response = await self.handle_line(line)
            writer.write(protocol.encode(response))
            await writer.drain()
        except (asyncio.TimeoutError, ConnectionError) as e:
            log.debug("Client connection dropped: %s", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def handle_line(self, line: bytes) -> dict:
        try:
            request = protocol.decode(line)
        except ValueError:
            return protocol.error("invalid JSON")
        async with self.service.lock:
            response = protocol.apply_request(self.service, request)
        if not response["ok"]:
            log.info("Rejected %s request: %s", request.get("type") if isinstance(request, dict) else None,
                     response["error"])
        return response
