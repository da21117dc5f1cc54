"""Client for the container runtime's control API.

``IsolationRuntime`` is the surface the session drives. ``DockerRuntime``
implements it with the Docker SDK; its calls block, so each one runs in a
worker thread via ``asyncio.to_thread``. One ``DockerRuntime`` is shared by
every session in the process; the SDK client is safe to call from several
threads at once and keeps a bounded connection pool.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Any, Protocol

import docker
import requests
from docker.errors import DockerException
from docker.utils import socket as docker_socket

_logger = logging.getLogger("coderunner.sandbox.runtime")

MANAGED_LABEL = "coderunner.managed"
LANGUAGE_LABEL = "coderunner.language"
READ_SIZE = 4096


@dataclass(frozen=True, slots=True)
class ResourceLimits:
    """Resource envelope applied to every container."""

    memory_bytes: int = 128 * 1024 * 1024
    cpu_shares: int = 512
    pids_limit: int = 50
    network_disabled: bool = True

    @property
    def memory_swap_bytes(self) -> int:
        # Equal to the memory limit: no swap on top of RAM.
        return self.memory_bytes


class ExecStream(Protocol):
    """Bidirectional byte stream attached to a process in a container."""

    async def read(self, size: int = READ_SIZE) -> bytes:
        """Return the next raw chunk, or ``b""`` once the process exited."""
        ...

    async def write(self, data: bytes) -> None: ...

    async def close_input(self) -> None:
        """Signal end-of-input to the process."""
        ...

    async def close(self) -> None: ...


class IsolationRuntime(Protocol):
    async def create(
        self,
        image: str,
        *,
        command: list[str],
        working_dir: str,
        limits: ResourceLimits,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Create a container and return its id."""
        ...

    async def start(self, container_id: str) -> None: ...

    async def upload(self, container_id: str, path: str, archive: bytes) -> None: ...

    async def exec_stream(
        self,
        container_id: str,
        command: list[str],
        *,
        working_dir: str,
        stdin: bool,
    ) -> ExecStream:
        """Start ``command`` and return its multiplexed output stream."""
        ...

    async def stop(self, container_id: str, timeout: int = 0) -> None: ...

    async def remove(self, container_id: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class DockerExecStream:
    """Wraps the raw hijacked socket returned by ``exec_start(socket=True)``."""

    def __init__(self, sock: Any) -> None:
        self._sock = sock
        # SocketIO wrappers expose the real socket as ``_sock``.
        self._raw = getattr(sock, "_sock", sock)
        # The session enforces its own deadline; the client timeout would cut
        # off programs that sit waiting for input.
        if hasattr(self._raw, "settimeout"):
            self._raw.settimeout(None)
        self._closed = False

    async def read(self, size: int = READ_SIZE) -> bytes:
        if self._closed:
            return b""
        return await asyncio.to_thread(docker_socket.read, self._sock, size)

    async def write(self, data: bytes) -> None:
        await asyncio.to_thread(self._raw.sendall, data)

    async def close_input(self) -> None:
        await asyncio.to_thread(self._raw.shutdown, socket.SHUT_WR)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # Unblocks a reader thread still parked in recv().
            self._raw.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()
        if self._raw is not self._sock:
            # Closing a SocketIO wrapper leaves the socket itself open.
            self._raw.close()


class DockerRuntime:
    def __init__(self, client: docker.DockerClient) -> None:
        self._client = client
        self._api = client.api

    @classmethod
    def from_settings(cls, base_url: str = "", timeout: int = 60, max_pool_size: int = 10) -> "DockerRuntime":
        if base_url:
            client = docker.DockerClient(base_url=base_url, timeout=timeout, max_pool_size=max_pool_size)
        else:
            client = docker.from_env(timeout=timeout, max_pool_size=max_pool_size)
        return cls(client)

    async def create(
        self,
        image: str,
        *,
        command: list[str],
        working_dir: str,
        limits: ResourceLimits,
        labels: dict[str, str] | None = None,
    ) -> str:
        host_config = self._api.create_host_config(
            mem_limit=limits.memory_bytes,
            memswap_limit=limits.memory_swap_bytes,
            cpu_shares=limits.cpu_shares,
            pids_limit=limits.pids_limit,
        )
        created = await asyncio.to_thread(
            self._api.create_container,
            image=image,
            command=command,
            working_dir=working_dir,
            stdin_open=True,
            tty=False,
            network_disabled=limits.network_disabled,
            labels={MANAGED_LABEL: "true", **(labels or {})},
            host_config=host_config,
        )
        container_id = created["Id"]
        _logger.debug("Created container %s from %s", container_id[:12], image)
        return container_id

    async def start(self, container_id: str) -> None:
        await asyncio.to_thread(self._api.start, container_id)

    async def upload(self, container_id: str, path: str, archive: bytes) -> None:
        ok = await asyncio.to_thread(self._api.put_archive, container_id, path, archive)
        if not ok:
            raise RuntimeError(f"put_archive into {path} was rejected")

    async def exec_stream(
        self,
        container_id: str,
        command: list[str],
        *,
        working_dir: str,
        stdin: bool,
    ) -> DockerExecStream:
        created = await asyncio.to_thread(
            self._api.exec_create,
            container_id,
            command,
            stdout=True,
            stderr=True,
            stdin=stdin,
            tty=False,
            workdir=working_dir,
        )
        sock = await asyncio.to_thread(self._api.exec_start, created["Id"], tty=False, socket=True)
        return DockerExecStream(sock)

    async def stop(self, container_id: str, timeout: int = 0) -> None:
        await asyncio.to_thread(self._api.stop, container_id, timeout=timeout)

    async def remove(self, container_id: str) -> None:
        await asyncio.to_thread(self._api.remove_container, container_id, force=True)

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self._client.ping))
        except (DockerException, requests.exceptions.RequestException) as exc:
            _logger.warning("Docker ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)
