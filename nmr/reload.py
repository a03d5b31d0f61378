from __future__ import annotations

import subprocess
from typing import Callable, Protocol

import docker
from docker.errors import DockerException, NotFound

from .appliers import ReloadFailed
from .db import log_event


class Reloader(Protocol):
    def reload(self) -> str:
        """Ask the proxy to re-read its configuration; return captured output."""
        ...


class SystemctlReloader:
    """Runs ``<systemctl> reload <service>``."""

    def __init__(
        self,
        systemctl: str = "/bin/systemctl",
        service: str = "nginx",
        timeout_s: float = 30,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.systemctl = systemctl
        self.service = service
        self.timeout_s = timeout_s
        self._runner = runner

    def reload(self) -> str:
        cmd = [self.systemctl, "reload", self.service]
        log_event("INFO", f"Reloading {self.service} using command: {' '.join(cmd)}", component="reload")
        try:
            cp = self._runner(cmd, capture_output=True, text=True, timeout=self.timeout_s)
        except subprocess.TimeoutExpired as e:
            raise ReloadFailed(f"{' '.join(cmd)} timed out after {self.timeout_s}s") from e
        except OSError as e:
            raise ReloadFailed(f"{' '.join(cmd)} could not run: {e}") from e
        output = ((cp.stdout or "") + (cp.stderr or "")).strip()
        if cp.returncode != 0:
            raise ReloadFailed(f"{' '.join(cmd)} exited with {cp.returncode}: {output}")
        return output


def _client(timeout_s: float) -> docker.DockerClient:
    return docker.from_env(timeout=int(timeout_s))


class DockerReloader:
    """Runs ``nginx -s reload`` inside a running container."""

    def __init__(
        self,
        container: str = "nginx",
        command: list[str] | None = None,
        timeout_s: float = 30,
        client_factory: Callable[[float], docker.DockerClient] = _client,
    ):
        self.container = container
        self.command = command or ["nginx", "-s", "reload"]
        self.timeout_s = timeout_s
        self._client_factory = client_factory

    def reload(self) -> str:
        log_event("INFO", f"Reloading container {self.container}: {' '.join(self.command)}", component="reload")
        try:
            c = self._client_factory(self.timeout_s)
            cont = c.containers.get(self.container)
            exit_code, output = cont.exec_run(self.command)
        except NotFound as e:
            raise ReloadFailed(f"container {self.container} not found") from e
        except DockerException as e:
            raise ReloadFailed(f"docker exec failed: {type(e).__name__}: {e}") from e
        text = (output or b"").decode("utf-8", errors="replace").strip()
        if exit_code != 0:
            raise ReloadFailed(f"{' '.join(self.command)} exited with {exit_code}: {text}")
        return text
