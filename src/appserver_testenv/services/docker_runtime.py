"""Docker runtime services for appserver-testenv."""

import os
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

import requests

from appserver_testenv.constants import LABEL_KEY
from appserver_testenv.errors import ContainerStartupError
from appserver_testenv.errors_catalog import actionable_error
from appserver_testenv.models import ContainerHandle, RunContext


class DockerRuntimeService:
    """Manages networks, images and containers through the docker CLI."""

    def __init__(self, logger, console, run_cmd: Callable, requests_module=requests, env=None):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.requests = requests_module
        self.env = os.environ if env is None else env

    @staticmethod
    def label_arg(run_context: RunContext) -> str:
        return f"{LABEL_KEY}={run_context.label}"

    def get_host(self) -> str:
        docker_host = self.env.get("DOCKER_HOST", "")
        parsed = urlparse(docker_host)
        if parsed.scheme in {"tcp", "http", "https"} and parsed.hostname:
            return parsed.hostname
        return "localhost"

    def create_network(self, run_context: RunContext) -> str:
        self.logger.info("Creating network %s", run_context.network_name)
        self.run_cmd(
            [
                "docker",
                "network",
                "create",
                "--label",
                self.label_arg(run_context),
                run_context.network_name,
            ],
            capture_output=True,
        )
        return run_context.network_name

    def build_image(self, run_context: RunContext, tag: str, dockerfile: str):
        self.console.print(f"[blue]Building image {tag}...[/blue]")
        self.logger.info("Building image %s", tag)
        self.run_cmd(
            ["docker", "build", "--label", self.label_arg(run_context), "-t", tag, "-"],
            capture_output=True,
            input_text=dockerfile,
        )

    def run_container(
        self,
        run_context: RunContext,
        name: str,
        image: str,
        ports: Sequence[int],
        network: Optional[str] = None,
        aliases: Iterable[str] = (),
        environment: Optional[Mapping[str, str]] = None,
    ) -> ContainerHandle:
        aliases = tuple(aliases)
        cmd: List[str] = ["docker", "run", "-d", "--name", name, "--label", self.label_arg(run_context)]
        if network:
            cmd += ["--network", network]
        for alias in aliases:
            cmd += ["--network-alias", alias]
        for key, value in (environment or {}).items():
            cmd += ["-e", f"{key}={value}"]
        for port in ports:
            cmd += ["-p", str(port)]
        cmd.append(image)

        self.logger.info("Starting container %s from %s", name, image)
        self.run_cmd(cmd, capture_output=True)

        mapped = {port: self.get_mapped_port(name, port) for port in ports}
        self.logger.debug("Container %s port mapping: %s", name, mapped)
        return ContainerHandle(
            name=name,
            image=image,
            host=self.get_host(),
            ports=mapped,
            network_aliases=aliases,
        )

    def get_mapped_port(self, container_name: str, port: int) -> int:
        result = self.run_cmd(
            ["docker", "port", container_name, f"{port}/tcp"],
            capture_output=True,
        )
        for line in (result.stdout or "").splitlines():
            _, _, host_port = line.strip().rpartition(":")
            if host_port.isdigit():
                return int(host_port)

        raise ContainerStartupError(
            f"Could not determine the host port mapped to {port}/tcp of container {container_name}."
        )

    def is_running(self, container_name: str) -> bool:
        result = self.run_cmd(
            ["docker", "inspect", "-f", "{{.State.Running}}", container_name],
            check=False,
            capture_output=True,
        )
        return result.returncode == 0 and (result.stdout or "").strip() == "true"

    def wait_for_db(
        self,
        handle: ContainerHandle,
        user: str,
        database: str,
        max_retries: int = 30,
        interval: float = 2.0,
    ):
        self.console.print("[yellow]Waiting for database to be ready...[/yellow]")

        # TCP probe: the image's init phase only listens on the unix socket.
        cmd = [
            "docker",
            "exec",
            handle.name,
            "pg_isready",
            "-h",
            "127.0.0.1",
            "-U",
            user,
            "-d",
            database,
        ]

        for _ in range(max_retries):
            result = self.run_cmd(cmd, check=False, capture_output=True)
            if result.returncode == 0:
                self.console.print("[green]Database is ready.[/green]")
                return
            time.sleep(interval)

        raise ContainerStartupError(actionable_error("database_not_ready", container=handle.name))

    def wait_for_http(
        self,
        handle: ContainerHandle,
        ports: Sequence[int],
        timeout: float,
        interval: float = 0.5,
    ):
        """Blocks until every given port answers HTTP requests or the timeout elapses."""
        self.console.print(f"[yellow]Waiting up to {timeout:g}s for {handle.name}...[/yellow]")
        deadline = time.monotonic() + timeout
        pending: Dict[int, str] = {
            port: f"http://{handle.host}:{handle.mapped_port(port)}/" for port in ports
        }

        while True:
            for port, url in list(pending.items()):
                try:
                    response = self.requests.get(url, timeout=2)
                    response.close()
                except self.requests.RequestException as exc:
                    self.logger.debug("Port %s of %s not answering yet: %s", port, handle.name, exc)
                    continue
                self.logger.debug("Port %s of %s is answering.", port, handle.name)
                del pending[port]

            if not pending:
                self.console.print(f"[green]{handle.name} is ready.[/green]")
                return

            if not self.is_running(handle.name):
                raise ContainerStartupError(actionable_error("container_exited", container=handle.name))

            if time.monotonic() >= deadline:
                raise ContainerStartupError(
                    actionable_error(
                        "appserver_startup_timeout",
                        container=handle.name,
                        timeout=f"{timeout:g}",
                    )
                )
            time.sleep(interval)

    def _list_labelled(self, cmd: List[str]) -> List[str]:
        result = self.run_cmd(cmd, check=False, capture_output=True)
        if result.returncode != 0:
            return []
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def cleanup_run(self, label: str):
        self.console.print("[dim]Cleaning up Docker environment...[/dim]")
        self.logger.info("Cleaning up Docker resources labelled %s=%s", LABEL_KEY, label)
        label_filter = f"label={LABEL_KEY}={label}"

        containers = self._list_labelled(["docker", "ps", "-aq", "--filter", label_filter])
        if containers:
            self._remove(["docker", "rm", "-f", "-v"] + containers)

        networks = self._list_labelled(["docker", "network", "ls", "-q", "--filter", label_filter])
        if networks:
            self._remove(["docker", "network", "rm"] + networks)

        images = self._list_labelled(["docker", "image", "ls", "-q", "--filter", label_filter])
        if images:
            self._remove(["docker", "image", "rm", "-f"] + sorted(set(images)))

    def _remove(self, cmd: List[str]):
        result = self.run_cmd(cmd, check=False, capture_output=True)
        if result.returncode != 0:
            self.logger.warning(
                "Cleanup command failed (%s): %s\n%s",
                result.returncode,
                " ".join(cmd),
                (result.stderr or "").strip(),
            )
