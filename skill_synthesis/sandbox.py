"""Ephemeral execution sandbox for generated test scripts.

Two backends:
1. uv (local virtualenv per validation pass, no container runtime needed)
2. Docker (container per validation pass, strongest isolation)

An ``Environment`` is provisioned once per validation pass with the union of
the tested patterns' dependencies. Every ``run_code`` call gets its own
scratch directory and a fresh copy of the process environment, so the only
state shared between scripts is the installed dependency set.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import shutil
import subprocess
import sys
import tarfile
import tempfile
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import docker
from docker.errors import DockerException, ImageNotFound

from .errors import SandboxError, ToolUnavailableError
from .models import ExecutionResult, Fail, Pass, Timeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_INSTALL_TIMEOUT = 300
DEFAULT_IMAGE = "ghcr.io/astral-sh/uv:python3.11-bookworm-slim"

_DEP_NAME_RE = re.compile(r"^[A-Za-z0-9\-_.\[\],@><=!~^]+$")

# `timeout` exits with 124 when it stopped the command, 137 when --kill-after fired
_TIMEOUT_EXIT_CODES = (124, 137)


def sanitize_dep_name(name: str) -> str:
    """Validate a dependency specifier before it reaches a package installer.

    Allows package names with extras and version constraints
    (``requests[socks]>=2.0``) and rejects anything that could be read as a
    flag or shell syntax.

    Raises:
        SandboxError: If the name is empty, starts with '-' or contains
            characters outside the allowed set.
    """
    name = name.strip()
    if not name:
        raise SandboxError("Empty dependency name")
    if name.startswith("-"):
        raise SandboxError(f"Dependency name must not start with '-': {name!r}")
    if not _DEP_NAME_RE.match(name):
        raise SandboxError(f"Invalid characters in dependency name: {name!r}")
    return name


def classify_exit(returncode: int, stdout: str, stderr: str) -> ExecutionResult:
    """Map a finished process onto Pass / Fail.

    Non-zero exits keep the interpreter's traceback verbatim. When a script
    writes its error to stdout only, stdout is used instead.
    """
    if returncode == 0:
        return Pass(stdout)
    error = stderr.strip() or stdout.strip()
    if not error:
        error = f"Process exited with code {returncode}"
    return Fail(error)


@dataclass
class Environment:
    """Handle to one provisioned sandbox.

    ``root`` is the host directory for the uv backend and the in-container
    scratch root for Docker.
    """
    root: Path
    dependencies: frozenset[str] = frozenset()
    python: Path | None = None
    container: Any = None
    closed: bool = False
    _tmp: tempfile.TemporaryDirectory | None = field(default=None, repr=False)


# =============================================================================
# Executor Base Class
# =============================================================================


class BaseExecutor(ABC):
    """Provisions environments and runs scripts in them."""

    timeout: float = DEFAULT_TIMEOUT

    @abstractmethod
    async def setup_environment(self, dependencies: Iterable[str]) -> Environment:
        """Provision an isolated runtime with exactly these dependencies installed."""
        pass

    @abstractmethod
    async def run_code(self, env: Environment, source: str) -> ExecutionResult:
        """Run ``source`` in ``env`` under the configured timeout."""
        pass

    @abstractmethod
    async def cleanup(self, env: Environment) -> None:
        """Release everything ``setup_environment`` created. Idempotent."""
        pass

    @staticmethod
    def _check_open(env: Environment) -> None:
        if env.closed:
            raise SandboxError("Environment already cleaned up")


@asynccontextmanager
async def provisioned(
    executor: BaseExecutor, dependencies: Iterable[str]
) -> AsyncIterator[Environment]:
    """Provision an environment and release it on every exit path."""
    env = await executor.setup_environment(dependencies)
    try:
        yield env
    finally:
        await executor.cleanup(env)


# =============================================================================
# uv Executor
# =============================================================================


class UvExecutor(BaseExecutor):
    """Local virtualenv sandbox provisioned with uv.

    The venv is built from the running interpreter, so no network access is
    needed when there are no dependencies to install.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
        python: str | None = None,
        uv_path: str | None = None,
    ):
        self.timeout = timeout
        self.install_timeout = install_timeout
        self.python = python or sys.executable
        self.uv_path = uv_path

    def _uv(self) -> str:
        uv = self.uv_path or shutil.which("uv")
        if not uv:
            raise ToolUnavailableError(
                "uv is not installed or not in PATH. Install with: pip install uv"
            )
        return uv

    async def setup_environment(self, dependencies: Iterable[str]) -> Environment:
        deps = sorted({sanitize_dep_name(d) for d in dependencies})
        uv = self._uv()

        tmp = tempfile.TemporaryDirectory(prefix="skill_sandbox_")
        env = Environment(root=Path(tmp.name), dependencies=frozenset(deps), _tmp=tmp)
        logger.info("Setting up uv environment with %d dependencies", len(deps))
        logger.debug("Dependencies: %s", deps)

        try:
            venv_dir = env.root / ".venv"
            cmd = [uv, "venv", "--quiet", "--python", self.python, str(venv_dir)]
            if not deps:
                cmd.insert(1, "--offline")
            await self._run_tool(cmd, cwd=env.root, timeout=self.install_timeout)

            if os.name == "nt":
                env.python = venv_dir / "Scripts" / "python.exe"
            else:
                env.python = venv_dir / "bin" / "python"

            if deps:
                await self._run_tool(
                    [uv, "pip", "install", "--quiet", "--python", str(env.python), *deps],
                    cwd=env.root,
                    timeout=self.install_timeout,
                )
        except BaseException:
            await self.cleanup(env)
            raise

        return env

    async def _run_tool(self, cmd: list[str], cwd: Path, timeout: float) -> None:
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                cwd=cwd,
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(f"Failed to launch {cmd[0]}: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise SandboxError(f"'{' '.join(cmd[1:3])}' timed out after {timeout} seconds") from e
        except OSError as e:
            raise SandboxError(f"Failed to run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            output = result.stderr.strip() or result.stdout.strip()
            raise SandboxError(f"'{' '.join(cmd[1:3])}' failed: {output}")

    async def run_code(self, env: Environment, source: str) -> ExecutionResult:
        self._check_open(env)
        if env.python is None:
            raise SandboxError("Python path not set in execution environment")

        logger.debug("Running Python code (%d bytes)", len(source))
        try:
            run_dir = Path(tempfile.mkdtemp(prefix="run_", dir=env.root))
        except OSError as e:
            raise SandboxError(f"Failed to create run directory: {e}") from e

        proc_env = os.environ.copy()
        proc_env.pop("PYTHONPATH", None)
        proc_env["VIRTUAL_ENV"] = str(env.python.parent.parent)
        proc_env["PYTHONDONTWRITEBYTECODE"] = "1"

        try:
            script_path = run_dir / "test.py"
            script_path.write_text(source, encoding="utf-8")
            result = await asyncio.to_thread(
                subprocess.run,
                [str(env.python), str(script_path)],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                cwd=run_dir,
                env=proc_env,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Code execution timed out after %s seconds", self.timeout)
            return Timeout(self.timeout)
        except OSError as e:
            raise SandboxError(f"Failed to execute test script: {e}") from e
        finally:
            shutil.rmtree(run_dir, ignore_errors=True)

        return classify_exit(result.returncode, result.stdout, result.stderr)

    async def cleanup(self, env: Environment) -> None:
        if env.closed:
            return
        logger.debug("Cleaning up environment at %s", env.root)
        try:
            if env._tmp is not None:
                await asyncio.to_thread(env._tmp.cleanup)
        except OSError as e:
            logger.warning("Failed to remove sandbox directory %s: %s", env.root, e)
        finally:
            env.closed = True
            env._tmp = None


# =============================================================================
# Docker Executor
# =============================================================================


class DockerExecutor(BaseExecutor):
    """Container sandbox using the Docker SDK.

    Security constraints:
    - Memory limit and CPU quota
    - No new privileges
    - Network disabled and read-only root filesystem unless dependencies
      must be installed
    - Scripts run under the in-container ``timeout`` utility
    """

    def __init__(
        self,
        image: str = DEFAULT_IMAGE,
        timeout: float = DEFAULT_TIMEOUT,
        install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
        memory_limit: str = "512m",
        cpu_quota: int = 50000,
    ):
        self.image = image
        self.timeout = timeout
        self.install_timeout = install_timeout
        self.memory_limit = memory_limit
        self.cpu_quota = cpu_quota

    def _client(self) -> docker.DockerClient:
        try:
            client = docker.from_env()
            client.ping()
        except DockerException as e:
            raise ToolUnavailableError(f"Failed to connect to Docker: {e}") from e

        try:
            client.images.get(self.image)
        except ImageNotFound:
            raise ToolUnavailableError(
                f"Docker image '{self.image}' not found. "
                "Please pull the image first."
            )
        except DockerException as e:
            raise SandboxError(f"Failed to inspect image '{self.image}': {e}") from e
        return client

    async def setup_environment(self, dependencies: Iterable[str]) -> Environment:
        deps = sorted({sanitize_dep_name(d) for d in dependencies})
        client = await asyncio.to_thread(self._client)
        env = Environment(root=Path("/tmp/skill_sandbox"), dependencies=frozenset(deps))

        try:
            env.container = await asyncio.to_thread(self._start_container, client, bool(deps))
            await self._exec(env, ["mkdir", "-p", str(env.root)])
            if deps:
                logger.info("Installing packages: %s", " ".join(deps))
                exit_code, _, stderr = await self._exec(
                    env,
                    ["timeout", str(int(self.install_timeout)),
                     "uv", "pip", "install", "--system", "--quiet", *deps],
                )
                if exit_code != 0:
                    raise SandboxError(f"Package installation failed: {stderr.strip()}")
        except BaseException:
            await self.cleanup(env)
            raise

        return env

    def _start_container(self, client: docker.DockerClient, allow_network: bool):
        config = {
            "image": self.image,
            "command": ["sleep", "infinity"],
            "detach": True,
            "mem_limit": self.memory_limit,
            "cpu_quota": self.cpu_quota,
            "security_opt": ["no-new-privileges"],
            "tmpfs": {"/tmp": "size=100m,mode=1777"},
            "network_disabled": not allow_network,
        }
        if not allow_network:
            config["read_only"] = True

        try:
            container = client.containers.run(**config)
        except DockerException as e:
            raise SandboxError(f"Failed to start container: {e}") from e
        logger.info(
            "Started Docker sandbox: %s (network=%s)", container.short_id, allow_network
        )
        return container

    async def _exec(
        self,
        env: Environment,
        cmd: list[str],
        workdir: str | None = None,
        environment: dict[str, str] | None = None,
    ) -> tuple[int, str, str]:
        def _call():
            return env.container.exec_run(
                cmd=cmd,
                demux=True,
                workdir=workdir,
                environment=environment,
            )

        try:
            exit_code, output = await asyncio.to_thread(_call)
        except DockerException as e:
            raise SandboxError(f"Container exec failed: {e}") from e

        stdout = output[0].decode("utf-8", errors="replace") if output and output[0] else ""
        stderr = output[1].decode("utf-8", errors="replace") if output and output[1] else ""
        return exit_code, stdout, stderr

    async def run_code(self, env: Environment, source: str) -> ExecutionResult:
        self._check_open(env)
        run_dir = f"{env.root}/run_{uuid.uuid4().hex[:12]}"
        await self._exec(env, ["mkdir", "-p", run_dir])

        data = source.encode("utf-8")
        archive = io.BytesIO()
        with tarfile.open(fileobj=archive, mode="w") as tar:
            info = tarfile.TarInfo("test.py")
            info.size = len(data)
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(data))
        archive.seek(0)

        try:
            await asyncio.to_thread(env.container.put_archive, run_dir, archive.getvalue())
        except DockerException as e:
            raise SandboxError(f"Failed to copy test script into container: {e}") from e

        started = time.monotonic()
        try:
            exit_code, stdout, stderr = await self._exec(
                env,
                ["timeout", "--kill-after=5", f"{self.timeout:g}", "python", "test.py"],
                workdir=run_dir,
                environment={"PYTHONDONTWRITEBYTECODE": "1"},
            )
            elapsed = time.monotonic() - started
        finally:
            try:
                await self._exec(env, ["rm", "-rf", run_dir])
            except SandboxError as e:
                logger.warning("Failed to remove %s: %s", run_dir, e)

        # a script may exit 124 on its own, so the clock has to agree
        if exit_code in _TIMEOUT_EXIT_CODES and elapsed >= self.timeout:
            logger.warning("Code execution timed out after %s seconds", self.timeout)
            return Timeout(self.timeout)
        return classify_exit(exit_code, stdout, stderr)

    async def cleanup(self, env: Environment) -> None:
        if env.closed:
            return
        container = env.container
        try:
            if container is not None:
                await asyncio.to_thread(container.remove, force=True)
                logger.info("Removed Docker sandbox: %s", container.short_id)
        except DockerException as e:
            logger.warning("Failed to remove container: %s", e)
        finally:
            env.closed = True
            env.container = None


# =============================================================================
# Factory
# =============================================================================


def docker_available() -> bool:
    try:
        docker.from_env().ping()
        return True
    except Exception as e:
        logger.info("Docker not available (%s)", e)
        return False


def create_executor(
    backend: str = "auto",
    timeout: float = DEFAULT_TIMEOUT,
    image: str = DEFAULT_IMAGE,
    memory_limit: str = "512m",
) -> BaseExecutor:
    """Create the executor for ``backend``: "uv", "docker" or "auto".

    "auto" picks Docker when the daemon answers a ping and uv otherwise.
    """
    if backend == "uv":
        return UvExecutor(timeout=timeout)
    if backend == "docker":
        return DockerExecutor(image=image, timeout=timeout, memory_limit=memory_limit)
    if backend != "auto":
        raise SandboxError(f"Unknown sandbox backend: {backend}")

    if docker_available():
        logger.info("Docker available, using DockerExecutor with image: %s", image)
        return DockerExecutor(image=image, timeout=timeout, memory_limit=memory_limit)
    logger.info("Using UvExecutor")
    return UvExecutor(timeout=timeout)
