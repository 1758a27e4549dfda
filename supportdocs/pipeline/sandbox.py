"""Bounded, isolated execution of one analysis/generation entry point.

Each call gets a fresh input directory (read-only to the process) holding
``context.json`` and side files, and a fresh output directory the process
fills with well-known files. Both are removed on every exit path.

Secrets never appear on a command line: in docker mode the command names
them with ``-e NAME`` and the values travel in the docker client's
environment; in local mode they are only in the child's environment.
"""

import json
import logging
import os
import shutil
import signal
import subprocess
import tempfile
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..core.config import SandboxMode, Settings
from ..core.logging_config import redact
from ..exceptions import ConfigurationError, SandboxTimeoutError, SubprocessFailure

logger = logging.getLogger(__name__)

INPUT_MOUNT = "/input"
OUTPUT_MOUNT = "/output"

# Entry points the sandbox image knows how to run.
ENTRY_POINTS = frozenset({
    "analyze-codebase",
    "analyze-commit",
    "analyze-pr",
    "generate-article",
    "generate-section-recommendations",
    "generate-all-recommendations",
    "generate-project-recommendations",
    "check-article-updates",
    "generate-css",
    "suggest-sections",
})

# Output files larger than this are not loaded into memory.
MAX_OUTPUT_FILE_BYTES = 5 * 1024 * 1024


@dataclass
class Mount:
    host_path: str
    container_path: str
    read_only: bool = False

    def as_docker_arg(self) -> str:
        suffix = ":ro" if self.read_only else ""
        return f"{self.host_path}:{self.container_path}{suffix}"


@dataclass
class Invocation:
    """Everything needed to launch one entry point, with no string-built shell."""
    entry_point: str
    command: List[str]
    env: Dict[str, str]
    timeout: int
    input_dir: str
    output_dir: str
    mounts: List[Mount] = field(default_factory=list)
    # Docker container name; None in local mode
    container_name: Optional[str] = None


@dataclass
class ProcessOutcome:
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


@dataclass
class SandboxResult:
    """Outcome of one invocation plus a snapshot of its output directory."""
    entry_point: str
    exit_code: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int
    timeout: int
    files: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    def error_message(self) -> Optional[str]:
        if self.timed_out:
            return f"{self.entry_point} timed out after {self.timeout} seconds"
        if self.exit_code != 0:
            return f"{self.entry_point} failed (exit {self.exit_code}): {self.stderr.strip() or self.stdout.strip()}"
        return None

    def raise_for_status(self) -> None:
        """Raise SandboxTimeoutError or SubprocessFailure unless the run succeeded."""
        if self.timed_out:
            raise SandboxTimeoutError(self.entry_point, self.timeout, self.stdout, self.stderr)
        if self.exit_code != 0:
            raise SubprocessFailure(self.entry_point, self.exit_code, self.stdout, self.stderr)


Runner = Callable[[Invocation], ProcessOutcome]


def run_process(invocation: Invocation) -> ProcessOutcome:
    """Run the invocation's command, killing its whole process group on timeout."""
    proc = subprocess.Popen(
        invocation.command,
        env=invocation.env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=invocation.timeout)
        return ProcessOutcome(exit_code=proc.returncode, stdout=stdout or "", stderr=stderr or "")
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        if invocation.container_name:
            # Killing the docker client does not stop the container.
            subprocess.run(["docker", "kill", invocation.container_name],
                           capture_output=True, text=True, timeout=30)
        stdout, stderr = proc.communicate()
        return ProcessOutcome(exit_code=proc.returncode, stdout=stdout or "", stderr=stderr or "",
                              timed_out=True)


def _kill_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def snapshot_directory(path: str) -> Dict[str, str]:
    """Read every regular file directly under *path* as text."""
    files: Dict[str, str] = {}
    if not os.path.isdir(path):
        return files
    for name in sorted(os.listdir(path)):
        full = os.path.join(path, name)
        if not os.path.isfile(full):
            continue
        if os.path.getsize(full) > MAX_OUTPUT_FILE_BYTES:
            logger.warning(f"Skipping oversized output file {name}")
            continue
        with open(full, "r", encoding="utf-8", errors="replace") as f:
            files[name] = f.read()
    return files


class SandboxExecutor:
    """Runs entry points in docker or as local subprocesses.

    Args:
        settings: Sandbox configuration (mode, image, timeouts, directories).
        runner: Callable that actually launches an Invocation. Defaults to
            ``run_process``; tests pass a scripted fake.
    """

    _image_lock = threading.Lock()
    _images_ready: set = set()

    def __init__(self, settings: Settings, runner: Optional[Runner] = None):
        self.settings = settings
        self.runner = runner or run_process

    # -- staging ---------------------------------------------------------

    @contextmanager
    def staging(self, prefix: str) -> Iterator[Tuple[str, str]]:
        """Create fresh input/output directories and remove them on exit."""
        base = self.settings.analysis_base_dir
        os.makedirs(base, exist_ok=True)
        input_dir = tempfile.mkdtemp(prefix=f"{prefix}_input_", dir=base)
        output_dir = None
        try:
            output_dir = tempfile.mkdtemp(prefix=f"{prefix}_output_", dir=base)
            # The container may run as a different user.
            os.chmod(output_dir, 0o777)
            yield input_dir, output_dir
        finally:
            for path in (input_dir, output_dir):
                if path is None:
                    continue
                if self.settings.keep_analysis_output:
                    logger.info(f"Keeping analysis directory: {path}")
                else:
                    shutil.rmtree(path, ignore_errors=True)

    def _write_inputs(self, input_dir: str, context: dict, side_files: Dict[str, str]) -> None:
        with open(os.path.join(input_dir, "context.json"), "w", encoding="utf-8") as f:
            json.dump(context, f, indent=2, default=str)
        for name, content in side_files.items():
            with open(os.path.join(input_dir, name), "w", encoding="utf-8") as f:
                f.write(content)
        for name in os.listdir(input_dir):
            os.chmod(os.path.join(input_dir, name), 0o444)

    def _host_path(self, path: str) -> str:
        """Translate a worker-local path to the docker host's view of it."""
        host_dir = self.settings.analysis_host_dir
        base = self.settings.analysis_base_dir
        if host_dir and path.startswith(base):
            return host_dir + path[len(base):]
        return path

    # -- command building ------------------------------------------------

    def _script_name(self, entry_point: str) -> str:
        return entry_point.replace("-", "_") + ".sh"

    def build_invocation(
        self,
        entry_point: str,
        input_dir: str,
        output_dir: str,
        secrets: Dict[str, str],
        config: Dict[str, str],
    ) -> Invocation:
        """Assemble the command and environment for one run.

        ``secrets`` and ``config`` both reach the process as environment
        variables; only their names ever appear in the command.
        """
        timeout = self.settings.timeout_for(entry_point)
        env = dict(os.environ)
        env.update(config)
        env.update(secrets)
        passed_names = sorted(set(config) | set(secrets))

        if self.settings.sandbox_mode == SandboxMode.DOCKER:
            name = f"supportdocs-{entry_point}-{uuid.uuid4().hex[:8]}"
            mounts = [
                Mount(self._host_path(input_dir), INPUT_MOUNT, read_only=True),
                Mount(self._host_path(output_dir), OUTPUT_MOUNT),
            ]
            command = ["docker", "run", "--rm", "--name", name]
            for var in passed_names:
                command += ["-e", var]
            for mount in mounts:
                command += ["-v", mount.as_docker_arg()]
            command += [
                "--network", self.settings.sandbox_network,
                "--entrypoint", "/" + self._script_name(entry_point),
                self.settings.sandbox_image,
            ]
            return Invocation(entry_point, command, env, timeout, input_dir, output_dir,
                              mounts=mounts, container_name=name)

        env["INPUT_DIR"] = input_dir
        env["OUTPUT_DIR"] = output_dir
        script = os.path.join(self.settings.sandbox_local_scripts_dir, self._script_name(entry_point))
        command = list(self.settings.sandbox_local_command) + [script]
        return Invocation(entry_point, command, env, timeout, input_dir, output_dir)

    def ensure_image(self) -> None:
        """Build the sandbox image on first use if docker does not have it."""
        if self.settings.sandbox_mode != SandboxMode.DOCKER:
            return
        image = self.settings.sandbox_image
        with self._image_lock:
            if image in self._images_ready:
                return
            found = subprocess.run(["docker", "images", "-q", image], capture_output=True, text=True)
            if not found.stdout.strip():
                logger.info(f"Building sandbox image {image}")
                built = subprocess.run(
                    ["docker", "build", "-t", image, self.settings.sandbox_dockerfile_dir],
                    capture_output=True, text=True,
                )
                if built.returncode != 0:
                    raise SubprocessFailure("docker-build", built.returncode, built.stdout, built.stderr)
            self._images_ready.add(image)

    # -- execution -------------------------------------------------------

    def run(
        self,
        entry_point: str,
        context: dict,
        side_files: Optional[Dict[str, str]] = None,
        secrets: Optional[Dict[str, str]] = None,
        config: Optional[Dict[str, str]] = None,
        label: Optional[str] = None,
    ) -> SandboxResult:
        """Execute *entry_point* once and return its outcome and output files.

        Raises:
            ConfigurationError: no generation credentials, before anything runs.
            SubprocessFailure: the sandbox image could not be built.

        Timeouts and non-zero exits are reported on the result; call
        ``raise_for_status()`` to turn them into exceptions.
        """
        if entry_point not in ENTRY_POINTS:
            raise ValueError(f"Unknown entry point: {entry_point}")

        credentials = self.settings.generation_credentials()
        if not credentials:
            raise ConfigurationError(
                "No generation credentials configured (CLAUDE_CODE_OAUTH_TOKEN or ANTHROPIC_API_KEY)",
                missing="ANTHROPIC_API_KEY",
            )
        all_secrets = dict(credentials)
        all_secrets.update(secrets or {})

        self.ensure_image()

        prefix = (label or entry_point).replace("/", "_")
        with self.staging(prefix) as (input_dir, output_dir):
            self._write_inputs(input_dir, context, side_files or {})
            invocation = self.build_invocation(entry_point, input_dir, output_dir, all_secrets, config or {})

            logger.info(
                f"Running {entry_point}",
                extra={"entry_point": entry_point, "mode": self.settings.sandbox_mode.value,
                       "timeout": invocation.timeout},
            )
            started = time.monotonic()
            outcome = self.runner(invocation)
            duration_ms = int((time.monotonic() - started) * 1000)

            files = snapshot_directory(output_dir)

        limit = self.settings.sandbox_capture_limit
        result = SandboxResult(
            entry_point=entry_point,
            exit_code=outcome.exit_code,
            stdout=(outcome.stdout or "")[:limit],
            stderr=(outcome.stderr or "")[:limit],
            timed_out=outcome.timed_out,
            duration_ms=duration_ms,
            timeout=invocation.timeout,
            files=files,
        )

        log = logger.info if result.succeeded else logger.warning
        log(
            f"{entry_point} finished",
            extra={
                "entry_point": entry_point,
                "exit_code": result.exit_code,
                "timed_out": result.timed_out,
                "duration_ms": duration_ms,
                "output_files": sorted(files),
            },
        )
        if result.stderr and not result.succeeded:
            logger.debug(f"{entry_point} stderr: {redact(result.stderr[:500])}")
        return result
