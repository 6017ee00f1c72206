"""External-process invoker and the docker, kubectl and helm wrappers."""

from __future__ import annotations

import contextlib
import subprocess
import sys
import threading
from collections.abc import Sequence
from typing import IO, Any

import structlog
from pydantic import BaseModel, ConfigDict

from azure_containers.config import ToolConfig
from azure_containers.errors import ToolNotFoundError

log = structlog.get_logger()

Command = str | Sequence[str]


class ProcessResult(BaseModel):
    """Outcome of one external tool invocation.

    ``status`` is None when the process was killed without an exit status. A
    non-zero status is data, not an error.
    """

    model_config = ConfigDict(frozen=True)

    status: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    cmdline: str

    @property
    def ok(self) -> bool:
        return self.status == 0


def split_commandline(cmd: Command) -> list[str]:
    """Turn a command into an argument vector.

    A single string is split on whitespace, which breaks arguments that contain
    spaces (such as paths); pass a sequence of arguments whenever possible.
    """
    if isinstance(cmd, str):
        return cmd.split()
    return [str(arg) for arg in cmd]


def _to_text(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return str(data)


def _tee(stream: IO[str], sink: IO[str], chunks: list[str]) -> None:
    for line in iter(stream.readline, ""):
        chunks.append(line)
        sink.write(line)
        sink.flush()
    stream.close()


def _feed(stdin: IO[str], data: str) -> None:
    # A child may exit without reading its input; its exit status is still the result.
    try:
        stdin.write(data)
        stdin.flush()
    except BrokenPipeError:
        log.debug("tool_stdin_closed_early")
    with contextlib.suppress(BrokenPipeError):
        stdin.close()


def _run_streaming(
    argv: list[str],
    input: str | None,
    timeout: float | None,
    **kwargs: Any,
) -> tuple[int | None, str, str, bool]:
    proc = subprocess.Popen(
        argv,
        stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        **kwargs,
    )
    out_chunks: list[str] = []
    err_chunks: list[str] = []
    workers = [
        threading.Thread(target=_tee, args=(proc.stdout, sys.stdout, out_chunks), daemon=True),
        threading.Thread(target=_tee, args=(proc.stderr, sys.stderr, err_chunks), daemon=True),
    ]
    if input is not None and proc.stdin is not None:
        workers.append(threading.Thread(target=_feed, args=(proc.stdin, input), daemon=True))
    for worker in workers:
        worker.start()

    timed_out = False
    status: int | None = None
    try:
        status = proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
    finally:
        if proc.returncode is None:
            proc.kill()
            proc.wait()
        for worker in workers:
            worker.join()
    return status, "".join(out_chunks), "".join(err_chunks), timed_out


def run_tool(
    tools: ToolConfig,
    tool: str,
    cmd: Command = (),
    *,
    echo: bool | None = None,
    timeout: float | None = None,
    input: str | None = None,
    **kwargs: Any,
) -> ProcessResult:
    """Run one of the discovered binaries and capture its output.

    Args:
        tools: The discovered tool paths.
        tool: ``"docker"``, ``"kubectl"`` or ``"helm"``.
        cmd: Argument vector, or a single string split on whitespace.
        echo: Echo output live; defaults to ``tools.echo``.
        timeout: Seconds before the child is killed. ``None`` waits indefinitely.
        input: Text written to the child's standard input.
        **kwargs: Passed through to the subprocess primitive (``cwd``, ``env``, ...).

    Raises:
        ToolNotFoundError: If the binary was not found at discovery time.
    """
    binary = tools.path_for(tool)
    if not binary:
        raise ToolNotFoundError(tool)

    args = split_commandline(cmd)
    cmdline = " ".join([tool, *args])
    if echo is None:
        echo = tools.echo
    log.debug("tool_operation", tool=tool, subcommand=args[0] if args else None)

    argv = [binary, *args]
    if echo:
        status, stdout, stderr, timed_out = _run_streaming(argv, input, timeout, **kwargs)
    else:
        try:
            completed = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
                **kwargs,
            )
            status, stdout, stderr, timed_out = completed.returncode, completed.stdout, completed.stderr, False
        except subprocess.TimeoutExpired as exc:
            status, stdout, stderr, timed_out = None, _to_text(exc.stdout), _to_text(exc.stderr), True

    if timed_out:
        log.warning("tool_timed_out", tool=tool, timeout=timeout)
    return ProcessResult(status=status, stdout=stdout or "", stderr=stderr or "", timed_out=timed_out, cmdline=cmdline)


def call_docker(tools: ToolConfig, cmd: Command = (), **kwargs: Any) -> ProcessResult:
    """Call the docker CLI, e.g. ``call_docker(tools, ["build", "-t", "myimage", "."])``."""
    return run_tool(tools, "docker", cmd, **kwargs)


def call_docker_compose(tools: ToolConfig, cmd: Command = (), **kwargs: Any) -> ProcessResult:
    """Call the docker compose plugin, e.g. ``call_docker_compose(tools, "-f stack.yaml up -d")``."""
    return run_tool(tools, "docker", ["compose", *split_commandline(cmd)], **kwargs)


def _with_kubeconfig(cmd: Command, config: str | None) -> list[str]:
    args = split_commandline(cmd)
    if config:
        args.append(f"--kubeconfig={config}")
    return args


def call_kubectl(tools: ToolConfig, cmd: Command = (), config: str | None = None, **kwargs: Any) -> ProcessResult:
    """Call kubectl, appending ``--kubeconfig=<config>`` when a config path is given."""
    return run_tool(tools, "kubectl", _with_kubeconfig(cmd, config), **kwargs)


def call_helm(tools: ToolConfig, cmd: Command = (), config: str | None = None, **kwargs: Any) -> ProcessResult:
    """Call helm, appending ``--kubeconfig=<config>`` when a config path is given."""
    return run_tool(tools, "helm", _with_kubeconfig(cmd, config), **kwargs)


def spawn_tool(tools: ToolConfig, tool: str, cmd: Command = (), **kwargs: Any) -> subprocess.Popen[str]:
    """Start a long-running tool process (such as ``kubectl proxy``) without waiting for it."""
    binary = tools.path_for(tool)
    if not binary:
        raise ToolNotFoundError(tool)
    args = split_commandline(cmd)
    log.debug("tool_spawned", tool=tool, subcommand=args[0] if args else None)
    return subprocess.Popen(
        [binary, *args],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        text=True,
        **kwargs,
    )
