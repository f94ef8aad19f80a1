"""
runner.py — Run the build command and stream its output as it arrives.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

# (stream name, line) → "stdout" | "stderr"
OutputCallback = Callable[[str, str], Awaitable[None]]


@dataclass
class ProcessResult:
    success: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""


def overwrite_file(path: str, content: str) -> tuple[bool, str]:
    """Replace a file's contents. Returns (success, message)."""
    try:
        Path(path).write_text(content, encoding="utf-8")
    except OSError as e:
        return False, f"Failed to write {path}: {e}"
    return True, f"File updated: {path}"


async def run_process(
    command: str,
    cwd: str,
    on_output: Optional[OutputCallback] = None,
    timeout: Optional[float] = None,
) -> ProcessResult:
    """Run a shell command; each output line goes to on_output immediately."""
    print(f"[build] Executing: {command} (cwd={cwd})")
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            limit=10 * 1024 * 1024,
        )
    except OSError as e:
        print(f"[build] ❌ Failed to execute command: {e}")
        return ProcessResult(success=False, exit_code=-1, stderr=str(e))

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []

    async def pump(stream: asyncio.StreamReader, name: str, sink: list[str]):
        while True:
            line = await stream.readline()
            if not line:
                break
            decoded = line.decode("utf-8", errors="replace").rstrip("\n")
            sink.append(decoded)
            print(f"[build:{name}] {decoded}")
            if on_output:
                await on_output(name, decoded)

    pumps = asyncio.gather(
        pump(proc.stdout, "stdout", stdout_lines),
        pump(proc.stderr, "stderr", stderr_lines),
    )
    try:
        await asyncio.wait_for(pumps, timeout=timeout)
        await proc.wait()
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        print(f"[build] Timed out after {timeout}s")
        return ProcessResult(
            success=False,
            exit_code=-1,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines + [f"Timed out after {timeout}s"]),
        )
    except BaseException:
        pumps.cancel()
        if proc.returncode is None:
            proc.kill()
        raise

    exit_code = proc.returncode if proc.returncode is not None else -1
    status = "✅ succeeded" if exit_code == 0 else "❌ failed"
    print(f"[build] Command {status} (exit code: {exit_code})")
    return ProcessResult(
        success=exit_code == 0,
        exit_code=exit_code,
        stdout="\n".join(stdout_lines).strip(),
        stderr="\n".join(stderr_lines).strip(),
    )
