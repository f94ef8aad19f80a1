"""Shared fakes for the build pipeline tests."""

import asyncio
from typing import Optional

import pytest

from branches import CheckoutResult
from runner import ProcessResult
from versioning import ResolvedVersion

SCRIPT = 'VERSION=0.0.0\nBUILD_NUMBER=0\nLIST_APP={\n  "asvab"\n  "cdl"\n}\n'


class FakeVersions:
    def __init__(self, result: ResolvedVersion = ResolvedVersion("1.2.4", 11), error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[list[str], str]] = []

    async def resolve_next_version(self, apps, platform):
        self.calls.append((list(apps), platform))
        if self.error:
            raise self.error
        return self.result


class FakeRepo:
    def __init__(self, branches=("main", "develop"), checkout_ok: bool = True):
        self.branches = list(branches)
        self.checkout_ok = checkout_ok
        self.checked_out: list[str] = []

    async def list_remote_branches(self):
        return list(self.branches)

    async def checkout_and_pull(self, branch):
        self.checked_out.append(branch)
        if self.checkout_ok:
            return CheckoutResult(True, f"Switched to {branch}")
        return CheckoutResult(False, "error: pathspec did not match")


class FakeRunner:
    """Stands in for run_process. Optionally blocks until `gate` is set."""

    def __init__(self, exit_code: int = 0, lines=(), gate: Optional[asyncio.Event] = None,
                 raises: Optional[Exception] = None):
        self.exit_code = exit_code
        self.lines = list(lines)
        self.gate = gate
        self.raises = raises
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, command, cwd, on_output=None, timeout=None):
        self.calls.append((command, cwd))
        if self.gate:
            await self.gate.wait()
        for line in self.lines:
            if on_output:
                await on_output("stdout", line)
        if self.raises:
            raise self.raises
        return ProcessResult(
            success=self.exit_code == 0,
            exit_code=self.exit_code,
            stderr="" if self.exit_code == 0 else "FAILURE: Build failed with an exception.",
        )


async def wait_until(predicate, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def script() -> str:
    return SCRIPT
