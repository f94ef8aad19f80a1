import asyncio
from pathlib import Path

import pytest

from conftest import FakeRepo, FakeRunner, FakeVersions, wait_until
from errors import BuildBusyError
from orchestrator import BuildLock, BuildOrchestrator, BuildOutcome, BuildRequest, BuildState
from runner import run_process
from versioning import ResolvedVersion


def make_orchestrator(tmp_path: Path, *, versions=None, repo=None, runner=None, lock=None):
    return BuildOrchestrator(
        project_dir=str(tmp_path),
        script_path=str(tmp_path / "apps.sh"),
        versions=versions or FakeVersions(),
        repo=repo or FakeRepo(),
        lock=lock or BuildLock(),
        run=runner or FakeRunner(),
    )


def make_request(script: str, *, command="build.sh a", branch="", latest=False) -> BuildRequest:
    return BuildRequest(
        apps=["asvab", "cdl"],
        platform="ios" if "build.sh i" in command else "android",
        script=script,
        command=command,
        branch=branch,
        use_latest_version=latest,
    )


@pytest.mark.asyncio
async def test_completed_build_writes_script_and_runs_command(tmp_path, script):
    runner = FakeRunner(lines=["Running Gradle task 'assembleRelease'..."])
    orch = make_orchestrator(tmp_path, runner=runner)
    seen = []

    async def on_output(stream, line):
        seen.append((stream, line))

    report = await orch.run(make_request(script), on_output=on_output)

    assert report.outcome is BuildOutcome.COMPLETED
    assert report.success
    assert (tmp_path / "apps.sh").read_text() == script
    assert runner.calls == [("./build.sh a", str(tmp_path))]
    assert seen == [("stdout", "Running Gradle task 'assembleRelease'...")]
    assert not orch.busy
    assert orch.state is BuildState.IDLE


@pytest.mark.asyncio
async def test_latest_version_rewrites_script_for_platform_from_command(tmp_path, script):
    versions = FakeVersions(ResolvedVersion("1.2.4", 11))
    orch = make_orchestrator(tmp_path, versions=versions)
    statuses = []

    async def on_status(msg):
        statuses.append(msg)

    report = await orch.run(make_request(script, command="build.sh i", latest=True), on_status=on_status)

    assert report.outcome is BuildOutcome.COMPLETED
    assert report.version == ResolvedVersion("1.2.4", 11)
    assert versions.calls == [(["asvab", "cdl"], "ios")]
    written = (tmp_path / "apps.sh").read_text()
    assert "VERSION=1.2.4" in written
    assert "BUILD_NUMBER=11" in written
    assert any("1.2.4" in s for s in statuses)


@pytest.mark.asyncio
async def test_no_apps_in_script_is_rejected_before_any_side_effect(tmp_path):
    runner = FakeRunner()
    versions = FakeVersions()
    orch = make_orchestrator(tmp_path, runner=runner, versions=versions)

    report = await orch.run(make_request("VERSION=0.0.0\nBUILD_NUMBER=0\n", latest=True))

    assert report.outcome is BuildOutcome.REJECTED_NO_APPS
    assert report.message
    assert versions.calls == []
    assert runner.calls == []
    assert not (tmp_path / "apps.sh").exists()


@pytest.mark.asyncio
async def test_version_lookup_failure_aborts_before_lock_and_file(tmp_path, script):
    runner = FakeRunner()
    orch = make_orchestrator(tmp_path, runner=runner, versions=FakeVersions(error=RuntimeError("CMS down")))

    report = await orch.run(make_request(script, latest=True))

    assert report.outcome is BuildOutcome.VERSION_LOOKUP_FAILED
    assert "CMS down" in report.message
    assert runner.calls == []
    assert not (tmp_path / "apps.sh").exists()
    assert not orch.busy


@pytest.mark.asyncio
async def test_second_request_while_building_is_rejected(tmp_path, script):
    gate = asyncio.Event()
    runner = FakeRunner(gate=gate)
    lock = BuildLock()
    orch = make_orchestrator(tmp_path, runner=runner, lock=lock)

    first = asyncio.create_task(orch.run(make_request(script)))
    await wait_until(lambda: runner.calls)
    assert orch.busy

    other_script = script.replace('"cdl"', '"ccna"')
    second = await orch.run(make_request(other_script))
    # A different orchestrator sharing the process lock is rejected too.
    third = await make_orchestrator(tmp_path, runner=runner, lock=lock).run(make_request(other_script, latest=True))

    assert second.outcome is BuildOutcome.REJECTED_BUSY
    assert third.outcome is BuildOutcome.REJECTED_BUSY
    assert (tmp_path / "apps.sh").read_text() == script
    assert len(runner.calls) == 1

    gate.set()
    report = await first
    assert report.outcome is BuildOutcome.COMPLETED
    assert not lock.busy


@pytest.mark.asyncio
async def test_execution_failure_reports_stderr_and_frees_lock(tmp_path, script):
    orch = make_orchestrator(tmp_path, runner=FakeRunner(exit_code=1))

    report = await orch.run(make_request(script))

    assert report.outcome is BuildOutcome.EXECUTION_FAILED
    assert report.exit_code == 1
    assert "FAILURE" in report.message
    assert not orch.busy


@pytest.mark.asyncio
async def test_exception_mid_execution_frees_lock(tmp_path, script):
    orch = make_orchestrator(tmp_path, runner=FakeRunner(raises=RuntimeError("pipe closed")))

    report = await orch.run(make_request(script))

    assert report.outcome is BuildOutcome.EXECUTION_FAILED
    assert "pipe closed" in report.message
    assert not orch.busy
    assert orch.state is BuildState.IDLE


@pytest.mark.asyncio
async def test_unwritable_script_file_fails_and_frees_lock(tmp_path, script):
    runner = FakeRunner()
    orch = make_orchestrator(tmp_path, runner=runner)
    orch.script_path = str(tmp_path / "missing-dir" / "apps.sh")

    report = await orch.run(make_request(script))

    assert report.outcome is BuildOutcome.EXECUTION_FAILED
    assert runner.calls == []
    assert not orch.busy


@pytest.mark.asyncio
async def test_exact_branch_is_checked_out_before_building(tmp_path, script):
    repo = FakeRepo(branches=["main", "develop"])
    orch = make_orchestrator(tmp_path, repo=repo)

    report = await orch.run(make_request(script, branch="develop"))

    assert report.outcome is BuildOutcome.COMPLETED
    assert report.branch == "develop"
    assert repo.checked_out == ["develop"]


@pytest.mark.asyncio
async def test_fuzzy_branch_uses_the_single_match(tmp_path, script):
    repo = FakeRepo(branches=["main", "feature/dark_mode"])
    orch = make_orchestrator(tmp_path, repo=repo)
    statuses = []

    async def on_status(msg):
        statuses.append(msg)

    report = await orch.run(make_request(script, branch="dark mode"), on_status=on_status)

    assert report.outcome is BuildOutcome.COMPLETED
    assert repo.checked_out == ["feature/dark_mode"]
    assert any("feature/dark_mode" in s for s in statuses)


@pytest.mark.asyncio
async def test_ambiguous_branch_lists_candidates_and_does_not_build(tmp_path, script):
    runner = FakeRunner()
    repo = FakeRepo(branches=["feature/dark_mode", "release/dark-mode-fix"])
    orch = make_orchestrator(tmp_path, repo=repo, runner=runner)

    report = await orch.run(make_request(script, branch="dark mode"))

    assert report.outcome is BuildOutcome.BRANCH_AMBIGUOUS
    assert set(report.candidates) == {"feature/dark_mode", "release/dark-mode-fix"}
    assert "release/dark-mode-fix" in report.message
    assert repo.checked_out == []
    assert runner.calls == []
    assert not orch.busy


@pytest.mark.asyncio
async def test_unknown_branch_fails(tmp_path, script):
    runner = FakeRunner()
    orch = make_orchestrator(tmp_path, repo=FakeRepo(branches=["main"]), runner=runner)

    report = await orch.run(make_request(script, branch="xyz"))

    assert report.outcome is BuildOutcome.BRANCH_FAILED
    assert runner.calls == []
    assert not orch.busy


@pytest.mark.asyncio
async def test_checkout_failure_fails_with_reason(tmp_path, script):
    runner = FakeRunner()
    orch = make_orchestrator(tmp_path, repo=FakeRepo(branches=["main"], checkout_ok=False), runner=runner)

    report = await orch.run(make_request(script, branch="main"))

    assert report.outcome is BuildOutcome.BRANCH_FAILED
    assert "pathspec" in report.message
    assert runner.calls == []
    assert not orch.busy


@pytest.mark.asyncio
async def test_failing_status_callback_does_not_break_the_build(tmp_path, script):
    orch = make_orchestrator(tmp_path)

    async def on_status(msg):
        raise ConnectionError("discord unavailable")

    report = await orch.run(make_request(script, latest=True), on_status=on_status)

    assert report.outcome is BuildOutcome.COMPLETED


@pytest.mark.asyncio
async def test_lock_hold_rejects_when_busy():
    lock = BuildLock()
    async with lock.hold():
        assert lock.busy
        with pytest.raises(BuildBusyError):
            async with lock.hold():
                pass
    assert not lock.busy


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    lock = BuildLock()
    with pytest.raises(ValueError):
        async with lock.hold():
            raise ValueError("boom")
    assert not lock.busy


def test_request_from_intent_payload(script):
    request = BuildRequest.from_intent({
        "intent": "build",
        "script": script,
        "command": "build.sh i",
        "branch": " dark mode ",
        "useLatestVersion": True,
        "message": "ok",
    })

    assert request.apps == ["asvab", "cdl"]
    assert request.platform == "ios"
    assert request.branch == "dark mode"
    assert request.use_latest_version is True


@pytest.mark.asyncio
async def test_failing_output_callback_does_not_fail_a_real_build(tmp_path, script):
    build_sh = tmp_path / "build.sh"
    build_sh.write_text("#!/bin/sh\necho hello\necho warn 1>&2\nexit 0\n")
    build_sh.chmod(0o755)
    orch = make_orchestrator(tmp_path, runner=run_process)

    async def on_output(stream, line):
        raise ConnectionError("discord unavailable")

    report = await orch.run(make_request(script), on_output=on_output)

    assert report.outcome is BuildOutcome.COMPLETED
    assert report.exit_code == 0
    assert not orch.busy
