import pytest

from runner import overwrite_file, run_process


@pytest.mark.asyncio
async def test_output_lines_stream_to_callback(tmp_path):
    seen = []

    async def on_output(stream, line):
        seen.append((stream, line))

    result = await run_process("printf 'one\\ntwo\\n'; echo oops 1>&2", str(tmp_path), on_output=on_output)

    assert result.success
    assert result.exit_code == 0
    assert result.stdout == "one\ntwo"
    assert result.stderr == "oops"
    assert [l for s, l in seen if s == "stdout"] == ["one", "two"]
    assert ("stderr", "oops") in seen


@pytest.mark.asyncio
async def test_non_zero_exit_is_reported(tmp_path):
    result = await run_process("echo 'FAILURE: Build failed' 1>&2; exit 3", str(tmp_path))

    assert not result.success
    assert result.exit_code == 3
    assert "FAILURE" in result.stderr


@pytest.mark.asyncio
async def test_command_runs_in_cwd(tmp_path):
    (tmp_path / "build.sh").write_text("#!/bin/sh\necho built \"$1\"\n")
    (tmp_path / "build.sh").chmod(0o755)

    result = await run_process("./build.sh a", str(tmp_path))

    assert result.stdout == "built a"


@pytest.mark.asyncio
async def test_timeout_kills_the_process(tmp_path):
    result = await run_process("exec sleep 5", str(tmp_path), timeout=0.2)

    assert not result.success
    assert result.exit_code == -1
    assert "Timed out" in result.stderr


def test_overwrite_file_replaces_contents(tmp_path):
    path = tmp_path / "apps.sh"
    path.write_text("old")

    ok, _ = overwrite_file(str(path), "new")

    assert ok
    assert path.read_text() == "new"


def test_overwrite_file_reports_failure(tmp_path):
    ok, message = overwrite_file(str(tmp_path / "missing" / "apps.sh"), "x")

    assert not ok
    assert "Failed to write" in message
