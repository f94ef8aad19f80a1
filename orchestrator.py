"""
orchestrator.py — Single-flight build pipeline.

    IDLE → RESOLVING → (BRANCH_SWITCHING) → EXECUTING → IDLE

One build at a time, process-wide. A request that arrives while a build
is running is rejected, never queued. The build lock is held from the
script rewrite until the build command exits and is released on every
path out, including unexpected exceptions.
"""

import asyncio
import time
import traceback
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

import config
from app_identity import AppIdentityResolver
from branches import Ambiguous, ExactMatch, FuzzyMatch, GitRepo, resolve_branch
from build_script import apply_version_to_script, extract_app_names_from_script, platform_for_command
from errors import BranchAmbiguousError, BranchNotFoundError, BuildBusyError, ExecutionFailedError
from runner import OutputCallback, overwrite_file, run_process
from store_version import default_clients
from versioning import ResolvedVersion, VersionResolver

StatusCallback = Callable[[str], Awaitable[None]]


class BuildState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    BRANCH_SWITCHING = "branch_switching"
    EXECUTING = "executing"


class BuildOutcome(Enum):
    COMPLETED = "completed"
    REJECTED_BUSY = "rejected_busy"
    REJECTED_NO_APPS = "rejected_no_apps"
    BRANCH_AMBIGUOUS = "branch_ambiguous"
    BRANCH_FAILED = "branch_failed"
    VERSION_LOOKUP_FAILED = "version_lookup_failed"
    EXECUTION_FAILED = "execution_failed"


@dataclass
class BuildRequest:
    apps: list[str]
    platform: str
    script: str
    command: str
    branch: str = ""
    use_latest_version: bool = False

    @classmethod
    def from_intent(cls, payload: dict) -> "BuildRequest":
        """Build a request from an intent classifier's structured output."""
        script = payload.get("script") or ""
        command = payload.get("command") or ""
        return cls(
            apps=extract_app_names_from_script(script),
            platform=platform_for_command(command),
            script=script,
            command=command,
            branch=(payload.get("branch") or "").strip(),
            use_latest_version=bool(payload.get("useLatestVersion")),
        )


@dataclass
class BuildReport:
    outcome: BuildOutcome
    message: str
    version: Optional[ResolvedVersion] = None
    branch: Optional[str] = None
    candidates: list[str] = field(default_factory=list)
    exit_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.outcome is BuildOutcome.COMPLETED


class BuildLock:
    """Single-slot build gate. `hold()` rejects instead of waiting."""

    def __init__(self):
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self):
        # Check and acquire run without yielding to the loop in between.
        if self._lock.locked():
            raise BuildBusyError("A build is already in progress")
        await self._lock.acquire()
        try:
            yield self
        finally:
            self._lock.release()


BUILD_LOCK = BuildLock()


def _shell_command(command: str) -> str:
    """Build scripts live in the project root: "build.sh a" → "./build.sh a"."""
    command = command.strip()
    if command.startswith(("./", "/")):
        return command
    return f"./{command}"


def _tail(text: str, limit: int = 800) -> str:
    return text if len(text) <= limit else "…" + text[-limit:]


class BuildOrchestrator:

    def __init__(
        self,
        project_dir: str,
        script_path: str,
        versions: VersionResolver,
        repo: GitRepo,
        lock: Optional[BuildLock] = None,
        run: Callable[..., Awaitable] = run_process,
        write: Callable[[str, str], tuple[bool, str]] = overwrite_file,
        build_timeout: Optional[float] = None,
    ):
        self.project_dir = project_dir
        self.script_path = script_path
        self.versions = versions
        self.repo = repo
        self.lock = lock or BUILD_LOCK
        self._run = run
        self._write = write
        self.build_timeout = build_timeout
        self.state = BuildState.IDLE

    @property
    def busy(self) -> bool:
        return self.lock.busy

    async def run(
        self,
        request: BuildRequest,
        on_status: Optional[StatusCallback] = None,
        on_output: Optional[OutputCallback] = None,
    ) -> BuildReport:

        async def notify(msg: str):
            if not on_status:
                return
            try:
                await on_status(msg)
            except Exception as e:
                print(f"[build] ⚠️ Could not send status: {e}")

        async def relay(stream: str, line: str):
            if not on_output:
                return
            try:
                await on_output(stream, line)
            except Exception as e:
                print(f"[build] ⚠️ Could not relay output: {e}")

        if self.lock.busy:
            return self._report(BuildOutcome.REJECTED_BUSY)

        script = request.script
        version = None
        if request.use_latest_version:
            apps = extract_app_names_from_script(script)
            if not apps:
                return self._report(BuildOutcome.REJECTED_NO_APPS)

            platform = platform_for_command(request.command)
            await notify(f"🔍 Fetching latest {platform} version from stores for: {', '.join(apps)}...")
            try:
                version = await self.versions.resolve_next_version(apps, platform)
            except Exception as e:
                print(f"[build] ❌ Failed to fetch latest version: {e!r}")
                return self._report(
                    BuildOutcome.VERSION_LOOKUP_FAILED,
                    f"❌ Failed to detect latest store version: {e}",
                )
            script = apply_version_to_script(script, version.version_name, version.build_number)
            await notify(f"✅ Detected next version: **{version.version_name}** (build {version.build_number})")

        try:
            async with self.lock.hold():
                try:
                    report = await self._run_locked(request, script, notify, relay)
                finally:
                    self.state = BuildState.IDLE
        except BuildBusyError:
            report = self._report(BuildOutcome.REJECTED_BUSY)

        report.version = version
        print(f"[build] Outcome: {report.outcome.value}")
        return report

    async def _run_locked(
        self,
        request: BuildRequest,
        script: str,
        notify: StatusCallback,
        on_output: OutputCallback,
    ) -> BuildReport:
        self.state = BuildState.RESOLVING
        branch = None
        try:
            ok, msg = self._write(self.script_path, script)
            if not ok:
                raise ExecutionFailedError(-1, msg)

            if request.branch:
                self.state = BuildState.BRANCH_SWITCHING
                branch = await self._switch_branch(request.branch, notify)

            self.state = BuildState.EXECUTING
            await notify(f"🚀 Building: `{request.command}`")
            start_time = time.time()
            result = await self._run(
                _shell_command(request.command), self.project_dir,
                on_output=on_output, timeout=self.build_timeout,
            )
            if not result.success:
                raise ExecutionFailedError(result.exit_code, result.stderr)

        except BranchAmbiguousError as e:
            listing = "\n".join(f"• `{c}`" for c in e.candidates)
            return self._report(
                BuildOutcome.BRANCH_AMBIGUOUS,
                f"⚠️ Multiple branches match \"**{e.branch}**\":\n{listing}\n"
                "Please specify the full branch name.",
                candidates=e.candidates,
            )
        except BranchNotFoundError as e:
            return self._report(
                BuildOutcome.BRANCH_FAILED,
                f"❌ Failed to checkout branch **{e.branch}**: {e}",
            )
        except ExecutionFailedError as e:
            detail = f"\n```\n{_tail(e.stderr)}\n```" if e.stderr else ""
            return self._report(
                BuildOutcome.EXECUTION_FAILED,
                f"❌ Build failed (exit code {e.exit_code}){detail}",
                branch=branch, exit_code=e.exit_code,
            )
        except Exception as e:
            traceback.print_exc()
            return self._report(
                BuildOutcome.EXECUTION_FAILED,
                f"❌ Build crashed: {e}",
                branch=branch,
            )

        mins, secs = divmod(int(time.time() - start_time), 60)
        return self._report(
            BuildOutcome.COMPLETED,
            f"✅ Build finished: `{request.command}` ({mins}m {secs}s)",
            branch=branch, exit_code=result.exit_code,
        )

    async def _switch_branch(self, branch: str, notify: StatusCallback) -> str:
        """Resolve `branch` against the remote and check it out. Returns the real name."""
        await notify(f"🔀 Switching to branch: **{branch}**...")
        remote = await self.repo.list_remote_branches()
        match = resolve_branch(branch, remote)

        if isinstance(match, ExactMatch):
            target = match.name
        elif isinstance(match, FuzzyMatch):
            target = match.name
            await notify(f"🔍 Branch **{branch}** not found, using match: **{target}**")
        elif isinstance(match, Ambiguous):
            raise BranchAmbiguousError(branch, match.candidates)
        else:
            raise BranchNotFoundError(branch, f"no remote branch matches \"{branch}\"")

        result = await self.repo.checkout_and_pull(target)
        if not result.success:
            raise BranchNotFoundError(branch, result.message)
        return target

    @staticmethod
    def _report(outcome: BuildOutcome, message: str = "", **kwargs) -> BuildReport:
        defaults = {
            BuildOutcome.REJECTED_BUSY: "⏳ Please wait for the current build to finish.",
            BuildOutcome.REJECTED_NO_APPS: "⚠️ Could not detect app names from the script.",
        }
        return BuildReport(outcome=outcome, message=message or defaults.get(outcome, ""), **kwargs)


def default_orchestrator() -> BuildOrchestrator:
    """Orchestrator wired to the configured project, CMS and stores."""
    versions = VersionResolver(AppIdentityResolver(), default_clients(config.PROJECT_DIR))
    return BuildOrchestrator(
        project_dir=config.PROJECT_DIR,
        script_path=config.script_path(),
        versions=versions,
        repo=GitRepo(config.PROJECT_DIR),
        build_timeout=config.BUILD_TIMEOUT or None,
    )
