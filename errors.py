"""
errors.py — Failure taxonomy for version lookup, branch switching and builds.
"""


class BuildBotError(Exception):
    """Base class for every failure the build pipeline reports."""


class ConfigNotFoundError(BuildBotError):
    """The CMS config map has no usable entry for an app name."""

    def __init__(self, app_name: str):
        super().__init__(f'App config not found for "{app_name}"')
        self.app_name = app_name


class CredentialMissingError(BuildBotError):
    """A store credential file is absent. Always treated as a soft skip."""


class RemoteUnavailableError(BuildBotError):
    """A remote endpoint could not be reached or answered with an error."""


class BranchNotFoundError(BuildBotError):
    def __init__(self, branch: str, reason: str = ""):
        super().__init__(reason or f"No remote branch matches {branch!r}")
        self.branch = branch
        self.reason = reason


class BranchAmbiguousError(BuildBotError):
    def __init__(self, branch: str, candidates: list[str]):
        super().__init__(f"{len(candidates)} branches match {branch!r}")
        self.branch = branch
        self.candidates = candidates


class BuildBusyError(BuildBotError):
    """Another build holds the build lock."""


class ExecutionFailedError(BuildBotError):
    def __init__(self, exit_code: int, stderr: str = ""):
        super().__init__(f"Command failed with exit code {exit_code}")
        self.exit_code = exit_code
        self.stderr = stderr
