"""
Failure taxonomy for the verification pipeline.

Only conditions that abort a stage are exceptions.  A hash mismatch or a
missing expected hash is a normal verification outcome and is reported
through ``VerificationResult.status`` and reason tags instead
(see ``workers.verifier.policy.verdict``).
"""
from __future__ import annotations

from typing import List, Optional


class VerificationError(Exception):
    """Base class for every pipeline failure."""


class MalformedExtraction(VerificationError):
    """The completion service returned build instructions that failed validation."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        self.raw_text = raw_text
        super().__init__(message)


class CompletionServiceError(VerificationError):
    """The completion service could not produce a response."""


class CommitUnreachable(VerificationError):
    """The repository or the requested commit could not be checked out."""

    def __init__(self, repo_url: str, commit: str, detail: str = "") -> None:
        self.repo_url = repo_url
        self.commit = commit
        message = f"Commit {commit} is not reachable in {repo_url}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TargetedBuildFailed(VerificationError):
    """The narrow build of a single target failed; callers fall back to a full build."""

    def __init__(self, target: str, exit_code: int) -> None:
        self.target = target
        self.exit_code = exit_code
        super().__init__(f"Targeted build of {target} exited with {exit_code}")


class FullBuildFailed(VerificationError):
    """A build command marked fatal by the command policy exited non-zero."""

    def __init__(self, command: str, exit_code: int) -> None:
        self.command = command
        self.exit_code = exit_code
        super().__init__(f"Build command exited with {exit_code}: {command}")


class ArtifactNotFound(VerificationError):
    """No candidate artifact exists after the build."""

    def __init__(self, expected: str, candidates: Optional[List[str]] = None) -> None:
        self.expected = expected
        self.candidates = candidates or []
        message = f"Artifact not found: {expected}"
        if self.candidates:
            message += f" (ambiguous candidates: {', '.join(self.candidates[:20])})"
        super().__init__(message)


class ArgumentEncodingFailed(VerificationError):
    """The Candid encoder rejected the extracted upgrade-argument literal."""
