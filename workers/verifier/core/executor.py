"""
Build executor — check out a commit and turn a BuildPlan into an artifact.

Per run:

    checkout ─► prepare host ─► [targeted attempt] ─► full build ─► locate

The targeted attempt only happens for the large-monorepo profile when a
target mapping exists, and is tried exactly once; any failure there falls
back to the full ordered command list.  Full-build commands that exit
non-zero are judged by ``ExecutorConfig.policy_for``: tolerant commands
log a warning, fatal ones abort the full build.  Whether the run succeeded
is decided by the artifact locator, not by exit codes.

Host knobs (superuser, build account, container socket, environment
overrides) come from ``ExecutorConfig``; nothing here touches
``os.environ``.
"""
import logging
import os
import re
import shlex
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from workers.verifier.core.locator import locate_full, locate_targeted, names_match
from workers.verifier.errors import (
    ArtifactNotFound,
    CommitUnreachable,
    FullBuildFailed,
    TargetedBuildFailed,
)
from workers.verifier.io.schema import BuildOutcome, BuildPlan
from workers.verifier.policy.profile import (
    BuildProfile,
    BuildStrategy,
    CommandPolicy,
    ExecutorConfig,
)

logger = logging.getLogger(__name__)

BUILDKIT_SCRIPT_NAME = "docker-build"
_BUILDKIT_ENABLE = re.compile(r"export\s+DOCKER_BUILDKIT=1\b")
_TARGET_ENTRY = re.compile(r'"([^"]+)"\s*:\s*"(//[^"]+)"')

# useradd: "user already exists"
_USERADD_EXISTS = 9

_OUTPUT_TAIL_LINES = 200


# =============================================================================
# Command execution
# =============================================================================

@dataclass
class CommandResult:
    command: str
    exit_code: int
    output: str = ""        # last lines of combined stdout/stderr

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Run shell commands, streaming combined output to stdout and the build log."""

    def __init__(self, log_path: Optional[Path] = None):
        self.log_path = log_path

    def run(
        self,
        command: str,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        logger.debug("$ %s", command)
        tail: List[str] = []
        log_fh = None
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            log_fh = open(self.log_path, "a", encoding="utf-8")
        try:
            if log_fh:
                log_fh.write(f"$ {command}\n")
            try:
                proc = subprocess.Popen(
                    command,
                    shell=True,
                    cwd=str(cwd) if cwd else None,
                    env=full_env,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                )
            except OSError as e:
                logger.error("Could not start command %r: %s", command, e)
                return CommandResult(command=command, exit_code=-1, output=str(e))

            for line in proc.stdout:
                sys.stdout.write(line)
                if log_fh:
                    log_fh.write(line)
                tail.append(line.rstrip("\n"))
                if len(tail) > _OUTPUT_TAIL_LINES:
                    del tail[0]
            exit_code = proc.wait()
        finally:
            if log_fh:
                log_fh.close()

        return CommandResult(command=command, exit_code=exit_code, output="\n".join(tail))


# =============================================================================
# Executor
# =============================================================================

class BuildExecutor:
    """Builds one BuildPlan inside ``config.workspace_dir``."""

    def __init__(self, config: ExecutorConfig, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner(config.log_path)

    @property
    def repo_dir(self) -> Path:
        return self.config.repo_dir

    # ── Checkout ──────────────────────────────────────────────────────────

    def checkout(self, repo_url: str, commit: str) -> None:
        """Fresh shallow clone, then fetch and check out exactly *commit*."""
        if self.repo_dir.exists():
            logger.info("Removing stale checkout %s", self.repo_dir)
            shutil.rmtree(self.repo_dir)
        self.config.workspace_dir.mkdir(parents=True, exist_ok=True)

        repo = shlex.quote(str(self.repo_dir))
        steps = [
            f"git clone --depth 1 {shlex.quote(repo_url)} {repo}",
            f"git -C {repo} fetch --depth 1 origin {shlex.quote(commit)}",
            f"git -C {repo} -c advice.detachedHead=false checkout {shlex.quote(commit)}",
        ]
        logger.info("Cloning %s @ %s", repo_url, commit)
        for cmd in steps:
            result = self.runner.run(cmd, cwd=self.config.workspace_dir)
            if not result.ok:
                raise CommitUnreachable(repo_url, commit, _last_line(result.output))

    # ── Host preparation ──────────────────────────────────────────────────

    def patch_buildkit(self) -> List[Path]:
        """Rewrite build scripts that hard-enable BuildKit; returns the patched files."""
        patched = []
        for dirpath, dirs, files in os.walk(self.repo_dir):
            if ".git" in dirs:
                dirs.remove(".git")
            if BUILDKIT_SCRIPT_NAME not in files:
                continue
            path = Path(dirpath) / BUILDKIT_SCRIPT_NAME
            text = path.read_text(encoding="utf-8", errors="replace")
            new_text = _BUILDKIT_ENABLE.sub("export DOCKER_BUILDKIT=0", text)
            if new_text != text:
                path.write_text(new_text, encoding="utf-8")
                patched.append(path)
                logger.info("Disabled BuildKit in %s", path)
        return patched

    def mark_container(self) -> None:
        marker = self.config.container_marker
        if marker is None:
            return
        try:
            marker.parent.mkdir(parents=True, exist_ok=True)
            marker.touch()
        except OSError as e:
            logger.warning("Could not create container marker %s: %s", marker, e)

    def prepare_build_user(self) -> None:
        """Create the unprivileged build account and hand it the checkout (superuser only)."""
        if not self.config.superuser:
            return

        user = shlex.quote(self.config.build_user)
        result = self.runner.run(f"useradd -m -s /bin/bash {user}")
        if not result.ok:
            if result.exit_code == _USERADD_EXISTS or "already exists" in result.output:
                logger.debug("Build user %s already exists", self.config.build_user)
            else:
                logger.warning("useradd exited %d: %s", result.exit_code, _last_line(result.output))

        cache = self.config.cache_dir
        for cmd in (
            f"chown -R {user}:{user} {shlex.quote(str(self.repo_dir))}",
            f"mkdir -p {shlex.quote(str(cache))}",
            f"chown -R {user}:{user} {shlex.quote(str(cache))}",
        ):
            result = self.runner.run(cmd)
            if not result.ok:
                logger.warning("%s exited %d", cmd, result.exit_code)

        socket = self.config.docker_socket
        if socket is not None and socket.exists():
            gid = socket.stat().st_gid
            logger.info("Granting %s access to %s (gid %d)", self.config.build_user, socket, gid)
            for cmd in (
                f"groupadd -g {gid} -f docker-host",
                f"usermod -aG {gid} {user}",
            ):
                result = self.runner.run(cmd)
                if not result.ok:
                    logger.warning("%s exited %d", cmd, result.exit_code)

    # ── Command wrapping ──────────────────────────────────────────────────

    def wrap(self, command: str) -> str:
        """Re-invoke *command* under the build account when running as superuser."""
        if not self.config.superuser:
            return command
        exports = " ".join(
            f"{k}={shlex.quote(v)}" for k, v in self.config.env_overrides.items()
        )
        inner = f"cd {shlex.quote(str(self.repo_dir))}"
        if exports:
            inner += f" && export {exports}"
        inner += f" && {command}"
        return f"su - {shlex.quote(self.config.build_user)} -c {shlex.quote(inner)}"

    def run_step(self, command: str) -> CommandResult:
        if self.config.superuser:
            return self.runner.run(self.wrap(command))
        return self.runner.run(command, cwd=self.repo_dir, env=self.config.env_overrides)

    # ── Targeted build ────────────────────────────────────────────────────

    def find_build_target(self, artifact_name: str) -> Optional[str]:
        """Look up the narrow build target that produces *artifact_name*."""
        for rel in self.config.target_metadata_files:
            path = self.repo_dir / rel
            if not path.is_file():
                continue
            for name, target in _TARGET_ENTRY.findall(path.read_text(encoding="utf-8", errors="replace")):
                if names_match(name, artifact_name):
                    logger.info("Found build target %s for %s in %s", target, artifact_name, rel)
                    return target
        return None

    def build_targeted(self, target: str, artifact_name: str) -> Path:
        command = self.config.targeted_build_command.format(target=target)
        logger.info("Targeted build: %s", command)
        result = self.run_step(command)
        if not result.ok:
            raise TargetedBuildFailed(target, result.exit_code)
        return locate_targeted(
            self.repo_dir, target, artifact_name, self.config.targeted_output_root
        )

    # ── Full build ────────────────────────────────────────────────────────

    def build_full(self, plan: BuildPlan) -> Path:
        total = len(plan.steps)
        for i, step in enumerate(plan.steps, 1):
            logger.info("Step %d/%d: %s", i, total, step)
            result = self.run_step(step)
            if result.ok:
                continue
            if self.config.policy_for(step) == CommandPolicy.FATAL:
                raise FullBuildFailed(step, result.exit_code)
            logger.warning("Step %d exited with %d, continuing", i, result.exit_code)
        return locate_full(self.repo_dir, plan.wasm_output_path)

    # ── Entry point ───────────────────────────────────────────────────────

    def execute(self, plan: BuildPlan) -> BuildOutcome:
        """
        Run the whole build for *plan*.

        Raises
        ------
        CommitUnreachable
            The repository or commit could not be checked out.

        Returns
        -------
        BuildOutcome
            ``strategy`` is NONE with ``error_message`` set when no
            artifact could be located.
        """
        log_path = str(self.config.log_path)
        self.checkout(plan.repo_url, plan.commit_hash)

        if self.config.patch_buildkit:
            self.patch_buildkit()
        if plan.build_profile == BuildProfile.LARGE_MONOREPO:
            self.mark_container()
        self.prepare_build_user()

        artifact_name = Path(plan.wasm_output_path).name
        if plan.build_profile == BuildProfile.LARGE_MONOREPO:
            target = self.find_build_target(artifact_name)
            if target is None:
                logger.info("No build target mapped for %s, skipping targeted build", artifact_name)
            else:
                try:
                    artifact = self.build_targeted(target, artifact_name)
                    logger.info("Targeted build produced %s", artifact)
                    return BuildOutcome(
                        strategy=BuildStrategy.TARGETED,
                        artifact_path=str(artifact),
                        log_path=log_path,
                        target=target,
                    )
                except (TargetedBuildFailed, ArtifactNotFound) as e:
                    logger.warning("%s; falling back to full build", e)

        try:
            artifact = self.build_full(plan)
        except (FullBuildFailed, ArtifactNotFound) as e:
            logger.error("Build produced no artifact: %s", e)
            return BuildOutcome(
                strategy=BuildStrategy.NONE,
                log_path=log_path,
                error_message=str(e),
            )

        logger.info("Full build produced %s", artifact)
        return BuildOutcome(
            strategy=BuildStrategy.FULL,
            artifact_path=str(artifact),
            log_path=log_path,
        )


def _last_line(output: str) -> str:
    lines = [line for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""
