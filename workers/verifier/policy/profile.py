"""
Profile — build classification and the executor's tunable parameters.

Everything the executor needs to know about the host (privilege, container
socket, environment overrides) lives in ``ExecutorConfig`` and is passed in
explicitly, so two executors in one process never share ambient state.
"""
import os
import re
from dataclasses import dataclass, field
from enum import Enum, unique
from pathlib import Path
from typing import Dict, Optional, Tuple


@unique
class BuildProfile(str, Enum):
    LARGE_MONOREPO = "large-monorepo"
    STANDALONE = "standalone"


@unique
class BuildStrategy(str, Enum):
    TARGETED = "targeted"
    FULL = "full"
    NONE = "none"


@unique
class CommandPolicy(str, Enum):
    """What a non-zero exit from a full-build command means."""
    TOLERANT = "tolerant"   # warn and continue; the artifact decides
    FATAL = "fatal"         # abort the full build


@dataclass(frozen=True)
class ExecutorConfig:
    """Host and policy knobs for one build executor."""

    workspace_dir: Path
    repo_dir_name: str = "repo"

    # Privilege de-escalation (only when running as superuser)
    superuser: bool = False
    build_user: str = "builder"
    build_cache_dir: Optional[Path] = None
    docker_socket: Optional[Path] = Path("/var/run/docker.sock")

    # Marker that tells the monorepo's scripts they already run in a build container
    container_marker: Optional[Path] = Path("/home/ubuntu/.ic-build-container")

    env_overrides: Dict[str, str] = field(
        default_factory=lambda: {"DOCKER_BUILDKIT": "0"}
    )
    patch_buildkit: bool = True

    # Targeted builds (large-monorepo profile only)
    target_metadata_files: Tuple[str, ...] = ("publish/canisters/BUILD.bazel",)
    targeted_build_command: str = "bazel build {target}"
    targeted_output_root: str = "bazel-bin"

    # Full-build command policy
    default_command_policy: CommandPolicy = CommandPolicy.TOLERANT
    fatal_command_patterns: Tuple[str, ...] = ()

    log_file: str = "build.log"

    @property
    def repo_dir(self) -> Path:
        return self.workspace_dir / self.repo_dir_name

    @property
    def log_path(self) -> Path:
        return self.workspace_dir / self.log_file

    @property
    def cache_dir(self) -> Path:
        if self.build_cache_dir is not None:
            return self.build_cache_dir
        return Path("/home") / self.build_user / ".cache"

    def policy_for(self, command: str) -> CommandPolicy:
        """Return the failure policy for a single full-build command."""
        for pattern in self.fatal_command_patterns:
            if re.search(pattern, command):
                return CommandPolicy.FATAL
        return self.default_command_policy

    @classmethod
    def from_settings(cls, settings) -> "ExecutorConfig":
        """Build the config from ``app.config.Settings``, probing the effective uid once."""
        return cls(
            workspace_dir=Path(settings.WORKSPACE_DIR),
            repo_dir_name=settings.REPO_DIR,
            superuser=os.geteuid() == 0,
            build_user=settings.BUILD_USER,
            build_cache_dir=(
                Path(settings.BUILD_CACHE_DIR) if settings.BUILD_CACHE_DIR else None
            ),
            docker_socket=(
                Path(settings.DOCKER_SOCKET) if settings.DOCKER_SOCKET else None
            ),
            container_marker=(
                Path(settings.CONTAINER_MARKER) if settings.CONTAINER_MARKER else None
            ),
            env_overrides=dict(settings.BUILD_ENV),
            target_metadata_files=tuple(settings.TARGET_METADATA_FILES),
            fatal_command_patterns=tuple(settings.FATAL_COMMAND_PATTERNS),
            log_file=settings.BUILD_LOG_FILE,
        )
