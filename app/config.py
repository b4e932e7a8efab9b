"""
Application configuration
"""
from pathlib import Path
from typing import Dict, List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080
    API_TITLE: str = "Canister Build Verifier API"
    API_VERSION: str = "0.3.0"

    # Governance dashboard
    GOVERNANCE_API_BASE: str = "https://ic-api.internetcomputer.org/api/v3"
    GOVERNANCE_TIMEOUT: float = 30.0  # seconds

    # Monitor
    TRACKED_TOPICS: List[int] = [17]  # TOPIC_PROTOCOL_CANISTER_MANAGEMENT
    MIN_PROPOSAL_ID: int = 0
    MONITOR_ENABLED: bool = True
    MONITOR_LIMIT: int = 100

    # LLM / OpenRouter
    OPENROUTER_API_KEY: str | None = None
    LLM_MODEL: str = "google/gemini-2.0-flash-001"
    LLM_TEMPERATURE: float = 0.1
    LLM_MAX_TOKENS: int = 1024
    PROMPT_TEMPLATE_ID: str = "build_steps_v1"

    # Repository
    LARGE_MONOREPO_URL: str = "https://github.com/dfinity/ic"

    # Workspace files (relative to WORKSPACE_DIR)
    WORKSPACE_DIR: str = "."
    REPO_DIR: str = "repo"
    PROPOSAL_FILE: str = "proposal.json"
    BUILD_PLAN_FILE: str = "build-steps.json"
    OUTPUT_ARTIFACT: str = "output/canister.wasm"
    BUILD_OUTCOME_FILE: str = "build-outcome.json"
    RESULT_FILE: str = "verification-result.json"
    BUILD_LOG_FILE: str = "build.log"

    # State
    STATE_FILE: str = "state/verified-proposals.json"

    # Executor
    BUILD_USER: str = "builder"
    BUILD_CACHE_DIR: str | None = None
    DOCKER_SOCKET: str | None = "/var/run/docker.sock"
    CONTAINER_MARKER: str | None = "/home/ubuntu/.ic-build-container"
    BUILD_ENV: Dict[str, str] = {"DOCKER_BUILDKIT": "0"}
    FATAL_COMMAND_PATTERNS: List[str] = []
    TARGET_METADATA_FILES: List[str] = ["publish/canisters/BUILD.bazel"]

    # Candid
    DIDC_BINARY: str = "didc"

    # CI sinks
    GITHUB_STEP_SUMMARY: str | None = None
    GITHUB_OUTPUT: str | None = None
    GITHUB_RUN_ID: int | None = None

    # Forum
    FORUM_BASE_URL: str = "https://forum.dfinity.org"
    FORUM_CATEGORY_ID: int = 76
    PORTAL_URL: str | None = None
    COMMENTARY_SECRET: str | None = None
    FORUM_LINK_SECRET: str | None = None

    def workspace_path(self, name: str) -> Path:
        """Resolve a workspace-relative file name."""
        return Path(self.WORKSPACE_DIR) / name

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
