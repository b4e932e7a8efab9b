"""
Schema — Pydantic models for every document the pipeline reads or writes.

JSON documents use camelCase keys so they stay interchangeable with the
CI workflow that consumes them:

  proposal.json                  ProposalPayload
  build-steps.json               BuildPlan
  build-outcome.json             BuildOutcome
  verification-result.json       VerificationResult
  state/verified-proposals.json  StateData
"""
from datetime import datetime, timezone
from enum import Enum, unique
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

from workers.verifier import PACKAGE_NAME, SCHEMA_VERSION, VERIFIER_VERSION
from workers.verifier.policy.profile import BuildProfile, BuildStrategy
from workers.verifier.policy.verdict import VerificationStatus

INSTALL_CODE_ACTION = "InstallCode"


def now_iso() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Proposal (produced by ingestion) ─────────────────────────────────────────

class ProposalPayload(_CamelModel):
    """One governance proposal, reduced to what verification needs."""
    model_config = ConfigDict(frozen=True)

    proposal_id: int
    title: str = "Untitled"
    summary: str = ""
    url: str = ""
    action: Optional[str] = None           # e.g. "InstallCode"

    # Populated only for code-install actions
    commit_hash: Optional[str] = None
    expected_wasm_hash: Optional[str] = None
    expected_arg_hash: Optional[str] = None
    canister_id: Optional[str] = None
    install_mode: Optional[int] = None

    @property
    def is_code_install(self) -> bool:
        return self.action == INSTALL_CODE_ACTION


# ── Build plan (produced by the instruction resolver) ────────────────────────

class BuildPlan(_CamelModel):
    model_config = ConfigDict(frozen=True)

    commit_hash: str
    repo_url: str
    build_profile: BuildProfile
    steps: List[str]
    wasm_output_path: str
    upgrade_args: Optional[str] = None
    args_candid_file: Optional[str] = None
    args_type: Optional[str] = None


# ── Build outcome (produced by the executor, not persisted in state) ─────────

class BuildOutcome(_CamelModel):
    strategy: BuildStrategy
    artifact_path: Optional[str] = None
    log_path: Optional[str] = None
    target: Optional[str] = None           # build target when targeted
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.strategy != BuildStrategy.NONE and self.artifact_path is not None


# ── Verification result ──────────────────────────────────────────────────────

class VerificationResult(_CamelModel):
    package_name: str = PACKAGE_NAME
    verifier_version: str = VERIFIER_VERSION
    schema_version: str = SCHEMA_VERSION

    proposal_id: int
    status: VerificationStatus

    wasm_hash_match: bool = False
    actual_wasm_hash: Optional[str] = None
    expected_wasm_hash: Optional[str] = None

    # None when the proposal declares no argument hash
    arg_status: Optional[VerificationStatus] = None
    arg_hash_match: bool = True
    actual_arg_hash: Optional[str] = None
    expected_arg_hash: Optional[str] = None

    reasons: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    run_id: Optional[int] = None

    timestamp: str = Field(default_factory=now_iso)

    @property
    def arg_check_applies(self) -> bool:
        return self.arg_status is not None


# ── Persisted state ──────────────────────────────────────────────────────────

@unique
class EntryStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


class VerificationStateEntry(_CamelModel):
    status: EntryStatus
    wasm_hash_match: bool = False
    arg_hash_match: Optional[bool] = None
    verified_at: str = Field(default_factory=now_iso)
    run_id: Optional[int] = None
    actual_hash: Optional[str] = None
    expected_hash: Optional[str] = None
    actual_arg_hash: Optional[str] = None
    expected_arg_hash: Optional[str] = None
    error_message: Optional[str] = None


class StateData(_CamelModel):
    last_checked_timestamp: int = 0
    proposals: Dict[str, VerificationStateEntry] = Field(default_factory=dict)

    # Entries read from disk that do not validate; written back untouched
    _unrecognized: Dict[str, Any] = PrivateAttr(default_factory=dict)

    @property
    def unrecognized(self) -> Dict[str, Any]:
        return self._unrecognized
