"""
Shared pytest fixtures for verifier tests.

No git, bazel, didc, network or root is needed: external processes are
replaced by ``FakeRunner`` and the completion service by ``CannedCompletion``.
"""
import hashlib
import json
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from workers.verifier.core.executor import CommandResult
from workers.verifier.io.schema import BuildPlan, ProposalPayload
from workers.verifier.policy.profile import BuildProfile, ExecutorConfig

COMMIT = "3f2c1d0e9b8a7f6e5d4c3b2a1f0e9d8c7b6a5f4e"
MONOREPO = "https://github.com/dfinity/ic"

WASM_BYTES = b"\x00asm\x01\x00\x00\x00"
WASM_SHA256 = hashlib.sha256(WASM_BYTES).hexdigest()


class FakeRunner:
    """
    Records commands; ``handlers`` map a substring to a callable returning
    an exit code (and optionally creating files).  Unmatched commands exit 0.
    """

    def __init__(self, handlers: Optional[Dict[str, Callable[[str], int]]] = None):
        self.handlers = handlers or {}
        self.calls: List[dict] = []

    def run(self, command, cwd=None, env=None) -> CommandResult:
        self.calls.append({"command": command, "cwd": cwd, "env": env})
        for needle, handler in self.handlers.items():
            if needle in command:
                code = handler(command)
                return CommandResult(command=command, exit_code=code, output="" if code == 0 else "boom")
        return CommandResult(command=command, exit_code=0)

    @property
    def commands(self) -> List[str]:
        return [c["command"] for c in self.calls]


class CannedCompletion:
    def __init__(self, text: str):
        self.text = text
        self.prompts: List[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text


def extraction_json(**overrides) -> str:
    data = {
        "repoUrl": MONOREPO,
        "steps": ["./ci/container/build-ic.sh -c"],
        "wasmOutputPath": "artifacts/canisters/governance-canister.wasm.gz",
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture
def proposal() -> ProposalPayload:
    return ProposalPayload(
        proposal_id=134567,
        title="Upgrade the Governance Canister",
        summary=f"Upgrade governance to commit {COMMIT}.",
        url="https://forum.dfinity.org/t/123",
        action="InstallCode",
        commit_hash=COMMIT,
        expected_wasm_hash=WASM_SHA256.upper(),
        canister_id="rrkah-fqaaa-aaaaa-aaaaq-cai",
        install_mode=3,
    )


@pytest.fixture
def standalone_plan() -> BuildPlan:
    return BuildPlan(
        commit_hash=COMMIT,
        repo_url="https://github.com/dfinity/cycles-ledger",
        build_profile=BuildProfile.STANDALONE,
        steps=["./scripts/docker-build"],
        wasm_output_path="out/cycles-ledger.wasm",
    )


@pytest.fixture
def monorepo_plan() -> BuildPlan:
    return BuildPlan(
        commit_hash=COMMIT,
        repo_url=MONOREPO,
        build_profile=BuildProfile.LARGE_MONOREPO,
        steps=["./ci/container/build-ic.sh -c"],
        wasm_output_path="artifacts/canisters/governance-canister.wasm.gz",
    )


@pytest.fixture
def executor_config(tmp_path) -> ExecutorConfig:
    return ExecutorConfig(
        workspace_dir=tmp_path / "ws",
        docker_socket=None,
        container_marker=tmp_path / "marker" / ".ic-build-container",
    )


def write_file(path: Path, data: bytes = WASM_BYTES) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path
