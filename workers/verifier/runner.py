"""
Verifier runner — pipeline orchestration and CLI.

Stage by stage (one CI step each, exchanging JSON documents)::

    python -m workers.verifier.runner extract        proposal.json → build-steps.json
    python -m workers.verifier.runner build          build-steps.json → output/canister.wasm
    python -m workers.verifier.runner verify         → verification-result.json, step summary
    python -m workers.verifier.runner update-state 134567 verified true 987654

or all at once::

    python -m workers.verifier.runner run 134567

Exit codes: 0 only for a verified result or a documented skip.
"""
import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from app.config import Settings, settings
from workers.governance.client import GovernanceClient
from workers.governance.ingest import parse_proposal
from workers.verifier.core.candid import ArgumentEncoder, didc_encoder
from workers.verifier.core.executor import BuildExecutor
from workers.verifier.core.hashing import verify
from workers.verifier.core.instructions import (
    DEFAULT_TEMPLATE_ID,
    CompletionClient,
    OpenRouterCompletion,
    resolve_build_plan,
)
from workers.verifier.core.repository import LARGE_MONOREPO_URL
from workers.verifier.errors import VerificationError
from workers.verifier.io.report import (
    print_banner,
    render_failure,
    render_summary,
    write_step_summary,
)
from workers.verifier.io.schema import (
    BuildOutcome,
    BuildPlan,
    EntryStatus,
    ProposalPayload,
    VerificationResult,
)
from workers.verifier.io.state_store import StateStore
from workers.verifier.io.writer import read_model, write_model
from workers.verifier.policy.profile import BuildStrategy, ExecutorConfig
from workers.verifier.policy.verdict import VerificationReason, VerificationStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Pipeline
# =============================================================================

def error_result(proposal: ProposalPayload, message: str, run_id: Optional[int] = None,
                 reason: VerificationReason = VerificationReason.PIPELINE_ERROR) -> VerificationResult:
    return VerificationResult(
        proposal_id=proposal.proposal_id,
        status=VerificationStatus.ERROR,
        expected_wasm_hash=proposal.expected_wasm_hash,
        expected_arg_hash=proposal.expected_arg_hash,
        reasons=[reason.value],
        error_message=message,
        run_id=run_id,
    )


def publish_artifact(artifact: Path, destination: Path) -> Path:
    """Copy the located artifact to the fixed output location."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(artifact, destination)
    logger.info("Copied %s → %s", artifact, destination)
    return destination


def run_pipeline(
    proposal: ProposalPayload,
    completion: CompletionClient,
    executor: BuildExecutor,
    store: StateStore,
    *,
    monorepo_url: str = LARGE_MONOREPO_URL,
    template_id: str = DEFAULT_TEMPLATE_ID,
    encoder: Optional[ArgumentEncoder] = None,
    run_id: Optional[int] = None,
    output_artifact: Optional[Path] = None,
) -> Optional[VerificationResult]:
    """
    resolve → build → locate → verify → persist, for one proposal.

    Returns None when the proposal is not a code install (recorded as
    ``skipped``).  Every failure is logged, recorded as an ``error`` entry
    and returned as an ``error`` result; nothing propagates.
    """
    pid = proposal.proposal_id
    if not proposal.is_code_install:
        logger.info("Proposal %s is not a code install (%s), skipping", pid, proposal.action)
        store.upsert(pid, status=EntryStatus.SKIPPED, run_id=run_id)
        return None

    try:
        if not proposal.commit_hash:
            result = error_result(proposal, "Proposal carries no commit reference", run_id)
        elif not proposal.expected_wasm_hash:
            result = error_result(
                proposal,
                "Proposal declares no expected WASM hash",
                run_id,
                VerificationReason.EXPECTED_HASH_ABSENT,
            )
        else:
            plan = resolve_build_plan(
                proposal, completion, monorepo_url=monorepo_url, template_id=template_id
            )
            outcome = executor.execute(plan)
            if not outcome.succeeded:
                result = error_result(proposal, outcome.error_message or "Build produced no artifact", run_id)
            else:
                artifact = Path(outcome.artifact_path)
                if output_artifact is not None:
                    artifact = publish_artifact(artifact, output_artifact)
                result = verify(
                    proposal,
                    plan,
                    artifact,
                    repo_dir=executor.repo_dir,
                    encoder=encoder,
                    run_id=run_id,
                )
    except Exception as e:
        logger.error("Verification of proposal %s failed: %s", pid, e, exc_info=True)
        result = error_result(proposal, f"{e.__class__.__name__}: {e}", run_id)

    store.record_result(result)
    logger.info("Proposal %s: %s %s", pid, result.status.value, result.reasons)
    return result


# =============================================================================
# CLI stages
# =============================================================================

def _completion(cfg: Settings) -> OpenRouterCompletion:
    return OpenRouterCompletion(
        cfg.OPENROUTER_API_KEY,
        cfg.LLM_MODEL,
        temperature=cfg.LLM_TEMPERATURE,
        max_tokens=cfg.LLM_MAX_TOKENS,
    )


def cmd_extract(cfg: Settings = settings, completion: Optional[CompletionClient] = None) -> int:
    proposal = read_model(ProposalPayload, cfg.workspace_path(cfg.PROPOSAL_FILE))
    if not proposal.commit_hash:
        logger.error("Proposal %s has no commit hash; cannot extract build steps", proposal.proposal_id)
        return 1
    try:
        plan = resolve_build_plan(
            proposal,
            completion or _completion(cfg),
            monorepo_url=cfg.LARGE_MONOREPO_URL,
            template_id=cfg.PROMPT_TEMPLATE_ID,
        )
    except VerificationError as e:
        logger.error("Build step extraction failed: %s", e)
        write_step_summary(render_failure("Build Step Extraction Failed", str(e)), cfg.GITHUB_STEP_SUMMARY)
        return 1

    path = write_model(plan, cfg.workspace_path(cfg.BUILD_PLAN_FILE))
    logger.info("Wrote %s", path)
    return 0


def cmd_build(cfg: Settings = settings, executor: Optional[BuildExecutor] = None) -> int:
    plan = read_model(BuildPlan, cfg.workspace_path(cfg.BUILD_PLAN_FILE))
    executor = executor or BuildExecutor(ExecutorConfig.from_settings(cfg))
    outcome_path = cfg.workspace_path(cfg.BUILD_OUTCOME_FILE)

    try:
        outcome = executor.execute(plan)
    except VerificationError as e:
        logger.error("%s", e)
        outcome = BuildOutcome(strategy=BuildStrategy.NONE, error_message=str(e))

    if not outcome.succeeded:
        write_model(outcome, outcome_path)
        write_step_summary(
            render_failure("Build Failed", outcome.error_message or "No artifact produced"),
            cfg.GITHUB_STEP_SUMMARY,
        )
        return 1

    publish_artifact(Path(outcome.artifact_path), cfg.workspace_path(cfg.OUTPUT_ARTIFACT))
    write_model(outcome, outcome_path)
    return 0


def cmd_verify(
    cfg: Settings = settings,
    encoder: Optional[ArgumentEncoder] = None,
    record: bool = True,
) -> int:
    proposal = read_model(ProposalPayload, cfg.workspace_path(cfg.PROPOSAL_FILE))
    plan_path = cfg.workspace_path(cfg.BUILD_PLAN_FILE)
    plan = read_model(BuildPlan, plan_path) if plan_path.exists() else None
    if plan is None:
        logger.warning("%s not found; argument verification has no extracted literal", plan_path)

    artifact = cfg.workspace_path(cfg.OUTPUT_ARTIFACT)
    if not artifact.is_file():
        logger.error("Built artifact not found at %s", artifact)
        result = error_result(proposal, f"Built artifact not found at {artifact}", cfg.GITHUB_RUN_ID)
        write_step_summary(
            render_failure("Build Verification Failed", f"Built WASM file not found at `{artifact}`"),
            cfg.GITHUB_STEP_SUMMARY,
        )
    else:
        result = verify(
            proposal,
            plan,
            artifact,
            repo_dir=cfg.workspace_path(cfg.REPO_DIR),
            encoder=encoder or didc_encoder(cfg.DIDC_BINARY),
            run_id=cfg.GITHUB_RUN_ID,
        )
        write_step_summary(render_summary(result, proposal), cfg.GITHUB_STEP_SUMMARY)

    write_model(result, cfg.workspace_path(cfg.RESULT_FILE))
    if record:
        StateStore(cfg.workspace_path(cfg.STATE_FILE)).record_result(result)
    print_banner(result)
    return 0 if result.status == VerificationStatus.VERIFIED else 1


def cmd_update_state(
    proposal_id: int,
    status: str,
    hash_match: Optional[str] = None,
    run_id: Optional[int] = None,
    cfg: Settings = settings,
) -> int:
    update = {"status": EntryStatus(status)}
    if hash_match is not None:
        update["wasm_hash_match"] = hash_match.lower() == "true"
    if run_id is not None:
        update["run_id"] = run_id
    entry = StateStore(cfg.workspace_path(cfg.STATE_FILE)).upsert(proposal_id, **update)
    logger.info("Updated proposal %s: %s", proposal_id, entry.status.value)
    return 0


def cmd_run(
    proposal_id: int,
    cfg: Settings = settings,
    completion: Optional[CompletionClient] = None,
    executor: Optional[BuildExecutor] = None,
    client: Optional[GovernanceClient] = None,
) -> int:
    gov = client or GovernanceClient(cfg.GOVERNANCE_API_BASE, timeout=cfg.GOVERNANCE_TIMEOUT)
    try:
        proposal = parse_proposal(gov.get_proposal(proposal_id))
    except (httpx.HTTPError, LookupError) as e:
        logger.error("Could not fetch proposal %s: %s", proposal_id, e)
        return 1
    finally:
        if client is None:
            gov.close()

    write_model(proposal, cfg.workspace_path(cfg.PROPOSAL_FILE))
    result = run_pipeline(
        proposal,
        completion or _completion(cfg),
        executor or BuildExecutor(ExecutorConfig.from_settings(cfg)),
        StateStore(cfg.workspace_path(cfg.STATE_FILE)),
        monorepo_url=cfg.LARGE_MONOREPO_URL,
        template_id=cfg.PROMPT_TEMPLATE_ID,
        encoder=didc_encoder(cfg.DIDC_BINARY),
        run_id=cfg.GITHUB_RUN_ID,
        output_artifact=cfg.workspace_path(cfg.OUTPUT_ARTIFACT),
    )
    if result is None:
        return 0

    write_model(result, cfg.workspace_path(cfg.RESULT_FILE))
    write_step_summary(render_summary(result, proposal), cfg.GITHUB_STEP_SUMMARY)
    print_banner(result)
    return 0 if result.status == VerificationStatus.VERIFIED else 1


# =============================================================================
# Entry point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="verifier — reproducible-build verification of canister upgrade proposals",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("extract", help="Extract build steps from proposal.json")
    sub.add_parser("build", help="Build the artifact described by build-steps.json")

    p = sub.add_parser("verify", help="Compare the built artifact with the proposal")
    p.add_argument("--no-record", action="store_true", help="Do not write the result to the state file")

    p = sub.add_parser("update-state", help="Upsert one state entry")
    p.add_argument("proposal_id", type=int)
    p.add_argument("status", choices=[s.value for s in EntryStatus])
    p.add_argument("hash_match", nargs="?", default=None, help="true|false")
    p.add_argument("run_id", nargs="?", type=int, default=None)

    p = sub.add_parser("run", help="Fetch, build and verify one proposal")
    p.add_argument("proposal_id", type=int)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    if args.command == "extract":
        return cmd_extract()
    if args.command == "build":
        return cmd_build()
    if args.command == "verify":
        return cmd_verify(record=not args.no_record)
    if args.command == "update-state":
        return cmd_update_state(args.proposal_id, args.status, args.hash_match, args.run_id)
    return cmd_run(args.proposal_id)


if __name__ == "__main__":
    sys.exit(main())
