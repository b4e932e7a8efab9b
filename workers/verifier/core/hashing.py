"""
Hash verifier — digest the built artifact (and encoded upgrade arguments)
and compare against the values the proposal declares.
"""
import hashlib
import logging
from pathlib import Path
from typing import Optional, Tuple

from workers.verifier.core.candid import ArgumentEncoder, didc_encoder
from workers.verifier.errors import ArgumentEncodingFailed
from workers.verifier.io.schema import BuildPlan, ProposalPayload, VerificationResult
from workers.verifier.policy.verdict import (
    HashComparison,
    VerificationReason,
    VerificationStatus,
    compare_hashes,
    decide,
)

logger = logging.getLogger(__name__)

_CHUNK = 1 << 20


def compute_content_hash(path: Path) -> str:
    """SHA-256 of a file's raw bytes, lowercase hex."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def verify_arguments(
    expected_arg_hash: str,
    plan: Optional[BuildPlan],
    encoder: ArgumentEncoder,
    repo_dir: Optional[Path] = None,
) -> Tuple[HashComparison, Optional[str], Optional[VerificationReason], Optional[str]]:
    """
    Encode the extracted argument literal and compare its digest.

    Returns (comparison, actual hash, failure reason, error message).  An
    expected hash with no extracted literal, or a literal the encoder
    rejects, is a failed comparison.
    """
    failed = HashComparison(match=False, status=VerificationStatus.FAILED)

    if plan is None or not plan.upgrade_args:
        logger.warning("Proposal declares an argument hash but no argument literal was extracted")
        return failed, None, VerificationReason.ARGS_NOT_EXTRACTED, None

    schema_path = None
    if plan.args_candid_file:
        schema_path = Path(plan.args_candid_file)
        if repo_dir is not None and not schema_path.is_absolute():
            schema_path = repo_dir / schema_path

    try:
        encoded = encoder(plan.upgrade_args, schema_path, plan.args_type)
    except ArgumentEncodingFailed as e:
        logger.warning("Argument encoding failed: %s", e)
        return failed, None, VerificationReason.ARG_ENCODING_FAILED, str(e)

    actual = compute_bytes_hash(encoded)
    comparison = compare_hashes(actual, expected_arg_hash)
    reason = None if comparison.match else VerificationReason.ARG_HASH_MISMATCH
    return comparison, actual, reason, None


def verify(
    proposal: ProposalPayload,
    plan: Optional[BuildPlan],
    artifact_path: Path,
    *,
    repo_dir: Optional[Path] = None,
    encoder: Optional[ArgumentEncoder] = None,
    run_id: Optional[int] = None,
) -> VerificationResult:
    """Produce the verification result for one built artifact."""
    actual = compute_content_hash(artifact_path)
    artifact = compare_hashes(actual, proposal.expected_wasm_hash)
    logger.info("Expected WASM hash: %s", proposal.expected_wasm_hash or "(none)")
    logger.info("Actual WASM hash:   %s", actual)

    argument = None
    actual_arg = None
    arg_reason = None
    error_message = None
    if proposal.expected_arg_hash:
        argument, actual_arg, arg_reason, error_message = verify_arguments(
            proposal.expected_arg_hash,
            plan,
            encoder or didc_encoder(),
            repo_dir,
        )
        logger.info("Expected arg hash:  %s", proposal.expected_arg_hash)
        logger.info("Actual arg hash:    %s", actual_arg or "(not computed)")

    status, reasons = decide(artifact, argument, arg_reason)
    if status == VerificationStatus.ERROR and error_message is None:
        error_message = "Proposal declares no expected WASM hash"

    return VerificationResult(
        proposal_id=proposal.proposal_id,
        status=status,
        wasm_hash_match=artifact.match,
        actual_wasm_hash=actual,
        expected_wasm_hash=proposal.expected_wasm_hash,
        arg_status=argument.status if argument is not None else None,
        arg_hash_match=argument.match if argument is not None else True,
        actual_arg_hash=actual_arg,
        expected_arg_hash=proposal.expected_arg_hash,
        reasons=reasons,
        error_message=error_message,
        run_id=run_id,
    )
