"""
Verdict — hash comparison outcomes and the overall verification decision.

Three-way per-check outcome:
  verified  expected value present and equal (case-insensitive hex)
  failed    expected value present and different
  error     no expected value to compare against

"No expected value" is never folded into a pass or a mismatch.
"""
from dataclasses import dataclass
from enum import Enum, unique
from typing import List, Optional, Tuple


@unique
class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    FAILED = "failed"
    ERROR = "error"


@unique
class VerificationReason(str, Enum):
    HASH_MISMATCH = "HASH_MISMATCH"
    EXPECTED_HASH_ABSENT = "EXPECTED_HASH_ABSENT"
    ARGS_NOT_EXTRACTED = "ARGS_NOT_EXTRACTED"
    ARG_ENCODING_FAILED = "ARG_ENCODING_FAILED"
    ARG_HASH_MISMATCH = "ARG_HASH_MISMATCH"
    PIPELINE_ERROR = "PIPELINE_ERROR"


@dataclass(frozen=True)
class HashComparison:
    match: bool
    status: VerificationStatus


def compare_hashes(actual: str, expected: Optional[str]) -> HashComparison:
    """Compare two hex digests without regard to case."""
    if not expected or not expected.strip():
        return HashComparison(match=False, status=VerificationStatus.ERROR)

    match = actual.strip().lower() == expected.strip().lower()
    return HashComparison(
        match=match,
        status=VerificationStatus.VERIFIED if match else VerificationStatus.FAILED,
    )


def decide(
    artifact: HashComparison,
    argument: Optional[HashComparison],
    argument_reason: Optional[VerificationReason] = None,
) -> Tuple[VerificationStatus, List[str]]:
    """
    Combine the artifact check and the optional argument check.

    *argument* is None when the proposal declares no argument hash.
    *argument_reason* names why the argument check failed when it is more
    specific than a plain mismatch.
    Returns (overall status, reason tags).
    """
    reasons: List[str] = []

    if artifact.status == VerificationStatus.ERROR:
        reasons.append(VerificationReason.EXPECTED_HASH_ABSENT.value)
    elif not artifact.match:
        reasons.append(VerificationReason.HASH_MISMATCH.value)

    if argument is not None and not argument.match:
        reasons.append(
            (argument_reason or VerificationReason.ARG_HASH_MISMATCH).value
        )

    if artifact.status == VerificationStatus.ERROR:
        return VerificationStatus.ERROR, reasons
    if reasons:
        return VerificationStatus.FAILED, reasons
    return VerificationStatus.VERIFIED, reasons
