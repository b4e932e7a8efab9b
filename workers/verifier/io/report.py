"""
Human-readable verification report and CI sinks.

The step summary is Markdown appended to the file named by
``GITHUB_STEP_SUMMARY``; step outputs are ``key=value`` lines appended to
``GITHUB_OUTPUT``.  Both sinks are optional and skipped when unset.
"""
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from workers.verifier.io.schema import ProposalPayload, VerificationResult
from workers.verifier.policy.verdict import VerificationReason, VerificationStatus

logger = logging.getLogger(__name__)

_NOT_DECLARED = "Not found in proposal"

_CHECK_LABELS = {
    VerificationStatus.VERIFIED: "MATCH",
    VerificationStatus.FAILED: "MISMATCH",
    VerificationStatus.ERROR: "CANNOT VERIFY",
}

_HEADINGS = {
    VerificationStatus.VERIFIED: "✅ VERIFIED",
    VerificationStatus.FAILED: "❌ FAILED",
    VerificationStatus.ERROR: "⚠️ CANNOT VERIFY",
}

_VERDICT_LINES = {
    VerificationStatus.VERIFIED: "### ✅ Build verification successful!",
    VerificationStatus.FAILED: "### ❌ Verification failed - the build does not match the proposal",
    VerificationStatus.ERROR: "### ⚠️ Could not verify - verification could not complete",
}

_EXPECTED_ABSENT_LINE = "### ⚠️ Could not verify - expected hash not found in proposal"


def _verdict_line(result: VerificationResult) -> str:
    if (result.status == VerificationStatus.ERROR
            and VerificationReason.EXPECTED_HASH_ABSENT.value in result.reasons):
        return _EXPECTED_ABSENT_LINE
    return _VERDICT_LINES[result.status]


def check_label(status: Optional[VerificationStatus]) -> str:
    if status is None:
        return "NOT APPLICABLE"
    return _CHECK_LABELS[status]


def _artifact_status(result: VerificationResult) -> VerificationStatus:
    if not result.expected_wasm_hash:
        return VerificationStatus.ERROR
    return VerificationStatus.VERIFIED if result.wasm_hash_match else VerificationStatus.FAILED


def _code(value: Optional[str], missing: str = _NOT_DECLARED) -> str:
    return f"`{value}`" if value else missing


def render_summary(result: VerificationResult, proposal: Optional[ProposalPayload] = None) -> str:
    """Markdown report: expected vs. actual for artifact and arguments, then the verdict."""
    lines: List[str] = [
        f"## Build Verification Result: {_HEADINGS[result.status]}",
        "",
        f"**Proposal:** {result.proposal_id}",
    ]
    if proposal is not None:
        lines.append(f"**Title:** {proposal.title}")
        if proposal.commit_hash:
            lines.append(f"**Commit:** `{proposal.commit_hash}`")
        if proposal.canister_id:
            lines.append(f"**Canister:** `{proposal.canister_id}`")

    lines += [
        "",
        "| Check | Expected | Actual | Status |",
        "|-------|----------|--------|--------|",
        "| WASM | {} | {} | {} |".format(
            _code(result.expected_wasm_hash),
            _code(result.actual_wasm_hash, "-"),
            check_label(_artifact_status(result)),
        ),
        "| Arguments | {} | {} | {} |".format(
            _code(result.expected_arg_hash, "-"),
            _code(result.actual_arg_hash, "-"),
            check_label(result.arg_status),
        ),
        "",
        _verdict_line(result),
    ]
    if result.reasons:
        lines += ["", "Reasons: " + ", ".join(f"`{r}`" for r in result.reasons)]
    if result.error_message:
        lines += ["", f"> {result.error_message}"]
    return "\n".join(lines) + "\n"


def render_failure(title: str, message: str) -> str:
    return f"## {title}\n\n{message}\n"


def print_banner(result: VerificationResult) -> None:
    """Console mirror of the step summary."""
    rule = "=" * 50
    print(rule)
    print(f"Proposal {result.proposal_id}: {result.status.value.upper()}")
    print(f"  WASM      {check_label(_artifact_status(result))}")
    print(f"  Arguments {check_label(result.arg_status)}")
    if result.reasons:
        print(f"  Reasons   {', '.join(result.reasons)}")
    print(rule)


def write_step_summary(content: str, summary_file: Optional[str]) -> None:
    if not summary_file:
        return
    with open(summary_file, "a", encoding="utf-8") as f:
        f.write(content + "\n")


def set_github_output(name: str, value: str, output_file: Optional[str]) -> None:
    """Append one step output; multi-line values use the heredoc form."""
    if not output_file:
        logger.debug("GITHUB_OUTPUT unset, dropping %s=%s", name, value)
        return
    with open(Path(output_file), "a", encoding="utf-8") as f:
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4().hex}"
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            f.write(f"{name}={value}\n")
