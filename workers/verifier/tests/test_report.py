"""
Tests for workers.verifier.io.report — step summary and CI outputs.
"""
from workers.verifier.io.report import (
    check_label,
    render_summary,
    set_github_output,
    write_step_summary,
)
from workers.verifier.io.schema import VerificationResult
from workers.verifier.policy.verdict import VerificationStatus


def _result(**kw) -> VerificationResult:
    base = dict(
        proposal_id=1,
        status=VerificationStatus.VERIFIED,
        wasm_hash_match=True,
        actual_wasm_hash="aa" * 32,
        expected_wasm_hash="AA" * 32,
    )
    base.update(kw)
    return VerificationResult(**base)


class TestRenderSummary:

    def test_verified(self, proposal):
        md = render_summary(_result(), proposal)
        assert "✅ VERIFIED" in md
        assert "| WASM | `" + "AA" * 32 + "` | `" + "aa" * 32 + "` | MATCH |" in md
        assert "| Arguments | - | - | NOT APPLICABLE |" in md
        assert proposal.commit_hash in md

    def test_artifact_match_argument_unverifiable_shown_distinctly(self):
        md = render_summary(_result(
            status=VerificationStatus.FAILED,
            arg_status=VerificationStatus.FAILED,
            arg_hash_match=False,
            expected_arg_hash="bb" * 32,
            reasons=["ARGS_NOT_EXTRACTED"],
        ))
        assert "| MATCH |" in md
        assert "| Arguments | `" + "bb" * 32 + "` | - | MISMATCH |" in md
        assert "`ARGS_NOT_EXTRACTED`" in md
        assert "❌" in md

    def test_expected_absent(self):
        md = render_summary(_result(
            status=VerificationStatus.ERROR,
            wasm_hash_match=False,
            expected_wasm_hash=None,
            reasons=["EXPECTED_HASH_ABSENT"],
        ))
        assert "Not found in proposal" in md
        assert "CANNOT VERIFY" in md
        assert "expected hash not found in proposal" in md

    def test_pipeline_error_verdict(self):
        md = render_summary(_result(
            status=VerificationStatus.ERROR,
            wasm_hash_match=False,
            actual_wasm_hash=None,
            reasons=["PIPELINE_ERROR"],
            error_message="Build produced no artifact",
        ))
        assert "verification could not complete" in md
        assert "expected hash not found" not in md
        assert "> Build produced no artifact" in md

    def test_labels(self):
        assert check_label(None) == "NOT APPLICABLE"
        assert check_label(VerificationStatus.FAILED) == "MISMATCH"


class TestSinks:

    def test_summary_appends(self, tmp_path):
        path = tmp_path / "summary.md"
        write_step_summary("one", str(path))
        write_step_summary("two", str(path))
        assert path.read_text() == "one\ntwo\n"

    def test_summary_unset_is_noop(self):
        write_step_summary("ignored", None)

    def test_github_output(self, tmp_path):
        path = tmp_path / "out"
        set_github_output("count", "2", str(path))
        set_github_output("notes", "a\nb", str(path))
        lines = path.read_text().splitlines()
        assert lines[0] == "count=2"
        assert lines[1].startswith("notes<<ghadelimiter_")
        assert lines[2:4] == ["a", "b"]
        assert lines[4] == lines[1].split("<<", 1)[1]
