"""
Build instruction resolver — free-text proposal → validated ``BuildPlan``.

The language-understanding step is delegated to a completion service behind
the narrow :class:`CompletionClient` protocol; everything after the raw
completion text (fence stripping, structural validation, URL normalization,
profile classification) is deterministic and testable against canned text.

Extraction is best-effort and unverified.  A response that cannot be
validated raises :class:`MalformedExtraction`; no default plan is ever
fabricated.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from workers.llm.model_router import chat_json
from workers.llm.prompt import load_template, render_prompt
from workers.llm.response_parser import parse_json_object
from workers.verifier.core.repository import LARGE_MONOREPO_URL, classify, normalize
from workers.verifier.errors import CompletionServiceError, MalformedExtraction
from workers.verifier.io.schema import BuildPlan, ProposalPayload

log = logging.getLogger(__name__)

DEFAULT_TEMPLATE_ID = "build_steps_v1"

# Checkout is owned by the executor; these never belong in a build plan.
_SOURCE_CONTROL = re.compile(
    r"^\s*(?:sudo\s+)?git\s+(?:clone|fetch|checkout|pull|switch|reset)\b",
    re.IGNORECASE,
)


# ─── Completion boundary ─────────────────────────────────────────────────────

class CompletionClient(Protocol):
    def complete(self, prompt: str) -> str:
        ...


class OpenRouterCompletion:
    """Completion client backed by OpenRouter chat completions."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client

    def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionServiceError("OPENROUTER_API_KEY is required for build-step extraction")

        client = self.client or httpx.Client()
        try:
            result = chat_json(
                client,
                self.api_key,
                self.model,
                prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except httpx.HTTPError as e:
            raise CompletionServiceError(f"Completion request failed: {e}") from e
        finally:
            if self.client is None:
                client.close()

        log.info(
            "Completion received from %s (%d tokens, %d ms)",
            result.model, result.total_tokens, result.latency_ms,
        )
        return result.text


# ─── Validation ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExtractedInstructions:
    """The completion's answer after structural validation."""
    repo_url: Optional[str]
    steps: List[str]
    wasm_output_path: str
    upgrade_args: Optional[str] = None
    args_candid_file: Optional[str] = None
    args_type: Optional[str] = None


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        log.warning("Ignoring non-string %s in extraction: %r", key, value)
        return None
    value = value.strip()
    return value or None


def parse_extraction(response_text: str) -> ExtractedInstructions:
    """Validate a raw completion into :class:`ExtractedInstructions`.

    Raises
    ------
    MalformedExtraction
        No JSON object, ``steps`` not a list of strings, no build command left
        after dropping source-control commands, or no artifact path.
    """
    parsed = parse_json_object(response_text)
    if not parsed.parse_ok or parsed.data is None:
        raise MalformedExtraction(
            f"Completion is not a JSON object ({parsed.parse_error})",
            raw_text=parsed.raw_text,
        )
    data = parsed.data

    steps = data.get("steps")
    if not isinstance(steps, list) or not all(isinstance(s, str) for s in steps):
        raise MalformedExtraction("'steps' must be a list of strings", raw_text=parsed.raw_text)

    kept: List[str] = []
    for step in steps:
        step = step.strip()
        if not step:
            continue
        if _SOURCE_CONTROL.match(step):
            log.warning("Dropping source-control command from build plan: %s", step)
            continue
        kept.append(step)
    if not kept:
        raise MalformedExtraction("No build commands in extraction", raw_text=parsed.raw_text)

    wasm_output_path = _optional_str(data, "wasmOutputPath")
    if wasm_output_path is None:
        raise MalformedExtraction("'wasmOutputPath' must be a non-empty string", raw_text=parsed.raw_text)

    return ExtractedInstructions(
        repo_url=_optional_str(data, "repoUrl"),
        steps=kept,
        wasm_output_path=wasm_output_path,
        upgrade_args=_optional_str(data, "upgradeArgs"),
        args_candid_file=_optional_str(data, "argsCandidFile"),
        args_type=_optional_str(data, "argsType"),
    )


# ─── Resolver ────────────────────────────────────────────────────────────────

def build_prompt(
    proposal: ProposalPayload,
    *,
    template_id: str = DEFAULT_TEMPLATE_ID,
    monorepo_url: str = LARGE_MONOREPO_URL,
) -> str:
    return render_prompt(
        load_template(template_id),
        title=proposal.title,
        summary=proposal.summary,
        url=proposal.url,
        commit=proposal.commit_hash,
        monorepo_url=monorepo_url,
    )


def resolve_build_plan(
    proposal: ProposalPayload,
    completion: CompletionClient,
    *,
    monorepo_url: str = LARGE_MONOREPO_URL,
    template_id: str = DEFAULT_TEMPLATE_ID,
) -> BuildPlan:
    """
    Turn a proposal's free text into a :class:`BuildPlan`.

    The proposal must already carry a commit reference.  A missing
    ``repoUrl`` in the extraction defaults to the canonical monorepo.
    """
    if not proposal.commit_hash:
        raise ValueError(f"Proposal {proposal.proposal_id} has no commit reference")

    prompt = build_prompt(proposal, template_id=template_id, monorepo_url=monorepo_url)
    log.info("Extracting build steps for proposal %s: %s", proposal.proposal_id, proposal.title)

    extracted = parse_extraction(completion.complete(prompt))

    repo_url = normalize(extracted.repo_url or monorepo_url)
    plan = BuildPlan(
        commit_hash=proposal.commit_hash,
        repo_url=repo_url,
        build_profile=classify(repo_url, monorepo_url),
        steps=extracted.steps,
        wasm_output_path=extracted.wasm_output_path,
        upgrade_args=extracted.upgrade_args,
        args_candid_file=extracted.args_candid_file,
        args_type=extracted.args_type,
    )

    log.info("Repository: %s (%s)", plan.repo_url, plan.build_profile.value)
    log.info("WASM output path: %s", plan.wasm_output_path)
    for i, step in enumerate(plan.steps, 1):
        log.info("  %d. %s", i, step)
    return plan
