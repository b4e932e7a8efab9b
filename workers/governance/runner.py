"""
Governance CLI — fetch a proposal, select new proposals, search the forum.

Usage::

    python -m workers.governance.runner fetch 134567
    python -m workers.governance.runner monitor
    python -m workers.governance.runner forum 134567
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

import httpx

from app.config import Settings, settings
from workers.governance.client import GovernanceClient, ProposalNotFound
from workers.governance.forum import (
    ForumThreadResult,
    fetch_forum_cookies,
    find_forum_thread,
    post_forum_link,
)
from workers.governance.ingest import parse_proposal
from workers.governance.monitor import select_new_proposals
from workers.verifier.io.report import set_github_output
from workers.verifier.io.state_store import StateStore
from workers.verifier.io.writer import write_model

logger = logging.getLogger(__name__)

NEW_PROPOSALS_FILE = "new-proposals.json"
FORUM_RESULT_FILE = "forum-result.json"


def _client(cfg: Settings) -> GovernanceClient:
    return GovernanceClient(cfg.GOVERNANCE_API_BASE, timeout=cfg.GOVERNANCE_TIMEOUT)


# ── fetch ────────────────────────────────────────────────────────────────────

def fetch(proposal_id: int, cfg: Settings = settings, client: Optional[GovernanceClient] = None) -> int:
    """Write proposal.json for a code-install proposal; skip anything else."""
    gov = client or _client(cfg)
    try:
        raw = gov.get_proposal(proposal_id)
    except ProposalNotFound as e:
        logger.error("%s", e)
        return 1
    except httpx.HTTPError as e:
        logger.error("Error fetching proposal %s: %s", proposal_id, e)
        return 1
    finally:
        if client is None:
            gov.close()

    proposal = parse_proposal(raw)

    if not proposal.is_code_install:
        reason = proposal.action or "no_action_data"
        logger.info("Skipped: proposal %s is not a code install (%s)", proposal_id, reason)
        set_github_output("skipped", "true", cfg.GITHUB_OUTPUT)
        set_github_output("skip_reason", reason, cfg.GITHUB_OUTPUT)
        return 0

    logger.info("Title:           %s", proposal.title)
    logger.info("Target canister: %s", proposal.canister_id or "Not found")
    logger.info("Source commit:   %s", proposal.commit_hash or "Not found")
    logger.info("WASM hash:       %s", proposal.expected_wasm_hash or "Not found")

    if not proposal.commit_hash:
        logger.warning("Could not extract commit hash from proposal")
    if not proposal.expected_wasm_hash:
        logger.error("Could not extract wasm_module_hash from proposal action")
        return 1

    path = write_model(proposal, cfg.workspace_path(cfg.PROPOSAL_FILE))
    logger.info("Wrote %s", path)
    set_github_output("skipped", "false", cfg.GITHUB_OUTPUT)
    return 0


# ── monitor ──────────────────────────────────────────────────────────────────

def monitor(cfg: Settings = settings, client: Optional[GovernanceClient] = None) -> int:
    gov = client or _client(cfg)
    try:
        selected = select_new_proposals(
            gov,
            StateStore(cfg.workspace_path(cfg.STATE_FILE)),
            cfg.TRACKED_TOPICS,
            min_id=cfg.MIN_PROPOSAL_ID,
            limit=cfg.MONITOR_LIMIT,
            enabled=cfg.MONITOR_ENABLED,
        )
    except httpx.HTTPError as e:
        logger.error("Could not list proposals: %s", e)
        return 1
    finally:
        if client is None:
            gov.close()

    ids = [str(p.proposal_id) for p in selected]
    out = cfg.workspace_path(NEW_PROPOSALS_FILE)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(ids, indent=2) + "\n", encoding="utf-8")

    set_github_output("proposal_ids", json.dumps(ids), cfg.GITHUB_OUTPUT)
    set_github_output("count", str(len(ids)), cfg.GITHUB_OUTPUT)
    return 0


# ── forum ────────────────────────────────────────────────────────────────────

def forum(proposal_id: int, cfg: Settings = settings, http: Optional[httpx.Client] = None) -> int:
    """Search the forum; failures are recorded, never fatal."""
    if not cfg.PORTAL_URL or not cfg.COMMENTARY_SECRET:
        logger.error("PORTAL_URL and COMMENTARY_SECRET are required for forum search")
        return 1

    out = cfg.workspace_path(FORUM_RESULT_FILE)
    client = http or httpx.Client(timeout=cfg.GOVERNANCE_TIMEOUT)
    try:
        try:
            cookies = fetch_forum_cookies(client, cfg.PORTAL_URL, cfg.COMMENTARY_SECRET)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning("Forum search failed, continuing without forum link: %s", e)
            write_model(ForumThreadResult(error=str(e)), out)
            return 0

        result = find_forum_thread(
            client,
            proposal_id,
            cookies=cookies,
            base_url=cfg.FORUM_BASE_URL,
            category_id=cfg.FORUM_CATEGORY_ID,
        )
        if result.found:
            logger.info("Forum thread found: %s (%s)", result.url, result.title)
            if cfg.FORUM_LINK_SECRET:
                try:
                    post_forum_link(client, cfg.PORTAL_URL, cfg.FORUM_LINK_SECRET, proposal_id, result)
                except httpx.HTTPError as e:
                    logger.warning("Could not post forum link to portal: %s", e)
        else:
            logger.info("No forum thread found: %s", result.error)
    finally:
        if http is None:
            client.close()

    write_model(result, out)
    return 0


# ── CLI ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="governance — proposal ingestion, monitoring and forum search",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fetch", help="Fetch a proposal and write proposal.json")
    p.add_argument("proposal_id", type=int)

    sub.add_parser("monitor", help="Select new proposals for verification")

    p = sub.add_parser("forum", help="Find the forum thread for a proposal")
    p.add_argument("proposal_id", type=int)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    if args.command == "fetch":
        return fetch(args.proposal_id)
    if args.command == "monitor":
        return monitor()
    return forum(args.proposal_id)


if __name__ == "__main__":
    sys.exit(main())
