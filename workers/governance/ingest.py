"""
Proposal ingestion — raw governance JSON → ``ProposalPayload``.

Two input shapes are accepted:

  dashboard     {"proposal_id": 1, "action": "InstallCode",
                 "payload": {"wasm_module_hash": "ab12…", ...}, ...}
  candid-json   {"id": [{"id": 1}], "proposal": [{"title": ["…"],
                 "action": [{"InstallCode": {"wasm_module_hash": [[171, 18, …]]}}]}]}

Optional Candid values arrive wrapped in one-element lists; byte vectors
arrive as lists of ints or hex strings.  Everything is normalised to plain
values and lowercase hex.
"""
import logging
import re
from typing import Any, Dict, Optional, Tuple

from workers.verifier.io.schema import INSTALL_CODE_ACTION, ProposalPayload

logger = logging.getLogger(__name__)

_COMMIT_RE = re.compile(r"\b([a-f0-9]{40})\b", re.IGNORECASE)
_HEX_RE = re.compile(r"^(?:0x)?([0-9a-fA-F]*)$")

_INSTALL_MODES = {"install": 1, "reinstall": 2, "upgrade": 3}


def unwrap_opt(value: Any) -> Any:
    """Strip Candid ``opt`` wrapping: ``[x]`` → x, ``[]`` → None."""
    while isinstance(value, list) and len(value) <= 1 and not _is_byte_list(value):
        value = value[0] if value else None
    return value


def _is_byte_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(b, int) and 0 <= b <= 255 for b in value)
    )


def to_hex(value: Any) -> Optional[str]:
    """Bytes, a list of byte values, or a hex string → lowercase hex."""
    value = unwrap_opt(value)
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex() or None
    if _is_byte_list(value):
        return bytes(value).hex()
    if isinstance(value, str):
        m = _HEX_RE.match(value.strip())
        if m and m.group(1):
            return m.group(1).lower()
    logger.warning("Unrecognised hash encoding: %r", value)
    return None


def extract_commit_hash(text: str) -> Optional[str]:
    """First 40-hex-digit token in *text*."""
    m = _COMMIT_RE.search(text or "")
    return m.group(1).lower() if m else None


def _install_mode(value: Any) -> Optional[int]:
    value = unwrap_opt(value)
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.isdigit():
            return int(value)
        return _INSTALL_MODES.get(value.lower())
    return None


def _canister_id(value: Any) -> Optional[str]:
    value = unwrap_opt(value)
    if isinstance(value, dict):
        # {"__principal__": "..."} from some JSON encoders
        value = next(iter(value.values()), None)
    return str(value) if value else None


def _split_action(proposal: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    action = unwrap_opt(proposal.get("action"))
    if isinstance(action, str):
        payload = proposal.get("payload")
        return action, payload if isinstance(payload, dict) else {}
    if isinstance(action, dict) and action:
        name, body = next(iter(action.items()))
        return name, body if isinstance(body, dict) else {}
    return None, {}


def proposal_id_of(raw: Dict[str, Any]) -> int:
    value = raw.get("proposal_id", raw.get("id"))
    value = unwrap_opt(value)
    if isinstance(value, dict):
        value = value.get("id")
    if value is None:
        raise ValueError("Proposal record carries no id")
    return int(value)


def parse_proposal(raw: Dict[str, Any]) -> ProposalPayload:
    """Normalise a raw governance record."""
    proposal_id = proposal_id_of(raw)

    # Candid shape nests the proposal body one level down
    body = unwrap_opt(raw.get("proposal"))
    if not isinstance(body, dict):
        body = raw

    title = unwrap_opt(body.get("title")) or "Untitled"
    summary = unwrap_opt(body.get("summary")) or ""
    url = unwrap_opt(body.get("url")) or ""

    action, payload = _split_action(body)
    fields: Dict[str, Any] = {}
    if action == INSTALL_CODE_ACTION:
        fields = {
            "commit_hash": extract_commit_hash(f"{title}\n{summary}\n{url}"),
            "expected_wasm_hash": to_hex(payload.get("wasm_module_hash")),
            "expected_arg_hash": to_hex(payload.get("arg_hash")),
            "canister_id": _canister_id(payload.get("canister_id")),
            "install_mode": _install_mode(payload.get("install_mode")),
        }

    return ProposalPayload(
        proposal_id=proposal_id,
        title=title,
        summary=summary,
        url=url,
        action=action,
        **fields,
    )
