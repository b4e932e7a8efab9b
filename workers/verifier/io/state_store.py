"""
State store — one JSON document mapping proposal id → verification entry.

Every write is a full load → merge → save cycle; nothing is patched in
place.  An unparseable document is copied aside and treated as "no prior
state"; individual entries that fail validation are carried through unchanged.
No cross-process locking: the monitor must not dispatch the same proposal
id twice while a run is outstanding.
"""
import json
import logging
import shutil
import time
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from workers.verifier.io.schema import (
    EntryStatus,
    StateData,
    VerificationResult,
    VerificationStateEntry,
    now_iso,
)

logger = logging.getLogger(__name__)


class StateStore:
    """File-backed verification state."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> StateData:
        """
        Read the state document.

        A missing file is the empty default.  An unparseable file is copied
        aside to ``<name>.corrupt`` and treated as empty.  Entries that fail
        validation are kept verbatim in ``StateData.unrecognized`` and written
        back on the next save.
        """
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return StateData()
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            self._set_aside(e)
            return StateData()

        if not isinstance(raw, dict) or not isinstance(raw.get("proposals", {}), dict):
            self._set_aside("document is not a state object")
            return StateData()

        try:
            state = StateData.model_validate({"lastCheckedTimestamp": raw.get("lastCheckedTimestamp", 0)})
        except ValidationError as e:
            logger.warning("Invalid lastCheckedTimestamp in %s, using 0: %s", self.path, e)
            state = StateData()

        for key, value in raw.get("proposals", {}).items():
            try:
                state.proposals[key] = VerificationStateEntry.model_validate(value)
            except ValidationError as e:
                logger.warning("Keeping unrecognised state entry %s as-is: %s", key, e.errors()[:1])
                state.unrecognized[key] = value
        return state

    def _set_aside(self, reason: Any) -> None:
        backup = self.path.with_name(self.path.name + ".corrupt")
        logger.warning("Unreadable state file %s (%s); copied to %s", self.path, reason, backup)
        try:
            shutil.copyfile(self.path, backup)
        except OSError as e:
            logger.error("Could not back up %s: %s", self.path, e)

    def save(self, state: StateData) -> None:
        """Overwrite the whole document."""
        doc = state.model_dump(mode="json", by_alias=True, exclude_none=True)
        doc["proposals"] = {
            **{k: v for k, v in state.unrecognized.items() if k not in state.proposals},
            **doc["proposals"],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")

    def get(self, proposal_id: Any) -> Optional[VerificationStateEntry]:
        return self.load().proposals.get(str(proposal_id))

    def upsert(self, proposal_id: Any, **update: Any) -> VerificationStateEntry:
        """
        Shallow-merge *update* over the existing entry and persist.

        Fields not named in *update* keep their stored values; a new entry
        without a status starts ``pending``.  ``verified_at`` is always refreshed.
        """
        key = str(proposal_id)
        state = self.load()

        merged = {}
        existing = state.proposals.get(key)
        if existing is not None:
            merged.update(existing.model_dump())
        merged.update(update)
        if existing is None:
            merged.setdefault("status", EntryStatus.PENDING)
        merged["verified_at"] = now_iso()

        entry = VerificationStateEntry.model_validate(merged)
        state.proposals[key] = entry
        self.save(state)
        return entry

    def mark_pending(self, proposal_ids: Iterable[Any]) -> StateData:
        """Mark newly selected proposals pending and stamp the check time, in one cycle."""
        state = self.load()
        for pid in proposal_ids:
            state.proposals[str(pid)] = VerificationStateEntry(
                status=EntryStatus.PENDING,
                wasm_hash_match=False,
            )
        state.last_checked_timestamp = int(time.time())
        self.save(state)
        return state

    def touch(self) -> StateData:
        """Refresh ``last_checked_timestamp`` only."""
        return self.mark_pending([])

    def record_result(self, result: VerificationResult) -> VerificationStateEntry:
        """Persist a terminal verification result."""
        return self.upsert(
            result.proposal_id,
            status=EntryStatus(result.status.value),
            wasm_hash_match=result.wasm_hash_match,
            arg_hash_match=result.arg_hash_match if result.arg_check_applies else None,
            run_id=result.run_id,
            actual_hash=result.actual_wasm_hash,
            expected_hash=result.expected_wasm_hash,
            actual_arg_hash=result.actual_arg_hash,
            expected_arg_hash=result.expected_arg_hash,
            error_message=result.error_message,
        )
