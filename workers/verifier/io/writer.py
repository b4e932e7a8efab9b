"""
Writer — read and write the pipeline's JSON documents in the workspace.

Workspace layout (names configurable in ``app.config``):
    proposal.json
    build-steps.json
    build-outcome.json
    verification-result.json
    output/canister.wasm
"""
import json
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


def write_model(model: BaseModel, path: Path) -> Path:
    """Write *model* as camelCase JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            model.model_dump(mode="json", by_alias=True),
            indent=2,
        )
        + "\n",
        encoding="utf-8",
    )
    return path


def read_model(cls: Type[M], path: Path) -> M:
    """Load and validate a document; missing files raise FileNotFoundError."""
    return cls.model_validate_json(path.read_text(encoding="utf-8"))
