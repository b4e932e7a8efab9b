"""
Prompt template loader and renderer for build-instruction extraction.

Templates live in ``workers/llm/prompt_templates/<template_id>.txt``
and use ``{{ placeholder }}``-style substitution.

Supported placeholders:

- ``{{ title }}``        — proposal title
- ``{{ summary }}``      — proposal summary (free text, may be long)
- ``{{ url }}``          — proposal URL
- ``{{ commit }}``       — source commit already extracted from the proposal
- ``{{ monorepo_url }}`` — canonical large-monorepo URL
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

_TEMPLATES_DIR = Path(__file__).parent / "prompt_templates"

# Long summaries are truncated before rendering to keep the request bounded.
MAX_SUMMARY_CHARS = 12_000


def load_template(template_id: str) -> str:
    """Load a prompt template by ID.

    Parameters
    ----------
    template_id : str
        Template filename without extension, e.g. ``"build_steps_v1"``.

    Returns
    -------
    str
        Raw template text with ``{{ … }}`` placeholders.

    Raises
    ------
    FileNotFoundError
        If the template file does not exist.
    """
    path = _TEMPLATES_DIR / f"{template_id}.txt"
    if not path.exists():
        raise FileNotFoundError(
            f"Prompt template not found: {path}  "
            f"(available: {[p.stem for p in _TEMPLATES_DIR.glob('*.txt')]})"
        )
    return path.read_text(encoding="utf-8")


def render_prompt(
    template: str,
    *,
    title: str,
    summary: str,
    url: str,
    commit: Optional[str] = None,
    monorepo_url: Optional[str] = None,
) -> str:
    """Substitute placeholders in *template* with proposal data.

    Parameters
    ----------
    template : str
        Template text (from :func:`load_template`).
    title, summary, url : str
        Proposal fields, passed through verbatim.  *summary* is truncated
        to :data:`MAX_SUMMARY_CHARS`.
    commit : str | None
        Commit reference for ``{{ commit }}``.
    monorepo_url : str | None
        Canonical monorepo URL for ``{{ monorepo_url }}``.

    Returns
    -------
    str
        Fully rendered prompt ready for the completion service.
    """
    if len(summary) > MAX_SUMMARY_CHARS:
        summary = summary[:MAX_SUMMARY_CHARS] + "\n[summary truncated]"

    result = template.replace("{{ title }}", title)
    result = result.replace("{{ url }}", url or "(no URL)")
    result = result.replace("{{ commit }}", commit or "(unknown)")
    result = result.replace("{{ monorepo_url }}", monorepo_url or "(none)")
    # summary last so placeholder-like text inside it is left alone
    result = result.replace("{{ summary }}", summary)
    return result
