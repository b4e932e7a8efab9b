"""
Repository resolver — normalize a repository reference and pick its build profile.

Only the exact canonical monorepo URL (after normalization, case-sensitive,
scheme included) is the large-monorepo profile.  Sibling repositories that
share a prefix, e.g. ``.../dfinity/ic-boundary``, are standalone.
"""
import re

from workers.verifier.policy.profile import BuildProfile

LARGE_MONOREPO_URL = "https://github.com/dfinity/ic"

# Checked in order on every pass; normalize() loops until nothing matches.
_SUFFIX_PATTERNS = [
    (re.compile(r"/+$"), ""),
    (re.compile(r"\.git$"), ""),
    # only below <host>/<owner>/<repo>, so an owner named "tree" survives
    (re.compile(r"^([^:]+://[^/]+/[^/]+/[^/]+)/(?:tree|commit)/[^/]+$"), r"\1"),
]


def normalize(url: str) -> str:
    """Strip trailing slashes, ``.git`` and ``/tree/<ref>`` / ``/commit/<ref>`` segments."""
    result = url.strip()
    changed = True
    while changed:
        changed = False
        for pattern, repl in _SUFFIX_PATTERNS:
            stripped = pattern.sub(repl, result)
            if stripped != result:
                result = stripped
                changed = True
    return result


def classify(url: str, monorepo_url: str = LARGE_MONOREPO_URL) -> BuildProfile:
    """Return the build profile for a repository URL."""
    if normalize(url) == normalize(monorepo_url):
        return BuildProfile.LARGE_MONOREPO
    return BuildProfile.STANDALONE

