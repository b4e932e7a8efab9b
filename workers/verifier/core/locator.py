"""
Artifact locator — find the built WASM under either output convention.

Targeted builds: ``<output_root>/<package>/<name><ext>`` derived from the
build target ``//<package>:<name>``, then a search of the output root for the
expected file name.

Full builds: the plan's declared path, then a recursive search of the
checkout for files with the artifact's extension.

File names are compared with ``-``/``_`` and case folded so that naming
drift between the proposal text and the build output is tolerated.
"""
import logging
import os
from pathlib import Path
from typing import List, Tuple

from workers.verifier.errors import ArtifactNotFound

logger = logging.getLogger(__name__)

_COMPOUND_SUFFIXES = (".wasm.gz",)


def artifact_suffix(name: str) -> str:
    """Extension of an artifact file name, keeping ``.wasm.gz`` whole."""
    lowered = name.lower()
    for suffix in _COMPOUND_SUFFIXES:
        if lowered.endswith(suffix):
            return suffix
    return Path(name).suffix.lower()


def _fold(name: str) -> str:
    return name.lower().replace("_", "-")


def names_match(a: str, b: str) -> bool:
    return _fold(a) == _fold(b)


def split_target(target: str) -> Tuple[str, str]:
    """``//rs/nns/governance:governance-canister`` → (``rs/nns/governance``, ``governance-canister``)."""
    label = target.lstrip("@").split("//", 1)[-1]
    if ":" in label:
        package, name = label.split(":", 1)
    else:
        package, name = label, label.rsplit("/", 1)[-1]
    return package.strip("/"), name


def _walk_files(root: Path, follow_links: bool = False):
    seen = set()
    for dirpath, dirs, files in os.walk(root, followlinks=follow_links):
        if ".git" in dirs:
            dirs.remove(".git")
        if follow_links:
            # each real directory once; symlink cycles end here
            st = os.stat(dirpath)
            if (st.st_dev, st.st_ino) in seen:
                dirs[:] = []
                continue
            seen.add((st.st_dev, st.st_ino))
        for filename in files:
            yield Path(dirpath) / filename


def derive_targeted_path(repo_dir: Path, target: str, artifact_name: str, output_root: str = "bazel-bin") -> Path:
    package, name = split_target(target)
    return repo_dir / output_root / package / f"{name}{artifact_suffix(artifact_name)}"


def locate_targeted(
    repo_dir: Path,
    target: str,
    artifact_name: str,
    output_root: str = "bazel-bin",
) -> Path:
    """Locate the output of a targeted build."""
    derived = derive_targeted_path(repo_dir, target, artifact_name, output_root)
    if derived.is_file():
        return derived

    root = repo_dir / output_root
    logger.info("Derived path %s absent; searching %s for %s", derived, root, artifact_name)
    if root.exists():
        # the output root is usually a symlink farm
        for path in _walk_files(root, follow_links=True):
            if names_match(path.name, artifact_name) or names_match(path.name, derived.name):
                return path

    raise ArtifactNotFound(str(derived))


def locate_full(repo_dir: Path, declared_path: str) -> Path:
    """
    Locate the output of a full build.

    Among searched candidates a matching file name wins; otherwise a single
    candidate is accepted; several unrelated candidates are ambiguous.
    """
    declared = repo_dir / declared_path
    if declared.is_file():
        return declared

    artifact_name = Path(declared_path).name
    suffix = artifact_suffix(artifact_name) or ".wasm"
    logger.warning("Expected artifact not found at %s; searching for *%s files", declared_path, suffix)

    candidates: List[Path] = sorted(
        p for p in _walk_files(repo_dir)
        if p.name.lower().endswith(suffix) and not p.is_symlink()
    )
    for path in candidates:
        logger.info("  candidate: %s", path.relative_to(repo_dir))

    named = [p for p in candidates if names_match(p.name, artifact_name)]
    if len(named) == 1:
        return named[0]
    if len(named) > 1:
        return _closest(named, declared_path)
    if len(candidates) == 1:
        return candidates[0]

    raise ArtifactNotFound(
        declared_path,
        [str(p.relative_to(repo_dir)) for p in candidates],
    )


def _closest(paths: List[Path], declared_path: str) -> Path:
    """Pick the path sharing the most trailing components with the declared path."""
    wanted = [_fold(part) for part in reversed(Path(declared_path).parts)]

    def score(path: Path) -> int:
        n = 0
        for got, want in zip(reversed(path.parts), wanted):
            if _fold(got) != want:
                break
            n += 1
        return n

    return max(paths, key=lambda p: (score(p), -len(p.parts)))

