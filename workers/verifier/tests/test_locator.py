"""
Tests for workers.verifier.core.locator.
"""
import os

import pytest

from workers.verifier.core.locator import (
    artifact_suffix,
    derive_targeted_path,
    locate_full,
    locate_targeted,
    names_match,
    split_target,
)
from workers.verifier.errors import ArtifactNotFound
from workers.verifier.tests.conftest import write_file


class TestHelpers:

    @pytest.mark.parametrize("name, suffix", [
        ("governance-canister.wasm.gz", ".wasm.gz"),
        ("ledger.WASM.GZ", ".wasm.gz"),
        ("cycles-ledger.wasm", ".wasm"),
        ("noext", ""),
    ])
    def test_artifact_suffix(self, name, suffix):
        assert artifact_suffix(name) == suffix

    def test_names_match_folds_case_and_separators(self):
        assert names_match("Governance_Canister.wasm", "governance-canister.wasm")
        assert not names_match("governance.wasm", "governance-canister.wasm")

    @pytest.mark.parametrize("target, expected", [
        ("//rs/nns/governance:governance-canister", ("rs/nns/governance", "governance-canister")),
        ("@ic//rs/ledger:ledger", ("rs/ledger", "ledger")),
        ("//rs/registry", ("rs/registry", "registry")),
    ])
    def test_split_target(self, target, expected):
        assert split_target(target) == expected

    def test_derive_targeted_path(self, tmp_path):
        path = derive_targeted_path(tmp_path, "//rs/nns/cmc:cycles-minting-canister", "cmc.wasm.gz")
        assert path == tmp_path / "bazel-bin" / "rs" / "nns" / "cmc" / "cycles-minting-canister.wasm.gz"


class TestLocateTargeted:

    def test_derived_path(self, tmp_path):
        expected = write_file(tmp_path / "bazel-bin" / "rs" / "x" / "x-canister.wasm.gz")
        assert locate_targeted(tmp_path, "//rs/x:x-canister", "x-canister.wasm.gz") == expected

    def test_search_under_output_root(self, tmp_path):
        found = write_file(tmp_path / "bazel-bin" / "elsewhere" / "x_canister.wasm.gz")
        assert locate_targeted(tmp_path, "//rs/x:x-canister", "x-canister.wasm.gz") == found

    def test_search_follows_symlinked_output_root(self, tmp_path):
        real = tmp_path / "cache" / "out"
        found = write_file(real / "rs" / "y" / "y.wasm.gz")
        os.symlink(real, tmp_path / "bazel-bin")
        got = locate_targeted(tmp_path, "//rs/other:z", "y.wasm.gz")
        assert got.name == found.name

    def test_absent(self, tmp_path):
        with pytest.raises(ArtifactNotFound):
            locate_targeted(tmp_path, "//rs/x:x-canister", "x-canister.wasm.gz")

    def test_search_survives_symlink_cycle(self, tmp_path):
        root = tmp_path / "bazel-bin"
        found = write_file(root / "deep" / "nested" / "z.wasm.gz")
        (root / "a").mkdir()
        os.symlink(root, root / "a" / "loop")
        assert locate_targeted(tmp_path, "//rs/other:q", "z.wasm.gz") == found

    def test_symlink_cycle_without_artifact(self, tmp_path):
        root = tmp_path / "bazel-bin"
        (root / "a").mkdir(parents=True)
        os.symlink(root, root / "a" / "loop")
        os.symlink(root / "a", root / "back")
        with pytest.raises(ArtifactNotFound):
            locate_targeted(tmp_path, "//rs/x:x-canister", "x-canister.wasm.gz")


class TestLocateFull:

    def test_declared_path(self, tmp_path):
        expected = write_file(tmp_path / "out" / "a.wasm")
        assert locate_full(tmp_path, "out/a.wasm") == expected

    def test_single_candidate_elsewhere(self, tmp_path):
        found = write_file(tmp_path / "target" / "wasm32" / "release" / "something.wasm")
        assert locate_full(tmp_path, "out/a.wasm") == found

    def test_matching_name_wins(self, tmp_path):
        write_file(tmp_path / "build" / "other.wasm")
        found = write_file(tmp_path / "build" / "my_canister.wasm")
        assert locate_full(tmp_path, "out/my-canister.wasm") == found

    def test_extension_respected(self, tmp_path):
        write_file(tmp_path / "build" / "a.wasm")
        found = write_file(tmp_path / "artifacts" / "a.wasm.gz")
        assert locate_full(tmp_path, "out/a.wasm.gz") == found

    def test_git_directory_ignored(self, tmp_path):
        write_file(tmp_path / ".git" / "objects" / "a.wasm")
        with pytest.raises(ArtifactNotFound):
            locate_full(tmp_path, "out/a.wasm")

    def test_ambiguous_candidates(self, tmp_path):
        write_file(tmp_path / "x" / "one.wasm")
        write_file(tmp_path / "y" / "two.wasm")
        with pytest.raises(ArtifactNotFound) as exc:
            locate_full(tmp_path, "out/a.wasm")
        assert sorted(exc.value.candidates) == ["x/one.wasm", "y/two.wasm"]

    def test_nothing_built(self, tmp_path):
        with pytest.raises(ArtifactNotFound, match="out/a.wasm"):
            locate_full(tmp_path, "out/a.wasm")
