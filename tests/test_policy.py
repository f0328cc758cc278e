"""Tests for allowlist loading and the policy engine."""
from __future__ import annotations

import json

import pytest

from depseal.allowlist import DependencyAllowlist, LicenseAllowlist, load_allowlist, parse_allowlist
from depseal.errors import (
    AllowlistError,
    DependencyNotAllowedError,
    LicenseNotAllowedError,
    VersionTooLowError,
)
from depseal.commitment import SourceArchive
from depseal.policy import enforce_policy, evaluate_policy, license_permitted
from depseal.resolvers import DependencySet, PackageManagerSpec, ResolvedDependency, get_resolver, resolve
from depseal.version import parse_version


def _deps(*items):
    return DependencySet(
        ResolvedDependency(name, parse_version(version), license=rest[0] if rest else None)
        for name, version, *rest in items
    )


class TestAllowlistLoading:
    def test_load_file_merges_cli_licenses(self, tmp_path):
        path = tmp_path / "allow.json"
        path.write_text(json.dumps({
            "dependencies": [{"name": "serde", "minVersion": "1.0"}],
            "licenses": ["MIT"],
        }))
        deps, licenses = load_allowlist(path, ["Apache-2.0", "MIT"])
        assert deps.to_public() == [{"name": "serde", "minVersion": "1.0"}]
        assert licenses.to_public() == ["Apache-2.0", "MIT"]

    def test_no_licenses_means_none(self):
        _, licenses = parse_allowlist({"dependencies": [{"name": "a", "minVersion": "1.0.0"}]})
        assert licenses is None

    def test_cli_licenses_alone(self):
        _, licenses = parse_allowlist({"dependencies": [{"name": "a", "minVersion": "1"}]}, ["MIT"])
        assert "MIT" in licenses

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {},
            {"dependencies": []},
            {"dependencies": [{"name": "a"}]},
            {"dependencies": [{"name": "a", "minVersion": "x.y"}]},
            {"dependencies": [{"name": "a", "minVersion": "1.0"}, {"name": "a", "minVersion": "2.0"}]},
            {"dependencies": [{"name": "a", "minVersion": "1.0"}], "licenses": []},
            {"dependencies": [{"name": "a", "minVersion": "1.0"}], "licenses": ["MIT", "MIT"]},
            {"dependencies": [{"name": "a", "minVersion": "1.0"}], "extra": True},
        ],
    )
    def test_malformed(self, data):
        with pytest.raises(AllowlistError):
            parse_allowlist(data)

    def test_bad_json(self, tmp_path):
        path = tmp_path / "allow.json"
        path.write_text("{not json")
        with pytest.raises(AllowlistError):
            load_allowlist(path)

    def test_raw_min_version_kept_verbatim(self):
        deps = DependencyAllowlist.from_pairs([("a", "v1.2")])
        assert deps.get("a").raw_min_version == "v1.2"
        assert deps.get("a").min_version == parse_version("1.2.0")


class TestPolicy:
    allowlist = DependencyAllowlist.from_pairs([("a", "1.0.0"), ("b", "2.0.0"), ("c", "0.1.0")])

    def test_compliant(self):
        verdict = evaluate_policy(_deps(("a", "1.0.0"), ("b", "2.1.0")), self.allowlist)
        assert verdict.compliant
        assert verdict.violation is None
        assert verdict.checked == 2

    def test_empty_dependency_set_is_compliant(self):
        assert evaluate_policy(DependencySet(), self.allowlist).compliant

    def test_not_allowed(self):
        verdict = evaluate_policy(_deps(("zzz", "1.0.0")), self.allowlist)
        assert isinstance(verdict.violation, DependencyNotAllowedError)
        assert verdict.violation.dependency == "zzz"

    def test_version_too_low(self):
        verdict = evaluate_policy(_deps(("b", "2.0.0-rc.1")), self.allowlist)
        assert isinstance(verdict.violation, VersionTooLowError)
        assert str(verdict.violation) == "b@2.0.0-rc.1 < min 2.0.0"

    def test_first_violation_in_name_order(self):
        deps = _deps(("zzz", "1.0.0"), ("b", "1.0.0"), ("a", "1.0.0"))
        verdict = evaluate_policy(deps, self.allowlist)
        assert verdict.violation.dependency == "b"
        assert verdict.checked == 1

    def test_license_checks(self):
        licenses = LicenseAllowlist(["MIT"])
        ok = evaluate_policy(_deps(("a", "1.0.0", "MIT")), self.allowlist, licenses)
        assert ok.compliant
        missing = evaluate_policy(_deps(("a", "1.0.0", None)), self.allowlist, licenses)
        assert isinstance(missing.violation, LicenseNotAllowedError)
        wrong = evaluate_policy(_deps(("a", "1.0.0", "GPL-3.0")), self.allowlist, licenses)
        assert isinstance(wrong.violation, LicenseNotAllowedError)

    def test_license_ignored_without_license_allowlist(self):
        assert evaluate_policy(_deps(("a", "1.0.0", "GPL-3.0")), self.allowlist).compliant

    def test_raising_minimum_never_makes_compliant(self):
        deps = _deps(("a", "1.5.0"))
        strict = DependencyAllowlist.from_pairs([("a", "2.0.0")])
        assert evaluate_policy(deps, self.allowlist).compliant
        assert not evaluate_policy(deps, strict).compliant

    def test_enforce_raises(self):
        with pytest.raises(VersionTooLowError):
            enforce_policy(_deps(("a", "0.9.0")), self.allowlist)
        assert enforce_policy(_deps(("a", "1.0.0")), self.allowlist) == 1

    def test_unknown_dependency_scenario(self):
        allowlist = DependencyAllowlist.from_pairs([("left-pad", "1.0.0")])
        verdict = evaluate_policy(_deps(("left-pad", "1.3.0"), ("evil-pkg", "0.0.1")), allowlist)
        assert isinstance(verdict.violation, DependencyNotAllowedError)
        assert verdict.violation.dependency == "evil-pkg"

    @pytest.mark.parametrize(
        "wider",
        [
            [("a", "1.0.0"), ("b", "2.0.0"), ("c", "0.1.0"), ("d", "3.0.0")],
            [("a", "0.5.0"), ("b", "2.0.0"), ("c", "0.1.0")],
            [("a", "0.0.1"), ("b", "0.0.1"), ("c", "0.0.1"), ("zzz", "0.0.1")],
        ],
    )
    def test_widening_keeps_compliant(self, wider):
        deps = _deps(("a", "1.2.0"), ("b", "2.0.0"))
        assert evaluate_policy(deps, self.allowlist).compliant
        assert evaluate_policy(deps, DependencyAllowlist.from_pairs(wider)).compliant

    def test_widening_does_not_hide_unrelated_violation(self):
        deps = _deps(("a", "1.2.0"), ("b", "1.0.0"))
        wider = DependencyAllowlist.from_pairs([("a", "0.1.0"), ("b", "2.0.0"), ("c", "0.1.0"), ("d", "1.0.0")])
        verdict = evaluate_policy(deps, wider)
        assert isinstance(verdict.violation, VersionTooLowError)
        assert verdict.violation.dependency == "b"


class TestNameNormalization:
    def test_pip_names_match_canonical_spelling(self):
        archive = SourceArchive.from_mapping({"requirements.txt": "PyYAML==6.0.1\ntyping_extensions==4.9.0\n"})
        spec = PackageManagerSpec.parse("pip", "23.3")
        deps = resolve(spec, archive)
        allowlist = DependencyAllowlist.from_pairs([("PyYAML", "6.0"), ("typing_extensions", "4.0")])

        verdict = evaluate_policy(deps, allowlist, normalize=get_resolver("pip").normalize_name)
        assert verdict.compliant
        assert verdict.checked == 2
        # disclosed names keep the producer's spelling
        assert allowlist.to_public()[0]["name"] == "PyYAML"

    def test_exact_match_without_normalizer(self):
        allowlist = DependencyAllowlist.from_pairs([("PyYAML", "6.0")])
        assert not evaluate_policy(_deps(("pyyaml", "6.0.1")), allowlist).compliant

    def test_npm_names_are_not_folded(self):
        allowlist = DependencyAllowlist.from_pairs([("Left-Pad", "1.0.0")])
        verdict = evaluate_policy(_deps(("left-pad", "1.3.0")), allowlist, normalize=get_resolver("npm").normalize_name)
        assert isinstance(verdict.violation, DependencyNotAllowedError)

    def test_colliding_allowlist_names(self):
        allowlist = DependencyAllowlist.from_pairs([("typing_extensions", "4.0"), ("typing-extensions", "4.1")])
        with pytest.raises(AllowlistError, match="same package"):
            evaluate_policy(
                _deps(("typing-extensions", "4.9.0")), allowlist, normalize=get_resolver("pip").normalize_name
            )


class TestLicenseExpressions:
    licenses = LicenseAllowlist(["MIT", "Apache-2.0", "GPL-2.0-only WITH Classpath-exception-2.0"])

    @pytest.mark.parametrize(
        "expression",
        [
            "MIT",
            "mit",
            "(MIT OR Apache-2.0)",
            "MIT OR GPL-3.0-only",
            "MIT AND Apache-2.0",
            "(GPL-3.0-only OR MIT) AND Apache-2.0",
            "GPL-2.0-only WITH Classpath-exception-2.0",
        ],
    )
    def test_permitted(self, expression):
        assert license_permitted(expression, self.licenses)

    @pytest.mark.parametrize(
        "expression",
        [
            None,
            "",
            "GPL-3.0-only",
            "MIT AND GPL-3.0-only",
            "(GPL-3.0-only OR BSD-3-Clause) AND MIT",
            "GPL-2.0-only",
            "MIT OR (",
        ],
    )
    def test_not_permitted(self, expression):
        assert not license_permitted(expression, self.licenses)

    def test_npm_expression_passes_policy(self):
        allowlist = DependencyAllowlist.from_pairs([("a", "1.0.0")])
        verdict = evaluate_policy(_deps(("a", "1.0.0", "(MIT OR Apache-2.0)")), allowlist, LicenseAllowlist(["MIT"]))
        assert verdict.compliant

    def test_conjunction_needs_every_term(self):
        allowlist = DependencyAllowlist.from_pairs([("a", "1.0.0")])
        verdict = evaluate_policy(_deps(("a", "1.0.0", "MIT AND Zlib")), allowlist, LicenseAllowlist(["MIT"]))
        assert isinstance(verdict.violation, LicenseNotAllowedError)
