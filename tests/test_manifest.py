"""
DIAMONDKIT Manifest Tests

Interface files, assembly manifests and their schema validation.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json

import pytest

from diamondkit.assembly import AssemblyBuilder
from diamondkit.fingerprint import function_fingerprint
from diamondkit.manifest import (
    DEFAULT_GOVERNANCE,
    ManifestError,
    load_document,
    load_interface_file,
    load_manifest,
    parse_manifest,
    schema_validator,
    validate_with_schema,
)

GOVERNANCE = "0x" + "11" * 20
EXECUTOR = "0x" + "22" * 20


class TestSchemas:
    """Bundled schemas resolve each other through the registry."""

    def test_interface_entry_needs_functions_or_abi(self):
        validator = schema_validator("interfaces-file")
        assert validate_with_schema({"interfaces": [{"name": "I", "functions": ["a()"]}]}, validator) == []
        assert validate_with_schema({"interfaces": [{"abi": "I.json"}]}, validator) == []
        assert validate_with_schema({"interfaces": [{"name": "I"}]}, validator)
        assert validate_with_schema(
            {"interfaces": [{"name": "I", "functions": ["a()"], "abi": "I.json"}]}, validator
        )

    def test_manifest_address_pattern(self):
        validator = schema_validator("manifest")
        doc = {
            "governance": "not-an-address",
            "interfaces": [{"name": "I", "functions": ["a()"]}],
            "modules": [{"name": "M", "functions": ["a()"]}],
        }
        errors = validate_with_schema(doc, validator)
        assert len(errors) == 1
        assert "governance" in errors[0]


class TestInterfaceFiles:

    def test_json_abi_named_after_file(self, manifest_files):
        [descriptor] = load_interface_file(manifest_files["abi"])
        assert descriptor.name == "IAgents"
        assert [f.canonical for f in descriptor.functions] == ["createAgent(address)", "destroyAgent(address)"]

    def test_artifact_named_after_contract(self, manifest_files):
        [descriptor] = load_interface_file(manifest_files["artifact"])
        assert descriptor.name == "AgentsModule"

    def test_yaml_interfaces_file(self, manifest_files):
        path = manifest_files["root"] / "interfaces.yaml"
        path.write_text(
            "interfaces:\n"
            "  - name: IToken\n"
            "    functions: [\"totalSupply()\", \"transfer(address,uint)\"]\n"
            "  - name: IAgentsRenamed\n"
            "    abi: abi/IAgents.json\n"
        )
        descriptors = load_interface_file(path)

        assert [d.name for d in descriptors] == ["IToken", "IAgentsRenamed"]
        assert descriptors[0].fingerprints() == (function_fingerprint("totalSupply()"), "0xa9059cbb")

    def test_invalid_interfaces_file(self, tmp_path):
        path = tmp_path / "interfaces.yaml"
        path.write_text("interfaces:\n  - name: IToken\n    signatures: [\"a()\"]\n")
        with pytest.raises(ManifestError) as exc:
            load_interface_file(path)
        assert exc.value.errors

    def test_object_without_abi_rejected(self, tmp_path):
        path = tmp_path / "thing.json"
        path.write_text(json.dumps({"name": "nothing"}))
        with pytest.raises(ManifestError):
            load_interface_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError) as exc:
            load_document(tmp_path / "missing.yaml")
        assert exc.value.errors == ["file not found"]

    def test_unparseable_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ManifestError):
            load_document(path)


class TestManifest:

    def test_load(self, manifest_files):
        manifest = load_manifest(manifest_files["manifest"])

        assert manifest.governance == GOVERNANCE
        assert manifest.executor == EXECUTOR
        assert manifest.timelock_seconds == 60
        assert [d.name for d in manifest.interfaces] == ["IToken", "IAgents"]
        assert [m.name for m in manifest.modules] == ["TokenModule", "AgentsModule"]
        assert manifest.initializer.name == "TokenInit"
        assert manifest.init_call.args == ("FXRP", 10)
        assert manifest.source == str(manifest_files["manifest"])

    def test_defaults(self):
        manifest = parse_manifest({
            "interfaces": [{"name": "I", "functions": ["a()"]}],
            "modules": [{"name": "M", "functions": ["a()"]}],
            "exclude": ["a()"],
        })
        assert manifest.governance == DEFAULT_GOVERNANCE
        assert manifest.initializer is None
        assert manifest.exclude == (function_fingerprint("a()"),)

    def test_unknown_key_rejected(self):
        with pytest.raises(ManifestError):
            parse_manifest({
                "interfaces": [{"name": "I", "functions": ["a()"]}],
                "modules": [{"name": "M", "functions": ["a()"]}],
                "facets": [],
            })

    def test_plan_assembles_completely(self, chain, manifest_files):
        manifest = load_manifest(manifest_files["manifest"])
        plan = manifest.to_plan(chain)

        assert sorted(chain.artifacts()) == ["AgentsModule", "TokenInit", "TokenModule"]
        assert plan.settings.timelock_seconds == 60
        assert plan.settings.is_executor(EXECUTOR)

        result = AssemblyBuilder(chain).build(plan)
        assert result.report.complete
        assert [len(c.fingerprints) for c in result.cuts] == [3, 2]

    def test_gap_manifest(self, chain, manifest_files):
        plan = load_manifest(manifest_files["gap"]).to_plan(chain)
        plan.verify = False
        result = AssemblyBuilder(chain).build(plan)
        assert result.report.missing_names == ("transfer",)

    def test_secondary_modules(self, chain):
        manifest = parse_manifest({
            "governance": GOVERNANCE,
            "interfaces": [{"name": "IBase", "functions": ["a()"]}],
            "modules": [{"name": "BaseModule", "functions": ["a()"]}],
            "secondary": [{
                "module": {"name": "ExtraModule", "functions": ["b()", "initExtra(uint256)"]},
                "interfaces": [{"name": "IExtra", "functions": ["b()"]}],
                "init": {"signature": "initExtra(uint256)", "args": [5]},
            }],
        })
        result = AssemblyBuilder(chain).build(manifest.to_plan(chain))

        assert len(result.secondary_cuts) == 1
        assert len(result.index) == 2
        assert result.report.complete
