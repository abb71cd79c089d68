"""Interface files and assembly manifests.

Loads capability descriptors from JSON ABIs, compiled artifacts
(`{"contractName": ..., "abi": [...]}`) or YAML interface files, and whole
assembly manifests describing interfaces, ABI-only modules and the
initializer. YAML documents are validated against the JSON Schemas shipped
in `diamondkit/schemas/`, resolved through a shared `referencing` registry.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from diamondkit.assembly import AssemblyPlan, InitCall, SecondaryModule
from diamondkit.chain import AbiArtifact, SimulatedChain
from diamondkit.deployer import ByName
from diamondkit.fingerprint import CapabilityDescriptor, FunctionSignature, keccak256
from diamondkit.governance import GovernanceSettings
from diamondkit.hardening import DiamondError

SCHEMA_DIR = Path(__file__).parent / "schemas"

DEFAULT_GOVERNANCE = "0x" + keccak256(b"diamondkit.governance")[-20:].hex()


class ManifestError(DiamondError):
    """A manifest or interface file is unreadable or fails schema validation."""

    def __init__(self, source: Union[str, Path], errors: List[str]):
        self.source = str(source)
        self.errors = list(errors)
        super().__init__(f"Invalid manifest {self.source}: {'; '.join(self.errors)}")


# =============================================================================
# SCHEMAS
# =============================================================================

@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of every bundled schema, keyed by its $id."""
    resources = []
    for schema_path in sorted(SCHEMA_DIR.glob("*.schema.json")):
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema["$id"], resource))
    return Registry().with_resources(resources)


def schema_validator(name: str) -> Draft202012Validator:
    schema = json.loads((SCHEMA_DIR / f"{name}.schema.json").read_text(encoding="utf-8"))
    return Draft202012Validator(schema, registry=_schema_registry())


def validate_with_schema(obj: Any, validator: Draft202012Validator) -> List[str]:
    errors = []
    for e in sorted(validator.iter_errors(obj), key=str):
        errors.append(f"{list(e.absolute_path)}: {e.message}")
    return errors


def load_document(path: Union[str, Path]) -> Any:
    """Read a JSON or YAML document."""
    path = Path(path)
    if not path.exists():
        raise ManifestError(path, ["file not found"])
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestError(path, [f"unparseable document: {e}"]) from e


# =============================================================================
# INTERFACES
# =============================================================================

def _descriptor_from_document(data: Any, default_name: str, source: Path) -> CapabilityDescriptor:
    if isinstance(data, list):
        return CapabilityDescriptor.from_abi(default_name, data)
    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return CapabilityDescriptor.from_abi(data.get("contractName") or default_name, data["abi"])
    raise ManifestError(source, ["expected a JSON ABI list or an artifact with an 'abi' list"])


def _descriptor(entry: Dict[str, Any], base_dir: Path) -> CapabilityDescriptor:
    if "abi" in entry:
        abi_path = base_dir / entry["abi"]
        descriptor = _descriptor_from_document(load_document(abi_path), abi_path.stem, abi_path)
        if entry.get("name"):
            descriptor = CapabilityDescriptor(entry["name"], descriptor.functions)
        return descriptor
    return CapabilityDescriptor.of(entry["name"], entry["functions"])


def load_interface_file(path: Union[str, Path]) -> List[CapabilityDescriptor]:
    """
    Load descriptors from an ABI, a compiled artifact or a YAML interface file.

    ABIs and artifacts yield one descriptor named after the contract (or the
    file stem); an interface file yields one descriptor per entry.
    """
    path = Path(path)
    data = load_document(path)
    if isinstance(data, dict) and "interfaces" in data:
        errors = validate_with_schema(data, schema_validator("interfaces-file"))
        if errors:
            raise ManifestError(path, errors)
        return [_descriptor(entry, path.parent) for entry in data["interfaces"]]
    return [_descriptor_from_document(data, path.stem, path)]


# =============================================================================
# ASSEMBLY MANIFESTS
# =============================================================================

def _artifact(descriptor: CapabilityDescriptor) -> AbiArtifact:
    return AbiArtifact(name=descriptor.name, functions=descriptor.functions)


def _init_call(entry: Optional[Dict[str, Any]]) -> Optional[InitCall]:
    if entry is None:
        return None
    return InitCall(entry["signature"], tuple(entry.get("args", ())))


@dataclass
class SecondarySpec:
    module: AbiArtifact
    interfaces: List[CapabilityDescriptor]
    init: Optional[InitCall] = None


@dataclass
class AssemblyManifest:
    """Parsed manifest: everything needed to dry-run an assembly."""
    interfaces: List[CapabilityDescriptor]
    modules: List[AbiArtifact]
    governance: str = DEFAULT_GOVERNANCE
    executor: Optional[str] = None
    timelock_seconds: Optional[int] = None
    initializer: Optional[AbiArtifact] = None
    init_call: Optional[InitCall] = None
    exclude: Tuple[str, ...] = ()
    secondary: List[SecondarySpec] = field(default_factory=list)
    source: str = ""

    def artifacts(self) -> List[AbiArtifact]:
        found = list(self.modules)
        if self.initializer is not None:
            found.append(self.initializer)
        found.extend(s.module for s in self.secondary)
        return found

    def register(self, chain: SimulatedChain) -> None:
        for artifact in self.artifacts():
            chain.register_artifact(artifact.name, artifact)

    def to_plan(self, chain: SimulatedChain) -> AssemblyPlan:
        """Register the manifest's artifacts on `chain` and build a plan over them."""
        self.register(chain)
        executor = self.executor or self.governance
        settings = GovernanceSettings(
            governance_address=self.governance,
            timelock_seconds=self.timelock_seconds,
            executors=frozenset({executor}),
        )
        return AssemblyPlan(
            interfaces=self.interfaces,
            modules=[ByName(m.name) for m in self.modules],
            governance=self.governance,
            initializer=ByName(self.initializer.name) if self.initializer else None,
            init_call=self.init_call,
            settings=settings,
            executor=executor,
            secondary_modules=[
                SecondaryModule(ByName(s.module.name), s.interfaces, s.init)
                for s in self.secondary
            ],
            exclude=frozenset(self.exclude),
        )


def parse_manifest(data: Any, base_dir: Path = Path("."), source: str = "<manifest>") -> AssemblyManifest:
    """Validate a manifest document and build an AssemblyManifest."""
    errors = validate_with_schema(data, schema_validator("manifest"))
    if errors:
        raise ManifestError(source, errors)

    initializer = None
    init_call = None
    if "initializer" in data:
        entry = data["initializer"]
        init_call = _init_call(entry["call"])
        functions = entry.get("functions") or [init_call.signature]
        initializer = AbiArtifact.of(entry["name"], functions)

    secondary = [
        SecondarySpec(
            module=_artifact(_descriptor(s["module"], base_dir)),
            interfaces=[_descriptor(i, base_dir) for i in s["interfaces"]],
            init=_init_call(s.get("init")),
        )
        for s in data.get("secondary", [])
    ]

    return AssemblyManifest(
        interfaces=[_descriptor(i, base_dir) for i in data["interfaces"]],
        modules=[_artifact(_descriptor(m, base_dir)) for m in data["modules"]],
        governance=data.get("governance", DEFAULT_GOVERNANCE).lower(),
        executor=data.get("executor"),
        timelock_seconds=data.get("timelock_seconds"),
        initializer=initializer,
        init_call=init_call,
        exclude=tuple(FunctionSignature.parse(s).fingerprint for s in data.get("exclude", [])),
        secondary=secondary,
        source=source,
    )


def load_manifest(path: Union[str, Path]) -> AssemblyManifest:
    path = Path(path)
    return parse_manifest(load_document(path), path.parent, str(path))
