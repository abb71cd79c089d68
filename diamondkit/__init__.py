"""
DIAMONDKIT — Modular Contract Assembly

Assembles composite contract instances from independently deployed modules,
verifies that every function a set of interfaces requires is routed to some
module, and simulates the governance timelock that gates later changes.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                         MODULAR CONTRACT ASSEMBLY                        │
    │                                                                          │
    │  ORCHESTRATION                                                           │
    │    assembly.py     Plan -> deployed, initialized, verified composite     │
    │    coverage.py     Required versus routed fingerprints                   │
    │    timelock.py     Deferred governance call classification/execution     │
    │    manifest.py     YAML/JSON manifests validated with JSON Schema        │
    │                                                                          │
    │  CONTRACTS                                                               │
    │    composite.py    Routing table, module cuts, loupe                     │
    │    controller.py   Registry that composites attach to                    │
    │    governance.py   Deployment phase, production mode, timelock           │
    │    deployer.py     Module references and per-module cuts                 │
    │                                                                          │
    │  FOUNDATION                                                              │
    │    fingerprint.py  Canonical signatures, keccak fingerprints, index      │
    │    chain.py        Simulated ledger: clock, addresses, atomic txs        │
    │    encoding.py     Deterministic call payloads                           │
    │    hardening.py    Error taxonomy and input validation                   │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Core Concepts
─────────────

    Fingerprint: First four bytes of keccak256 over a canonical function
    signature such as `transfer(address,uint256)`, written `0xa9059cbb`.

    Module cut: (module address, ADD | REPLACE | REMOVE, fingerprints). A
    batch of cuts and its initializer call apply atomically.

    Deferred call: In production mode a governance call is recorded with an
    `allowedAfterTimestamp` and only an executor may run it, strictly after
    that timestamp.

Copyright © 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

__version__ = "0.3.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import diamondkit modules on first access."""

    # Fingerprint exports
    if name in ("FunctionSignature", "CapabilityDescriptor", "SelectorIndex", "SelectorSet",
                "IndexEntry", "index_interfaces", "function_fingerprint", "describe_signatures",
                "keccak256"):
        from diamondkit import fingerprint
        return getattr(fingerprint, name)

    # Chain exports
    if name in ("SimulatedChain", "Contract", "AbiArtifact", "AbiContract", "CallContext",
                "TxReceipt", "Event", "external", "ZERO_ADDRESS"):
        from diamondkit import chain
        return getattr(chain, name)

    # Governance exports
    if name in ("GovernanceSettings", "Governed", "governance_call", "immediate_governance_call"):
        from diamondkit import governance
        return getattr(governance, name)

    # Composite exports
    if name in ("CompositeInstance", "ModuleCut", "FacetCutAction", "FacetInfo"):
        from diamondkit import composite
        return getattr(composite, name)

    if name == "CompositeController":
        from diamondkit import controller
        return controller.CompositeController

    # Deployer exports
    if name in ("ByName", "ByInstance", "ByFactory", "deploy_module", "resolve_module"):
        from diamondkit import deployer
        return getattr(deployer, name)

    # Assembly exports
    if name in ("AssemblyBuilder", "AssemblyPlan", "AssemblyResult", "InitCall", "SecondaryModule"):
        from diamondkit import assembly
        return getattr(assembly, name)

    # Coverage exports
    if name in ("CoverageReport", "coverage_report", "verify_coverage"):
        from diamondkit import coverage
        return getattr(coverage, name)

    # Timelock exports
    if name in ("TimelockSimulator", "DeferredCall", "DeferredCallState", "Immediate",
                "Deferred", "classify"):
        from diamondkit import timelock
        return getattr(timelock, name)

    # Manifest exports
    if name in ("AssemblyManifest", "ManifestError", "load_manifest", "load_interface_file"):
        from diamondkit import manifest
        return getattr(manifest, name)

    # Hardening exports
    if name in ("ValidationError", "ValidationErrors", "SignatureFormatError", "DiamondError",
                "SelectorCollisionError", "DuplicateSignatureError", "AssemblyError",
                "EmptyContributionError", "CoverageGapError", "CutError", "FunctionNotFoundError",
                "ContractRevert", "TimelockError", "PrematureExecutionError",
                "UnknownDeferredCallError", "UnauthorizedAuthorityError",
                "UnauthorizedExecutorError", "SecurityViolation", "InvariantViolation"):
        from diamondkit import hardening
        return getattr(hardening, name)

    raise AttributeError(f"module 'diamondkit' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Fingerprints
    "FunctionSignature",
    "CapabilityDescriptor",
    "SelectorIndex",
    "index_interfaces",
    "function_fingerprint",
    # Ledger
    "SimulatedChain",
    "Contract",
    "AbiArtifact",
    "external",
    # Contracts
    "GovernanceSettings",
    "Governed",
    "CompositeInstance",
    "CompositeController",
    "ModuleCut",
    "FacetCutAction",
    # Assembly
    "AssemblyBuilder",
    "AssemblyPlan",
    "InitCall",
    "SecondaryModule",
    "deploy_module",
    "verify_coverage",
    "TimelockSimulator",
    # Errors
    "DiamondError",
    "EmptyContributionError",
    "CoverageGapError",
    "PrematureExecutionError",
]
