"""
DIAMONDKIT Module Deployer

Deploys one module and computes the cut that routes the required
fingerprints it implements to it.

A module reference is resolved exactly once, at entry:

    ByName("AgentInfoFacet")      look up the artifact factory and deploy it
    ByFactory(make_module)        call the factory, deploy if not yet deployed
    ByInstance(module)            reuse a (possibly already deployed) instance

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Container, Union

from diamondkit.chain import ZERO_ADDRESS, Contract, SimulatedChain
from diamondkit.composite import FacetCutAction, ModuleCut
from diamondkit.hardening import EmptyContributionError, InvariantViolation, ValidationError
from diamondkit.observability import DiamondLayer, get_logger, timed_operation


logger = get_logger("deployer", DiamondLayer.DEPLOYER)


@dataclass(frozen=True)
class ByName:
    artifact: str


@dataclass(frozen=True)
class ByInstance:
    contract: Contract


@dataclass(frozen=True)
class ByFactory:
    factory: Callable[[], Contract]


ModuleRef = Union[ByName, ByInstance, ByFactory]


def module_ref(value: Any) -> ModuleRef:
    """Convert a loose module reference into its tagged form."""
    if isinstance(value, (ByName, ByInstance, ByFactory)):
        return value
    if isinstance(value, str):
        return ByName(value)
    if isinstance(value, Contract):
        return ByInstance(value)
    if callable(value):
        return ByFactory(value)
    raise ValidationError("module", f"Cannot resolve module reference {value!r}", value)


def resolve_module(chain: SimulatedChain, ref: Any, deployer: str = ZERO_ADDRESS) -> Contract:
    """Return a deployed contract instance for `ref`."""
    ref = module_ref(ref)
    if isinstance(ref, ByName):
        return chain.deploy_artifact(ref.artifact, deployer)

    if isinstance(ref, ByFactory):
        instance = ref.factory()
        if not isinstance(instance, Contract):
            raise ValidationError("module", f"Factory returned {type(instance).__name__}, not a contract")
    else:
        instance = ref.contract

    if instance.address is None:
        return chain.deploy(instance, deployer)
    if instance.chain is not chain:
        raise InvariantViolation(f"{instance.name} is deployed on a different chain")
    return instance


@timed_operation(logger, "deploy_module")
def deploy_module(
    chain: SimulatedChain,
    ref: Any,
    required: Container[str],
    excluded: Container[str] = frozenset(),
    deployer: str = ZERO_ADDRESS,
) -> ModuleCut:
    """
    Deploy a module and return an ADD cut for the required fingerprints it exposes.

    Fingerprints keep the module's ABI order. A module that contributes
    nothing is a configuration error, reported before any cut is applied.
    """
    instance = resolve_module(chain, ref, deployer)
    exposed = tuple(
        fp for fp in instance.function_fingerprints()
        if fp in required and fp not in excluded
    )
    if not exposed:
        logger.error(
            "Module contributes no required fingerprints",
            error_code="EMPTY_CONTRIBUTION",
            module=instance.name,
            address=instance.address,
        )
        raise EmptyContributionError(instance.name)

    logger.info(
        "Module deployed",
        operation="deploy_module",
        module=instance.name,
        address=instance.address,
        selectors=len(exposed),
    )
    return ModuleCut(instance.address, FacetCutAction.ADD, exposed)
