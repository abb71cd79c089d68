"""
DIAMONDKIT Assembly Builder

Drives a full composite assembly from a plan:

    ┌────────────┐   ┌────────────────┐   ┌──────────────────────┐
    │ index      │──►│ deploy modules │──►│ assemble composite   │
    │ interfaces │   │ (one cut each) │   │ cuts + init, atomic  │
    └────────────┘   └────────────────┘   └──────────┬───────────┘
                                                     │
    ┌────────────┐   ┌────────────────┐   ┌──────────▼───────────┐
    │ attach to  │◄──│ verify         │◄──│ secondary modules    │
    │ controller │   │ coverage       │   │ governed diamondCut  │
    └────────────┘   └────────────────┘   └──────────────────────┘

Module order is cut application order. Any failing step raises and no
assembly result is returned.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Container, List, Optional, Sequence, Tuple, Union

from diamondkit.chain import ZERO_ADDRESS, SimulatedChain
from diamondkit.composite import DIAMOND_CUT_SIGNATURE, ATTACH_CONTROLLER_SIGNATURE, CompositeInstance, ModuleCut
from diamondkit.controller import ADD_COMPOSITE_SIGNATURE, CompositeController
from diamondkit.coverage import CoverageReport, coverage_report, verify_coverage
from diamondkit.deployer import deploy_module, resolve_module
from diamondkit.encoding import encode_call
from diamondkit.fingerprint import CapabilityDescriptor, SelectorIndex, index_interfaces
from diamondkit.governance import GovernanceSettings
from diamondkit.hardening import require_address
from diamondkit.observability import (
    DiamondLayer,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from diamondkit.timelock import TimelockSimulator


logger = get_logger("builder", DiamondLayer.ASSEMBLY)

EMPTY_INIT_PAYLOAD = b"\x00" * 4


@dataclass(frozen=True)
class InitCall:
    """A call into an initializer module, encoded into the cut payload."""
    signature: str
    args: Tuple[Any, ...] = ()

    def encode(self) -> bytes:
        return encode_call(self.signature, self.args)


@dataclass
class SecondaryModule:
    """A module added after assembly through the governed diamondCut."""
    module: Any
    interfaces: Sequence[CapabilityDescriptor]
    init: Optional[InitCall] = None
    exclude: Container[str] = frozenset()


@dataclass
class AssemblyPlan:
    """Everything needed to assemble one composite instance."""
    interfaces: Sequence[CapabilityDescriptor]
    modules: Sequence[Any]
    governance: str
    initializer: Any = None
    init_call: Optional[InitCall] = None
    settings: Optional[GovernanceSettings] = None
    executor: Optional[str] = None
    secondary_modules: Sequence[SecondaryModule] = ()
    exclude: Container[str] = frozenset()
    controller: Union[CompositeController, str, None] = None
    diamond_cut_min_timelock_seconds: Optional[int] = None
    strict_duplicates: Optional[bool] = None
    verify: Optional[bool] = None

    def __post_init__(self) -> None:
        from diamondkit.config import get_config

        config = get_config().assembly
        self.governance = require_address(self.governance, "governance")
        self.executor = require_address(self.executor or self.governance, "executor")
        if self.settings is None:
            self.settings = GovernanceSettings(
                governance_address=self.governance,
                executors=frozenset({self.executor}),
            )
        if self.strict_duplicates is None:
            self.strict_duplicates = config.strict_duplicates.get()
        if self.verify is None:
            self.verify = config.verify_coverage.get()


@dataclass
class AssemblyResult:
    composite: CompositeInstance
    index: SelectorIndex
    cuts: List[ModuleCut]
    secondary_cuts: List[ModuleCut] = field(default_factory=list)
    report: Optional[CoverageReport] = None


class AssemblyBuilder:
    """Assembles composite instances on a simulated chain."""

    def __init__(
        self,
        chain: SimulatedChain,
        deployer: str = ZERO_ADDRESS,
        timelock: Optional[TimelockSimulator] = None,
    ):
        self.chain = chain
        self.deployer = require_address(deployer, "deployer")
        self._timelock = timelock

    def plan_cuts(self, plan: AssemblyPlan) -> Tuple[SelectorIndex, List[ModuleCut]]:
        """Index the required interfaces and deploy the primary modules."""
        index = index_interfaces(plan.interfaces, strict=plan.strict_duplicates)
        cuts = [
            deploy_module(self.chain, module, index, plan.exclude, self.deployer)
            for module in plan.modules
        ]
        return index, cuts

    def build(self, plan: AssemblyPlan) -> AssemblyResult:
        set_correlation_id(generate_correlation_id())
        logger.info(
            "Assembly started",
            operation="build",
            interfaces=[d.name for d in plan.interfaces],
            modules=len(plan.modules),
        )
        try:
            result = self._build(plan)
        except Exception as e:
            logger.error(
                "Assembly failed",
                error_code=type(e).__name__,
                error=str(e),
            )
            raise

        logger.info(
            "Assembly completed",
            operation="build",
            composite=result.composite.address,
            selectors=len(result.composite.storage["selectors"]),
        )
        return result

    def _build(self, plan: AssemblyPlan) -> AssemblyResult:
        index, cuts = self.plan_cuts(plan)

        if plan.initializer is not None and plan.init_call is not None:
            initializer = resolve_module(self.chain, plan.initializer, self.deployer).address
            payload = plan.init_call.encode()
        else:
            initializer, payload = ZERO_ADDRESS, EMPTY_INIT_PAYLOAD
        composite = CompositeInstance.assemble(
            self.chain,
            cuts,
            initializer,
            payload,
            settings=plan.settings,
            initial_governance=plan.governance,
            controller=self._controller_address(plan.controller),
            deployer=self.deployer if self.deployer != ZERO_ADDRESS else None,
            diamond_cut_min_timelock_seconds=plan.diamond_cut_min_timelock_seconds,
        )

        timelock = self._timelock or TimelockSimulator(self.chain, plan.executor)
        full_index = index
        secondary_cuts = []
        for secondary in plan.secondary_modules:
            secondary_index = index_interfaces(secondary.interfaces, strict=plan.strict_duplicates)
            cut = deploy_module(self.chain, secondary.module, secondary_index, secondary.exclude, self.deployer)
            if secondary.init is not None:
                init_address, init_payload = cut.module_address, secondary.init.encode()
            else:
                init_address, init_payload = ZERO_ADDRESS, EMPTY_INIT_PAYLOAD
            receipt = composite.transact(
                DIAMOND_CUT_SIGNATURE, [cut], init_address, init_payload,
                sender=composite.governance(),
            )
            timelock.wait_for_timelock(receipt, composite)
            full_index = full_index.merge(secondary_index, strict=plan.strict_duplicates)
            secondary_cuts.append(cut)

        if plan.verify:
            report = verify_coverage(composite, full_index)
        else:
            report = coverage_report(composite, full_index)

        self._attach(composite, plan.controller, timelock)
        return AssemblyResult(
            composite=composite,
            index=full_index,
            cuts=cuts,
            secondary_cuts=secondary_cuts,
            report=report,
        )

    @staticmethod
    def _controller_address(controller: Union[CompositeController, str, None]) -> str:
        if controller is None:
            return ZERO_ADDRESS
        if isinstance(controller, CompositeController):
            return controller.address
        return require_address(controller, "controller")

    def _attach(
        self,
        composite: CompositeInstance,
        controller: Union[CompositeController, str, None],
        timelock: TimelockSimulator,
    ) -> None:
        if controller is None:
            return
        if isinstance(controller, CompositeController):
            timelock.execute_timelocked(controller, ADD_COMPOSITE_SIGNATURE, composite.address)
        else:
            composite.transact(ATTACH_CONTROLLER_SIGNATURE, True, sender=composite.controller())
        logger.info(
            "Composite attached to controller",
            operation="attach",
            composite=composite.address,
            controller=composite.controller(),
        )
