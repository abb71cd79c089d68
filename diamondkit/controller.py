"""
DIAMONDKIT Composite Controller

Governed registry of composite instances. Registering a composite attaches
this controller to it; unregistering detaches it. Both operations are
governance calls, so in production mode they go through the timelock.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import List

from diamondkit.chain import CallContext, external
from diamondkit.composite import ATTACH_CONTROLLER_SIGNATURE
from diamondkit.governance import GovernanceSettings, Governed, governance_call
from diamondkit.hardening import require_address
from diamondkit.observability import DiamondLayer, get_logger


ADD_COMPOSITE_SIGNATURE = "addCompositeInstance(address)"
REMOVE_COMPOSITE_SIGNATURE = "removeCompositeInstance(address)"

logger = get_logger("controller", DiamondLayer.GOVERNANCE)


class CompositeController(Governed):
    """Controller that composite instances attach to after assembly."""

    contract_name = "CompositeController"

    def __init__(self, settings: GovernanceSettings, initial_governance: str):
        super().__init__(settings, initial_governance)
        self.storage["composites"] = []

    def composites(self) -> List[str]:
        return list(self.storage["composites"])

    def is_composite(self, address: str) -> bool:
        return require_address(address) in self.storage["composites"]

    @governance_call(ADD_COMPOSITE_SIGNATURE)
    def add_composite(self, ctx: CallContext, composite: str) -> None:
        composite = require_address(composite, "composite")
        if composite in ctx.storage["composites"]:
            return
        ctx.storage["composites"].append(composite)
        ctx.chain.at(composite).transact(ATTACH_CONTROLLER_SIGNATURE, True, sender=ctx.contract.address)
        ctx.emit("CompositeInstanceAdded", composite=composite)
        logger.info("Composite attached", operation="add_composite", composite=composite)

    @governance_call(REMOVE_COMPOSITE_SIGNATURE)
    def remove_composite(self, ctx: CallContext, composite: str) -> None:
        composite = require_address(composite, "composite")
        if composite not in ctx.storage["composites"]:
            return
        ctx.storage["composites"].remove(composite)
        ctx.chain.at(composite).transact(ATTACH_CONTROLLER_SIGNATURE, False, sender=ctx.contract.address)
        ctx.emit("CompositeInstanceRemoved", composite=composite)
        logger.info("Composite detached", operation="remove_composite", composite=composite)

    @external("getCompositeInstances()")
    def get_composite_instances(self, ctx: CallContext) -> List[str]:
        return list(ctx.storage["composites"])
