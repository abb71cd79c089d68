"""
DIAMONDKIT Composite Instance

A composite instance owns a fingerprint -> module routing table and runs the
owning module's code against its own storage. The table only changes through
module cuts, and a batch of cuts is applied atomically together with its
optional initializer call.

Routing:

    caller ──► CompositeInstance ──┬── native function? run it
                                   │
                                   └── selectors[fp] ──► module.execute_in(ctx)
                                                          (composite storage)

Cut actions:
    ADD      fingerprint must be unowned, module must implement it
    REPLACE  fingerprint must be owned by a *different* module
    REMOVE   fingerprint must be owned; the cut address must be zero

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from diamondkit.chain import ZERO_ADDRESS, CallContext, Contract, SimulatedChain, external
from diamondkit.fingerprint import function_fingerprint, normalize_fingerprint
from diamondkit.governance import GovernanceSettings, Governed, governance_call
from diamondkit.hardening import (
    CutError,
    FunctionNotFoundError,
    UnauthorizedAuthorityError,
    require_address,
    require_bytes,
)
from diamondkit.observability import DiamondLayer, get_logger


DIAMOND_CUT_SIGNATURE = "diamondCut((address,uint8,bytes4[])[],address,bytes)"
DIAMOND_CUT_FINGERPRINT = function_fingerprint(DIAMOND_CUT_SIGNATURE)
ATTACH_CONTROLLER_SIGNATURE = "attachController(bool)"

logger = get_logger("composite", DiamondLayer.ASSEMBLY)


class FacetCutAction(IntEnum):
    ADD = 0
    REPLACE = 1
    REMOVE = 2


@dataclass(frozen=True)
class ModuleCut:
    """One routing-table change: a module address, an action and its fingerprints."""
    module_address: str
    action: FacetCutAction
    fingerprints: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "module_address", require_address(self.module_address, "facetAddress"))
        try:
            object.__setattr__(self, "action", FacetCutAction(int(self.action)))
        except ValueError as e:
            raise CutError(f"Unknown cut action {self.action!r}") from e

        fingerprints = tuple(normalize_fingerprint(fp) for fp in self.fingerprints)
        if not fingerprints:
            raise CutError(f"No selectors in cut for {self.module_address}")
        if len(set(fingerprints)) != len(fingerprints):
            raise CutError(f"Duplicate selectors in cut for {self.module_address}")
        object.__setattr__(self, "fingerprints", fingerprints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "facetAddress": self.module_address,
            "action": int(self.action),
            "functionSelectors": list(self.fingerprints),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModuleCut":
        try:
            return cls(
                module_address=data["facetAddress"],
                action=data["action"],
                fingerprints=tuple(data["functionSelectors"]),
            )
        except KeyError as e:
            raise CutError(f"Module cut missing field {e.args[0]}") from e

    @classmethod
    def coerce(cls, value: Any) -> "ModuleCut":
        """Accept a ModuleCut, its dict form, or an (address, action, selectors) tuple."""
        if isinstance(value, ModuleCut):
            return value
        if isinstance(value, dict):
            return cls.from_dict(value)
        if isinstance(value, (list, tuple)) and len(value) == 3:
            return cls(value[0], value[1], tuple(value[2]))
        raise CutError(f"Cannot interpret {value!r} as a module cut")


@dataclass(frozen=True)
class FacetInfo:
    """Loupe view of one module and the fingerprints routed to it."""
    module_address: str
    fingerprints: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"facetAddress": self.module_address, "functionSelectors": list(self.fingerprints)}


class CompositeInstance(Governed):
    """
    Modular contract instance assembled from module cuts.

    Governance-gated `diamondCut` uses a delay of at least
    `diamond_cut_min_timelock_seconds`. An attached controller is the only
    address allowed to flip the controller attachment flag.
    """

    contract_name = "CompositeInstance"

    def __init__(
        self,
        settings: GovernanceSettings,
        initial_governance: str,
        controller: str = ZERO_ADDRESS,
        diamond_cut_min_timelock_seconds: Optional[int] = None,
    ):
        from diamondkit.config import get_config

        super().__init__(settings, initial_governance)
        if diamond_cut_min_timelock_seconds is None:
            diamond_cut_min_timelock_seconds = get_config().governance.diamond_cut_min_timelock_seconds.get()
        self.storage.update({
            "selectors": {},
            "controller": require_address(controller, "controller"),
            "controller_attached": False,
            "diamond_cut_min_timelock": diamond_cut_min_timelock_seconds,
        })

    @classmethod
    def assemble(
        cls,
        chain: SimulatedChain,
        cuts: Sequence[Any],
        initializer: str,
        init_payload: Any,
        settings: GovernanceSettings,
        initial_governance: str,
        controller: str = ZERO_ADDRESS,
        deployer: Optional[str] = None,
        diamond_cut_min_timelock_seconds: Optional[int] = None,
    ) -> "CompositeInstance":
        """
        Create a fresh composite and apply `cuts` plus the initializer atomically.

        Any failure leaves no composite registered on the chain. The returned
        instance carries its allocated address; the constructor's `DiamondCut`
        event and any initializer events are kept in `deployment_events`.
        """
        parsed = [ModuleCut.coerce(c) for c in cuts]
        instance = cls(settings, initial_governance, controller, diamond_cut_min_timelock_seconds)

        def constructor(ctx: CallContext) -> None:
            instance._apply_cuts(ctx, parsed)
            ctx.emit(
                "DiamondCut",
                diamondCut=[c.to_dict() for c in parsed],
                init=initializer,
                calldata=init_payload,
            )
            instance._initialize(ctx, initializer, init_payload)

        chain.deploy(instance, deployer or initial_governance, constructor)
        logger.info(
            "Composite assembled",
            operation="assemble",
            address=instance.address,
            cuts=len(parsed),
            selectors=len(instance.storage["selectors"]),
            initializer=initializer,
        )
        return instance

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def _dispatch(self, ctx: CallContext, fingerprint: str, args: Sequence[Any]) -> Any:
        if fingerprint in type(self)._externals:
            return super()._dispatch(ctx, fingerprint, args)
        module_address = self.storage["selectors"].get(fingerprint)
        if module_address is None:
            raise FunctionNotFoundError(fingerprint, self.name)
        return ctx.chain.at(module_address).execute_in(ctx, fingerprint, args)

    def timelock_seconds_for(self, fingerprint: str) -> int:
        if fingerprint == DIAMOND_CUT_FINGERPRINT:
            return max(self.settings.timelock_seconds, self.storage["diamond_cut_min_timelock"])
        return super().timelock_seconds_for(fingerprint)

    # -------------------------------------------------------------------------
    # Cuts
    # -------------------------------------------------------------------------

    def _require_module(self, ctx: CallContext, address: str) -> Contract:
        if not ctx.chain.is_deployed(address):
            raise CutError(f"No module deployed at {address}")
        return ctx.chain.at(address)

    def _apply_cuts(self, ctx: CallContext, cuts: Sequence[ModuleCut]) -> None:
        selectors = ctx.storage["selectors"]
        natives = type(self)._externals

        for cut in cuts:
            if cut.action == FacetCutAction.REMOVE:
                if cut.module_address != ZERO_ADDRESS:
                    raise CutError(f"Remove facet address must be zero, got {cut.module_address}")
                for fp in cut.fingerprints:
                    if fp not in selectors:
                        raise CutError(f"Cannot remove function that doesn't exist: {fp}")
                    del selectors[fp]
                continue

            module = self._require_module(ctx, cut.module_address)
            for fp in cut.fingerprints:
                if fp in natives:
                    raise CutError(f"Cannot route built-in function {fp} to a module")
                if not module.has_function(fp):
                    raise CutError(f"{module.name} does not implement {fp}")
                current = selectors.get(fp)
                if cut.action == FacetCutAction.ADD and current is not None:
                    raise CutError(f"Cannot add function that already exists: {fp}")
                if cut.action == FacetCutAction.REPLACE:
                    if current is None:
                        raise CutError(f"Cannot replace function that doesn't exist: {fp}")
                    if current == cut.module_address:
                        raise CutError(f"Cannot replace function with same function: {fp}")
                selectors[fp] = cut.module_address

            logger.debug(
                "Cut applied",
                operation="apply_cut",
                module=module.name,
                address=cut.module_address,
                action=cut.action.name,
                selectors=len(cut.fingerprints),
            )

    def _initialize(self, ctx: CallContext, initializer: str, init_payload: Any) -> Any:
        initializer = require_address(initializer, "initializer")
        if initializer == ZERO_ADDRESS:
            return None
        module = self._require_module(ctx, initializer)
        return module.delegate(ctx, require_bytes(init_payload, "init_payload"))

    @governance_call(DIAMOND_CUT_SIGNATURE)
    def diamond_cut(self, ctx: CallContext, cuts: Any, initializer: str, init_payload: Any) -> None:
        parsed = [ModuleCut.coerce(c) for c in cuts]
        self._apply_cuts(ctx, parsed)
        ctx.emit(
            "DiamondCut",
            diamondCut=[c.to_dict() for c in parsed],
            init=initializer,
            calldata=init_payload,
        )
        self._initialize(ctx, initializer, init_payload)

    # -------------------------------------------------------------------------
    # Loupe
    # -------------------------------------------------------------------------

    def facets(self) -> List[FacetInfo]:
        grouped: Dict[str, List[str]] = {}
        for fp, address in self.storage["selectors"].items():
            grouped.setdefault(address, []).append(fp)
        return [FacetInfo(address, tuple(fps)) for address, fps in grouped.items()]

    def facet_function_selectors(self, module_address: str) -> Tuple[str, ...]:
        address = require_address(module_address)
        return tuple(fp for fp, owner in self.storage["selectors"].items() if owner == address)

    def facet_addresses(self) -> List[str]:
        return list(dict.fromkeys(self.storage["selectors"].values()))

    def facet_address(self, fingerprint: str) -> str:
        return self.storage["selectors"].get(normalize_fingerprint(fingerprint), ZERO_ADDRESS)

    @external("facets()")
    def loupe_facets(self, ctx: CallContext) -> List[Dict[str, Any]]:
        return [f.to_dict() for f in self.facets()]

    @external("facetFunctionSelectors(address)")
    def loupe_facet_function_selectors(self, ctx: CallContext, module_address: str) -> List[str]:
        return list(self.facet_function_selectors(module_address))

    @external("facetAddresses()")
    def loupe_facet_addresses(self, ctx: CallContext) -> List[str]:
        return self.facet_addresses()

    @external("facetAddress(bytes4)")
    def loupe_facet_address(self, ctx: CallContext, fingerprint: str) -> str:
        return self.facet_address(fingerprint)

    # -------------------------------------------------------------------------
    # Controller attachment
    # -------------------------------------------------------------------------

    def controller(self) -> str:
        return self.storage["controller"]

    def controller_attached(self) -> bool:
        return self.storage["controller_attached"]

    @external(ATTACH_CONTROLLER_SIGNATURE)
    def attach_controller(self, ctx: CallContext, attached: bool) -> None:
        if ctx.sender != ctx.storage["controller"]:
            raise UnauthorizedAuthorityError(ctx.sender, ctx.storage["controller"])
        ctx.storage["controller_attached"] = bool(attached)
        ctx.emit("ControllerAttached", controller=ctx.sender, attached=bool(attached))

    @external("controllerAttached()")
    def get_controller_attached(self, ctx: CallContext) -> bool:
        return ctx.storage["controller_attached"]

    @external("controller()")
    def get_controller(self, ctx: CallContext) -> str:
        return ctx.storage["controller"]
