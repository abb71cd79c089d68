"""
DIAMONDKIT Governance

Governance gating shared by composite instances and the composite controller.

Lifecycle:

    ┌────────────────────┐  switchToProductionMode()  ┌────────────────────┐
    │  DEPLOYMENT PHASE  │ ─────────────────────────► │  PRODUCTION MODE   │
    │ authority: initial │   (initial governance)     │ authority: settings│
    │ governance calls   │                            │ governance calls   │
    │ execute at once    │                            │ become deferred    │
    └────────────────────┘                            └─────────┬──────────┘
                                                                │
                      GovernanceCallTimelocked{encodedCall,     │
                        encodedCallHash, allowedAfterTimestamp} │
                                                                ▼
                     executeGovernanceCall(encodedCall)  (executor only,
                     now > allowedAfterTimestamp)  or
                     cancelGovernanceCall(encodedCall)   (governance only)

A governance call that reverts during execution leaves the deferred call
pending; the whole execution transaction is rolled back.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

from diamondkit.chain import CallContext, Contract, external
from diamondkit.encoding import decode_call, encode_call, encoded_call_hash
from diamondkit.fingerprint import FunctionSignature
from diamondkit.hardening import (
    InvariantViolation,
    UnauthorizedAuthorityError,
    UnauthorizedExecutorError,
    UnknownDeferredCallError,
    PrematureExecutionError,
    require_address,
    require_bytes,
)
from diamondkit.observability import DiamondLayer, get_logger


TIMELOCK_EVENT = "GovernanceCallTimelocked"
EXECUTED_EVENT = "TimelockedGovernanceCallExecuted"
CANCELED_EVENT = "TimelockedGovernanceCallCanceled"
EXECUTE_SIGNATURE = "executeGovernanceCall(bytes)"
CANCEL_SIGNATURE = "cancelGovernanceCall(bytes)"

logger = get_logger("governed", DiamondLayer.GOVERNANCE)


@dataclass
class GovernanceSettings:
    """Production governance address, timelock delay and executor set."""
    governance_address: str
    timelock_seconds: Optional[int] = None
    executors: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        from diamondkit.config import get_config

        self.governance_address = require_address(self.governance_address, "governance_address")
        if self.timelock_seconds is None:
            self.timelock_seconds = get_config().governance.timelock_seconds.get()
        if self.timelock_seconds < 0:
            raise ValueError(f"timelock_seconds must be non-negative, got {self.timelock_seconds}")
        self.executors = frozenset(require_address(e, "executor") for e in self.executors)

    def is_executor(self, address: str) -> bool:
        return address in self.executors

    def set_executors(self, executors: Iterable[str]) -> None:
        self.executors = frozenset(require_address(e, "executor") for e in executors)


def _governed(ctx: CallContext) -> "Governed":
    contract = ctx.contract
    if not isinstance(contract, Governed):
        raise InvariantViolation(f"{contract.name} is not a governed contract")
    return contract


def _require_governance(ctx: CallContext) -> "Governed":
    governed = _governed(ctx)
    authority = governed.governance()
    if ctx.sender != authority:
        raise UnauthorizedAuthorityError(ctx.sender, authority)
    return governed


def governance_call(signature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Mark an external method as a timelocked governance call.

    Only the current governance may call it. During the deployment phase it
    runs immediately; in production mode the call is recorded and a
    GovernanceCallTimelocked event is emitted instead.
    """
    parsed = FunctionSignature.parse(signature)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(self: Contract, ctx: CallContext, *args: Any) -> Any:
            if ctx.timelocked:
                return func(self, ctx, *args)

            governed = _require_governance(ctx)
            if not governed.production_mode():
                return func(self, ctx, *args)

            encoded = encode_call(parsed, args)
            call_hash = encoded_call_hash(encoded)
            allowed_after = ctx.now + governed.timelock_seconds_for(parsed.fingerprint)
            ctx.storage["timelocked_calls"][call_hash] = {
                "allowed_after": allowed_after,
                "encoded_call": "0x" + encoded.hex(),
            }
            ctx.emit(
                TIMELOCK_EVENT,
                encodedCall=encoded,
                encodedCallHash=call_hash,
                allowedAfterTimestamp=allowed_after,
            )
            logger.info(
                "Governance call timelocked",
                operation="timelock",
                contract=governed.name,
                function=parsed.canonical,
                encoded_call_hash=call_hash,
                allowed_after=allowed_after,
            )
            return None

        wrapper.__external_signature__ = parsed
        return wrapper
    return decorator


def immediate_governance_call(signature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark an external method as governance-only but never timelocked."""
    parsed = FunctionSignature.parse(signature)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(self: Contract, ctx: CallContext, *args: Any) -> Any:
            _require_governance(ctx)
            return func(self, ctx, *args)

        wrapper.__external_signature__ = parsed
        return wrapper
    return decorator


class Governed(Contract):
    """Contract with a deployment phase, a production mode and a timelock."""

    def __init__(self, settings: GovernanceSettings, initial_governance: str):
        super().__init__()
        self.settings = settings
        self.storage.update({
            "initial_governance": require_address(initial_governance, "initial_governance"),
            "production_mode": False,
            "timelocked_calls": {},
        })

    def governance(self) -> str:
        """Current authority: the initial governance until production mode."""
        if self.storage["production_mode"]:
            return self.settings.governance_address
        return self.storage["initial_governance"]

    def production_mode(self) -> bool:
        return self.storage["production_mode"]

    def timelock_seconds_for(self, fingerprint: str) -> int:
        return self.settings.timelock_seconds

    def pending_calls(self) -> Dict[str, Dict[str, Any]]:
        return {h: dict(record) for h, record in self.storage["timelocked_calls"].items()}

    # -------------------------------------------------------------------------
    # External interface
    # -------------------------------------------------------------------------

    @external("governance()")
    def get_governance(self, ctx: CallContext) -> str:
        return _governed(ctx).governance()

    @external("productionMode()")
    def get_production_mode(self, ctx: CallContext) -> bool:
        return ctx.storage["production_mode"]

    @external("isExecutor(address)")
    def is_executor(self, ctx: CallContext, address: str) -> bool:
        return _governed(ctx).settings.is_executor(require_address(address))

    @external("switchToProductionMode()")
    def switch_to_production_mode(self, ctx: CallContext) -> None:
        governed = _governed(ctx)
        if ctx.sender != ctx.storage["initial_governance"]:
            raise UnauthorizedAuthorityError(ctx.sender, ctx.storage["initial_governance"])
        if ctx.storage["production_mode"]:
            raise InvariantViolation("Already in production mode")
        ctx.storage["production_mode"] = True
        ctx.emit("GovernedProductionModeEntered", governance=governed.settings.governance_address)
        logger.info(
            "Production mode entered",
            operation="switch_to_production_mode",
            contract=governed.name,
            governance=governed.settings.governance_address,
        )

    @external(EXECUTE_SIGNATURE)
    def execute_governance_call(self, ctx: CallContext, encoded_call: Any) -> Any:
        governed = _governed(ctx)
        if not governed.settings.is_executor(ctx.sender):
            raise UnauthorizedExecutorError(ctx.sender)

        encoded = require_bytes(encoded_call, "encoded_call")
        call_hash = encoded_call_hash(encoded)
        record = ctx.storage["timelocked_calls"].get(call_hash)
        if record is None:
            raise UnknownDeferredCallError(call_hash)
        if ctx.now <= record["allowed_after"]:
            raise PrematureExecutionError(record["allowed_after"], ctx.now)

        del ctx.storage["timelocked_calls"][call_hash]
        fingerprint, args = decode_call(encoded)
        result = governed._dispatch(ctx.derive(timelocked=True), fingerprint, args)
        ctx.emit(EXECUTED_EVENT, encodedCallHash=call_hash)
        logger.info(
            "Timelocked governance call executed",
            operation="execute_governance_call",
            contract=governed.name,
            encoded_call_hash=call_hash,
            executor=ctx.sender,
        )
        return result

    @external(CANCEL_SIGNATURE)
    def cancel_governance_call(self, ctx: CallContext, encoded_call: Any) -> None:
        _require_governance(ctx)
        encoded = require_bytes(encoded_call, "encoded_call")
        call_hash = encoded_call_hash(encoded)
        if call_hash not in ctx.storage["timelocked_calls"]:
            raise UnknownDeferredCallError(call_hash)
        del ctx.storage["timelocked_calls"][call_hash]
        ctx.emit(CANCELED_EVENT, encodedCallHash=call_hash)
        logger.info(
            "Timelocked governance call canceled",
            operation="cancel_governance_call",
            encoded_call_hash=call_hash,
        )
