"""
DIAMONDKIT Timelock Simulator

Turns a governance call that may have been deferred into a completed call.
The receipt of the original call is classified once:

    Immediate(receipt)   no GovernanceCallTimelocked event; returned unchanged
    Deferred(call)       advance the clock to allowedAfterTimestamp + 1 and
                         execute the recorded call from the executor

Deferred call lifecycle:

    PROPOSED ──(clock > allowedAfter)──► EXECUTABLE ──execute──► EXECUTED
        │                                     │
        └──────────────cancel─────────────────┴──────────────► CANCELED

There is no expiry; a deferred call nobody executes stays pending.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from diamondkit.chain import Contract, Event, SimulatedChain, TxReceipt
from diamondkit.fingerprint import SignatureLike
from diamondkit.governance import (
    CANCEL_SIGNATURE,
    EXECUTE_SIGNATURE,
    TIMELOCK_EVENT,
    Governed,
)
from diamondkit.hardening import InvariantViolation, require_address, require_bytes
from diamondkit.observability import DiamondLayer, get_logger


logger = get_logger("simulator", DiamondLayer.TIMELOCK)


class DeferredCallState(Enum):
    PROPOSED = "proposed"
    EXECUTABLE = "executable"
    EXECUTED = "executed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class DeferredCall:
    """A governance call recorded for later execution."""
    encoded_call: bytes
    earliest_execution_time: int
    originating_contract: str
    encoded_call_hash: str

    @classmethod
    def from_event(cls, event: Event) -> "DeferredCall":
        return cls(
            encoded_call=require_bytes(event["encodedCall"], "encodedCall"),
            earliest_execution_time=int(event["allowedAfterTimestamp"]),
            originating_contract=event.address,
            encoded_call_hash=event["encodedCallHash"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "encodedCall": "0x" + self.encoded_call.hex(),
            "allowedAfterTimestamp": self.earliest_execution_time,
            "contract": self.originating_contract,
            "encodedCallHash": self.encoded_call_hash,
        }


@dataclass(frozen=True)
class Immediate:
    receipt: TxReceipt


@dataclass(frozen=True)
class Deferred:
    call: DeferredCall
    receipt: TxReceipt


CallOutcome = Union[Immediate, Deferred]


def classify(receipt: TxReceipt) -> CallOutcome:
    """Decide whether `receipt` ran its call or deferred it."""
    event = receipt.find_event(TIMELOCK_EVENT)
    if event is None:
        return Immediate(receipt)
    return Deferred(DeferredCall.from_event(event), receipt)


class TimelockSimulator:
    """Waits out governance timelocks on a simulated chain and executes the calls."""

    def __init__(self, chain: SimulatedChain, executor: str):
        self._chain = chain
        self._executor = require_address(executor, "executor")
        self._calls: Dict[str, DeferredCall] = {}
        self._states: Dict[str, DeferredCallState] = {}

    @property
    def executor(self) -> str:
        return self._executor

    def observe(self, receipt: TxReceipt) -> CallOutcome:
        """Classify a receipt and start tracking the deferred call, if any."""
        outcome = classify(receipt)
        if isinstance(outcome, Deferred):
            call = outcome.call
            self._calls[call.encoded_call_hash] = call
            self._states[call.encoded_call_hash] = DeferredCallState.PROPOSED
        return outcome

    def state_of(self, call: DeferredCall) -> Optional[DeferredCallState]:
        state = self._states.get(call.encoded_call_hash)
        if state is DeferredCallState.PROPOSED and self._chain.latest() > call.earliest_execution_time:
            return DeferredCallState.EXECUTABLE
        return state

    def pending(self) -> List[DeferredCall]:
        return [
            self._calls[h] for h, state in self._states.items()
            if state is DeferredCallState.PROPOSED
        ]

    def execute(self, call: DeferredCall, contract: Optional[Contract] = None) -> TxReceipt:
        """Advance past the call's time bound and execute it from the executor."""
        contract = contract or self._chain.at(call.originating_contract)
        if contract.address != call.originating_contract:
            raise InvariantViolation(
                f"Deferred call belongs to {call.originating_contract}, not {contract.address}"
            )

        target = call.earliest_execution_time + 1
        if self._chain.latest() < target:
            self._chain.increase_to(target)

        receipt = contract.transact(EXECUTE_SIGNATURE, call.encoded_call, sender=self._executor)
        self._calls[call.encoded_call_hash] = call
        self._states[call.encoded_call_hash] = DeferredCallState.EXECUTED
        logger.info(
            "Deferred call executed",
            operation="execute",
            contract=contract.name,
            encoded_call_hash=call.encoded_call_hash,
            timestamp=self._chain.latest(),
        )
        return receipt

    def cancel(self, call: DeferredCall, sender: Optional[str] = None) -> TxReceipt:
        """Cancel a pending call; `sender` defaults to the contract's governance."""
        contract = self._chain.at(call.originating_contract)
        if sender is None and isinstance(contract, Governed):
            sender = contract.governance()
        receipt = contract.transact(CANCEL_SIGNATURE, call.encoded_call, sender=sender)
        self._calls[call.encoded_call_hash] = call
        self._states[call.encoded_call_hash] = DeferredCallState.CANCELED
        logger.info(
            "Deferred call canceled",
            operation="cancel",
            contract=contract.name,
            encoded_call_hash=call.encoded_call_hash,
        )
        return receipt

    def wait_for_timelock(self, receipt: TxReceipt, contract: Optional[Contract] = None) -> TxReceipt:
        """Return `receipt` for an immediate call, or the execution receipt of a deferred one."""
        outcome = self.observe(receipt)
        if isinstance(outcome, Immediate):
            return outcome.receipt
        return self.execute(outcome.call, contract)

    def execute_timelocked(
        self,
        contract: Governed,
        function: SignatureLike,
        *args: Any,
        sender: Optional[str] = None,
    ) -> TxReceipt:
        """Issue a governance call as the governance and wait out its timelock."""
        receipt = contract.transact(function, *args, sender=sender or contract.governance())
        return self.wait_for_timelock(receipt, contract)
