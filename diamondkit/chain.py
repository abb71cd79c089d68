"""
DIAMONDKIT Simulated Ledger

In-memory stand-in for the execution environment that modules and composite
instances are deployed to. It provides exactly what the assembly and timelock
layers consume:

    - deterministic address allocation for deployed contracts
    - a forward-only simulated clock (`latest`, `increase`, `increase_to`)
    - transactions that either commit every storage write or none of them
    - an ordered event log per transaction receipt
    - a name -> factory artifact registry for deploying modules by name

Contracts are Python classes whose `@external("name(types)")` methods form
their ABI. Every external method receives a CallContext first; the context's
`storage` is the storage of the contract being executed *in*, which is not
necessarily the contract whose code runs. A composite instance dispatching to
a module runs the module's code against the composite's storage, the way a
delegate call does.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from diamondkit.encoding import decode_call
from diamondkit.fingerprint import (
    FunctionSignature,
    SignatureLike,
    as_signature,
    keccak256,
)
from diamondkit.hardening import (
    FunctionNotFoundError,
    InvariantViolation,
    ValidationError,
    Validators,
    require_address,
)
from diamondkit.observability import DiamondLayer, get_logger


ZERO_ADDRESS = "0x" + "0" * 40


def external(signature: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a contract method as externally callable under `signature`."""
    parsed = FunctionSignature.parse(signature)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        func.__external_signature__ = parsed
        return func
    return decorator


def to_fingerprint(function: Union[SignatureLike, str]) -> str:
    """Accept a signature or an already computed `0x` fingerprint."""
    if isinstance(function, str) and Validators.FINGERPRINT_PATTERN.match(function.strip().lower()):
        return function.strip().lower()
    return as_signature(function).fingerprint


# =============================================================================
# EVENTS AND RECEIPTS
# =============================================================================

@dataclass(frozen=True)
class Event:
    """An event emitted during a transaction."""
    name: str
    address: str
    args: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.args[key]


@dataclass
class TxReceipt:
    """Outcome of a committed transaction."""
    tx_hash: str
    sender: str
    to: str
    fingerprint: str
    timestamp: int
    events: List[Event] = field(default_factory=list)
    return_value: Any = None

    def find_event(self, name: str) -> Optional[Event]:
        for event in self.events:
            if event.name == name:
                return event
        return None

    def require_event(self, name: str) -> Event:
        event = self.find_event(name)
        if event is None:
            raise LookupError(f"Missing event {name} in transaction {self.tx_hash}")
        return event

    def events_named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]


@dataclass
class CallContext:
    """Execution context handed to every external method."""
    chain: "SimulatedChain"
    contract: "Contract"
    code: "Contract"
    sender: str
    events: List[Event]
    timelocked: bool = False

    @property
    def storage(self) -> Dict[str, Any]:
        return self.contract.storage

    @property
    def now(self) -> int:
        return self.chain.latest()

    def emit(self, name: str, /, **args: Any) -> None:
        self.events.append(Event(name=name, address=self.contract.address, args=args))

    def derive(self, **changes: Any) -> "CallContext":
        return replace(self, **changes)


# =============================================================================
# CONTRACTS
# =============================================================================

class Contract:
    """
    Base class for simulated contracts.

    Subclasses declare their ABI with `@external`; the table is collected
    once per class, with subclass definitions overriding base ones by
    attribute name.
    """

    contract_name: ClassVar[Optional[str]] = None
    _externals: ClassVar[Dict[str, Tuple[FunctionSignature, str]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        by_attr: Dict[str, FunctionSignature] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                sig = getattr(value, "__external_signature__", None)
                if sig is not None:
                    by_attr[attr] = sig
                elif attr in by_attr:
                    del by_attr[attr]
        cls._externals = {sig.fingerprint: (sig, attr) for attr, sig in by_attr.items()}

    def __init__(self) -> None:
        self.address: Optional[str] = None
        self.chain: Optional[SimulatedChain] = None
        self.storage: Dict[str, Any] = {}
        self.deployment_events: List[Event] = []

    def __repr__(self) -> str:
        return f"<{self.name} at {self.address or 'undeployed'}>"

    @property
    def name(self) -> str:
        return self.contract_name or type(self).__name__

    # -------------------------------------------------------------------------
    # ABI introspection
    # -------------------------------------------------------------------------

    def _function_table(self) -> Dict[str, Tuple[FunctionSignature, Callable[..., Any]]]:
        return {fp: (sig, getattr(self, attr)) for fp, (sig, attr) in type(self)._externals.items()}

    def abi(self) -> List[FunctionSignature]:
        return [sig for sig, _ in self._function_table().values()]

    def function_fingerprints(self) -> List[str]:
        """Fingerprints this instance exposes, in ABI declaration order."""
        return list(self._function_table())

    def has_function(self, fingerprint: str) -> bool:
        return fingerprint in self._function_table()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_in(self, ctx: CallContext, fingerprint: str, args: Sequence[Any]) -> Any:
        """Run this contract's code for `fingerprint` against `ctx.storage`."""
        entry = self._function_table().get(fingerprint)
        if entry is None:
            raise FunctionNotFoundError(fingerprint, self.name)
        sig, fn = entry
        if len(args) != len(sig.param_types):
            raise ValidationError(
                "args",
                f"{sig.canonical} expects {len(sig.param_types)} arguments, got {len(args)}",
                list(args),
            )
        return fn(ctx.derive(code=self), *args)

    def _dispatch(self, ctx: CallContext, fingerprint: str, args: Sequence[Any]) -> Any:
        return self.execute_in(ctx, fingerprint, args)

    def delegate(self, ctx: CallContext, encoded_call: bytes) -> Any:
        """Decode `encoded_call` and run it with this contract's code in `ctx`."""
        fingerprint, args = decode_call(encoded_call)
        return self.execute_in(ctx, fingerprint, args)

    def transact(self, function: SignatureLike, *args: Any, sender: str) -> TxReceipt:
        """Submit a state-changing call from `sender`."""
        return self._require_chain().transact(self, to_fingerprint(function), list(args), sender)

    def call(self, function: SignatureLike, *args: Any, sender: str = ZERO_ADDRESS) -> Any:
        """Evaluate a call without committing any state change."""
        return self._require_chain().static_call(self, to_fingerprint(function), list(args), sender)

    def _require_chain(self) -> "SimulatedChain":
        if self.chain is None or self.address is None:
            raise InvariantViolation(f"{self.name} is not deployed")
        return self.chain


class AbiContract(Contract):
    """Behaviour-less contract described only by its function signatures."""

    def __init__(self, name: str, functions: Sequence[FunctionSignature]):
        super().__init__()
        self._name = name
        self._functions = tuple(functions)

    @property
    def name(self) -> str:
        return self._name

    def _function_table(self) -> Dict[str, Tuple[FunctionSignature, Callable[..., Any]]]:
        return {sig.fingerprint: (sig, self._noop) for sig in self._functions}

    def _noop(self, ctx: CallContext, *args: Any) -> None:
        return None


@dataclass(frozen=True)
class AbiArtifact:
    """Factory for AbiContract instances, registrable on a chain by name."""
    name: str
    functions: Tuple[FunctionSignature, ...]

    @classmethod
    def of(cls, name: str, signatures: Sequence[SignatureLike]) -> "AbiArtifact":
        return cls(name=name, functions=tuple(as_signature(s) for s in signatures))

    def __call__(self) -> AbiContract:
        return AbiContract(self.name, self.functions)


# =============================================================================
# SIMULATED CHAIN
# =============================================================================

class SimulatedChain:
    """
    Single-writer in-memory ledger with a forward-only clock.

    Each transaction snapshots the storage of every deployed contract and
    restores all of them if the call raises, so nested calls into other
    contracts are rolled back together with the outer one.
    """

    def __init__(
        self,
        start_timestamp: Optional[int] = None,
        address_seed: Optional[str] = None,
    ):
        from diamondkit.config import get_config

        chain_config = get_config().chain
        self._now = chain_config.start_timestamp.get() if start_timestamp is None else start_timestamp
        self._seed = address_seed or chain_config.address_seed.get()
        self._nonce = 0
        self._tx_count = 0
        self._contracts: Dict[str, Contract] = {}
        self._artifacts: Dict[str, Callable[[], Contract]] = {}
        self._frames: List[List[Event]] = []
        self._logger = get_logger("chain", DiamondLayer.CHAIN)

    # -------------------------------------------------------------------------
    # Clock
    # -------------------------------------------------------------------------

    def latest(self) -> int:
        return self._now

    def increase(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards by {seconds}s")
        self._now += seconds
        return self._now

    def increase_to(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError(f"Cannot move clock backwards from {self._now} to {timestamp}")
        self._now = timestamp
        return self._now

    def deterministic_increase(self, seconds: int) -> int:
        """Advance by exactly `seconds` (at least one) between consecutive calls."""
        return self.increase(max(int(seconds), 1))

    # -------------------------------------------------------------------------
    # Deployment
    # -------------------------------------------------------------------------

    def next_address(self) -> str:
        self._nonce += 1
        digest = keccak256(f"{self._seed}:{self._nonce}".encode("utf-8"))
        return "0x" + digest[-20:].hex()

    def register_artifact(self, name: str, factory: Callable[[], Contract]) -> None:
        self._artifacts[name] = factory

    def artifact(self, name: str) -> Callable[[], Contract]:
        factory = self._artifacts.get(name)
        if factory is None:
            raise ValidationError("artifact", f"Unknown artifact {name}", name)
        return factory

    def artifacts(self) -> List[str]:
        return sorted(self._artifacts)

    def deploy(
        self,
        contract: Contract,
        deployer: str = ZERO_ADDRESS,
        constructor: Optional[Callable[[CallContext], None]] = None,
    ) -> Contract:
        """Allocate an address for `contract`, run its constructor, register it."""
        if contract.address is not None:
            raise InvariantViolation(f"{contract.name} already deployed at {contract.address}")

        snapshot = copy.deepcopy(contract.storage)
        contract.address = self.next_address()
        contract.chain = self
        if constructor is not None:
            ctx = CallContext(
                chain=self, contract=contract, code=contract,
                sender=require_address(deployer, "deployer"), events=[],
            )
            self._frames.append(ctx.events)
            try:
                constructor(ctx)
            except Exception:
                contract.address = None
                contract.chain = None
                contract.storage = snapshot
                raise
            finally:
                self._frames.pop()
            contract.deployment_events = ctx.events
            if self._frames:
                self._frames[-1].extend(ctx.events)

        self._contracts[contract.address] = contract
        self._logger.debug(
            "Contract deployed",
            operation="deploy",
            contract=contract.name,
            address=contract.address,
        )
        return contract

    def deploy_artifact(self, name: str, deployer: str = ZERO_ADDRESS) -> Contract:
        return self.deploy(self.artifact(name)(), deployer)

    def at(self, address: str) -> Contract:
        contract = self._contracts.get(require_address(address))
        if contract is None:
            raise ValidationError("address", f"No contract deployed at {address}", address)
        return contract

    def is_deployed(self, address: str) -> bool:
        return address in self._contracts

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {addr: copy.deepcopy(c.storage) for addr, c in self._contracts.items()}

    def _restore(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        for addr, storage in snapshot.items():
            self._contracts[addr].storage = storage

    def transact(
        self,
        contract: Contract,
        fingerprint: str,
        args: List[Any],
        sender: str,
    ) -> TxReceipt:
        """Execute a call atomically and return its receipt."""
        sender = require_address(sender, "sender")
        snapshot = self._snapshot()
        events: List[Event] = []
        ctx = CallContext(chain=self, contract=contract, code=contract, sender=sender, events=events)

        self._frames.append(events)
        try:
            result = contract._dispatch(ctx, fingerprint, args)
        except Exception:
            self._restore(snapshot)
            raise
        finally:
            self._frames.pop()

        # Internal calls surface their events in the outer receipt too
        if self._frames:
            self._frames[-1].extend(events)

        self._tx_count += 1
        tx_hash = "0x" + keccak256(
            f"{self._tx_count}:{contract.address}:{fingerprint}:{sender}".encode("utf-8")
        ).hex()
        self._logger.debug(
            "Transaction committed",
            operation="transact",
            contract=contract.name,
            fingerprint=fingerprint,
            sender=sender,
            events=[e.name for e in events],
        )
        return TxReceipt(
            tx_hash=tx_hash,
            sender=sender,
            to=contract.address,
            fingerprint=fingerprint,
            timestamp=self._now,
            events=events,
            return_value=result,
        )

    def static_call(
        self,
        contract: Contract,
        fingerprint: str,
        args: List[Any],
        sender: str = ZERO_ADDRESS,
    ) -> Any:
        """Execute a call and discard every state change it made."""
        snapshot = self._snapshot()
        ctx = CallContext(
            chain=self, contract=contract, code=contract,
            sender=require_address(sender, "sender"), events=[],
        )
        try:
            return contract._dispatch(ctx, fingerprint, args)
        finally:
            self._restore(snapshot)
