"""
DIAMONDKIT Mock Contracts

Small contracts for exercising governance, timelocks and composite assembly
in tests and examples:

    GovernedWithTimelockMock   standalone governed contract with two counters
    CompositeInitModule        initializer storing a name and a lot size
    SettingsModule             getters plus a timelocked setter
    ExtensionModule            secondary module with its own initializer

Module code always reads and writes `ctx.storage`, which is the composite's
storage when called through a composite instance.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from typing import Any, Optional

from diamondkit.chain import CallContext, Contract, external
from diamondkit.fingerprint import CapabilityDescriptor
from diamondkit.governance import GovernanceSettings, Governed, governance_call, immediate_governance_call
from diamondkit.hardening import ContractRevert


class GovernedWithTimelockMock(Governed):
    contract_name = "GovernedWithTimelockMock"

    def __init__(self, settings: GovernanceSettings, initial_governance: str):
        super().__init__(settings, initial_governance)
        self.storage.update({"a": 0, "b": 0})

    @external("a()")
    def get_a(self, ctx: CallContext) -> int:
        return ctx.storage["a"]

    @external("b()")
    def get_b(self, ctx: CallContext) -> int:
        return ctx.storage["b"]

    @governance_call("changeA(uint256)")
    def change_a(self, ctx: CallContext, value: int) -> None:
        ctx.storage["a"] = value

    @governance_call("increaseA(uint256)")
    def increase_a(self, ctx: CallContext, increment: int) -> None:
        ctx.storage["a"] += increment

    @governance_call("changeWithRevert(uint256)")
    def change_with_revert(self, ctx: CallContext, value: int) -> None:
        ctx.storage["a"] = value
        raise ContractRevert("this is revert")

    @immediate_governance_call("changeB(uint256)")
    def change_b(self, ctx: CallContext, value: int) -> None:
        ctx.storage["b"] = value


class CompositeInitModule(Contract):
    contract_name = "CompositeInit"

    @external("init(string,uint256)")
    def init(self, ctx: CallContext, name: str, lot_size: int) -> None:
        if ctx.storage.get("initialized"):
            raise ContractRevert("already initialized")
        if lot_size <= 0:
            raise ContractRevert("lot size must be positive")
        ctx.storage.update({"name": name, "lot_size": lot_size, "initialized": True})
        ctx.emit("CompositeInitialized", name=name, lotSize=lot_size)


class SettingsModule(Contract):
    contract_name = "SettingsModule"

    @external("getName()")
    def get_name(self, ctx: CallContext) -> Optional[str]:
        return ctx.storage.get("name")

    @external("getLotSize()")
    def get_lot_size(self, ctx: CallContext) -> Optional[int]:
        return ctx.storage.get("lot_size")

    @governance_call("setLotSize(uint256)")
    def set_lot_size(self, ctx: CallContext, lot_size: int) -> None:
        if lot_size <= 0:
            raise ContractRevert("lot size must be positive")
        ctx.storage["lot_size"] = lot_size
        ctx.emit("SettingChanged", name="lotSize", value=lot_size)

    @external("supportsInterface(bytes4)")
    def supports_interface(self, ctx: CallContext, interface_id: Any) -> bool:
        return False


class ExtensionModule(Contract):
    contract_name = "ExtensionModule"

    @external("initExtension(uint256)")
    def init_extension(self, ctx: CallContext, seconds: int) -> None:
        ctx.storage["extension_seconds"] = seconds

    @external("extensionSeconds()")
    def extension_seconds(self, ctx: CallContext) -> int:
        return ctx.storage.get("extension_seconds", 0)

    @governance_call("setExtensionSeconds(uint256)")
    def set_extension_seconds(self, ctx: CallContext, seconds: int) -> None:
        ctx.storage["extension_seconds"] = seconds


SETTINGS_INTERFACE = CapabilityDescriptor.of(
    "ISettings", ["getName()", "getLotSize()", "setLotSize(uint256)"]
)
EXTENSION_INTERFACE = CapabilityDescriptor.of(
    "IExtension", ["extensionSeconds()", "setExtensionSeconds(uint256)"]
)
