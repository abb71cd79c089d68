"""
DIAMONDKIT Composite Instance Tests

Module cuts, routing, loupe views, governed diamondCut and controller
attachment.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest

from diamondkit.chain import ZERO_ADDRESS, AbiArtifact
from diamondkit.composite import (
    DIAMOND_CUT_SIGNATURE,
    CompositeInstance,
    FacetCutAction,
    FacetInfo,
    ModuleCut,
)
from diamondkit.controller import CompositeController
from diamondkit.encoding import encode_call
from diamondkit.fingerprint import function_fingerprint
from diamondkit.governance import GovernanceSettings
from diamondkit.hardening import (
    ContractRevert,
    CutError,
    FunctionNotFoundError,
    UnauthorizedAuthorityError,
)
from diamondkit.mocks import CompositeInitModule, SettingsModule
from diamondkit.timelock import TimelockSimulator

GOVERNANCE = "0x" + "11" * 20
EXECUTOR = "0x" + "22" * 20
OUTSIDER = "0x" + "33" * 20

GET_NAME = function_fingerprint("getName()")
GET_LOT_SIZE = function_fingerprint("getLotSize()")
SET_LOT_SIZE = function_fingerprint("setLotSize(uint256)")
SUPPORTS_INTERFACE = function_fingerprint("supportsInterface(bytes4)")


@pytest.fixture
def governance_settings():
    return GovernanceSettings(
        governance_address=GOVERNANCE,
        timelock_seconds=3600,
        executors=frozenset({EXECUTOR}),
    )


@pytest.fixture
def settings_module(chain):
    return chain.deploy(SettingsModule())


@pytest.fixture
def init_module(chain):
    return chain.deploy(CompositeInitModule())


@pytest.fixture
def composite(chain, governance_settings, settings_module, init_module):
    return CompositeInstance.assemble(
        chain,
        [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME, GET_LOT_SIZE, SET_LOT_SIZE))],
        init_module.address,
        encode_call("init(string,uint256)", ["FXRP", 10]),
        settings=governance_settings,
        initial_governance=GOVERNANCE,
    )


# =============================================================================
# MODULE CUTS
# =============================================================================

class TestModuleCut:

    def test_wire_shape(self):
        cut = ModuleCut("0x" + "ab" * 20, FacetCutAction.ADD, ("0xA9059CBB",))
        assert cut.to_dict() == {
            "facetAddress": "0x" + "ab" * 20,
            "action": 0,
            "functionSelectors": ["0xa9059cbb"],
        }
        assert ModuleCut.from_dict(cut.to_dict()) == cut

    def test_coerce_variants(self):
        cut = ModuleCut("0x" + "ab" * 20, FacetCutAction.REPLACE, ("0xa9059cbb",))
        assert ModuleCut.coerce(cut) is cut
        assert ModuleCut.coerce(cut.to_dict()) == cut
        assert ModuleCut.coerce(("0x" + "ab" * 20, 1, ["0xa9059cbb"])) == cut

    def test_empty_cut_rejected(self):
        with pytest.raises(CutError):
            ModuleCut("0x" + "ab" * 20, FacetCutAction.ADD, ())

    def test_duplicate_selectors_rejected(self):
        with pytest.raises(CutError):
            ModuleCut("0x" + "ab" * 20, FacetCutAction.ADD, ("0xa9059cbb", "0xa9059cbb"))

    def test_unknown_action_rejected(self):
        with pytest.raises(CutError):
            ModuleCut("0x" + "ab" * 20, 7, ("0xa9059cbb",))

    def test_missing_field_rejected(self):
        with pytest.raises(CutError):
            ModuleCut.from_dict({"facetAddress": "0x" + "ab" * 20, "action": 0})


# =============================================================================
# ASSEMBLE AND ROUTE
# =============================================================================

class TestAssemble:

    def test_initializer_runs_against_composite_storage(self, composite, settings_module):
        assert composite.call("getName()") == "FXRP"
        assert composite.call("getLotSize()") == 10
        assert "name" not in settings_module.storage

    def test_loupe(self, composite, settings_module):
        assert composite.facets() == [FacetInfo(settings_module.address, (GET_NAME, GET_LOT_SIZE, SET_LOT_SIZE))]
        assert composite.facet_addresses() == [settings_module.address]
        assert composite.facet_address(GET_NAME) == settings_module.address
        assert composite.facet_address(SUPPORTS_INTERFACE) == ZERO_ADDRESS
        assert composite.facet_function_selectors(settings_module.address) == (GET_NAME, GET_LOT_SIZE, SET_LOT_SIZE)

    def test_loupe_externals(self, composite, settings_module):
        assert composite.call("facetAddresses()") == [settings_module.address]
        assert composite.call("facetAddress(bytes4)", GET_NAME) == settings_module.address
        assert composite.call("facets()")[0]["facetAddress"] == settings_module.address
        assert composite.call("facetFunctionSelectors(address)", settings_module.address) == \
            [GET_NAME, GET_LOT_SIZE, SET_LOT_SIZE]

    def test_constructor_events_recorded(self, composite, settings_module, init_module):
        cut_event, init_event = composite.deployment_events
        assert cut_event.name == "DiamondCut"
        assert cut_event.address == composite.address
        assert cut_event["diamondCut"] == [{
            "facetAddress": settings_module.address,
            "action": 0,
            "functionSelectors": [GET_NAME, GET_LOT_SIZE, SET_LOT_SIZE],
        }]
        assert cut_event["init"] == init_module.address
        assert init_event.name == "CompositeInitialized"
        assert init_event.args == {"name": "FXRP", "lotSize": 10}

    def test_unrouted_function(self, composite):
        with pytest.raises(FunctionNotFoundError):
            composite.call("supportsInterface(bytes4)", "0x01ffc9a7")

    def test_zero_initializer_skipped(self, chain, governance_settings, settings_module):
        composite = CompositeInstance.assemble(
            chain,
            [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
            ZERO_ADDRESS,
            "0x00000000",
            settings=governance_settings,
            initial_governance=GOVERNANCE,
        )
        assert composite.call("getName()") is None

    def test_failing_initializer_aborts_assembly(self, chain, governance_settings, settings_module, init_module):
        with pytest.raises(ContractRevert):
            CompositeInstance.assemble(
                chain,
                [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
                init_module.address,
                encode_call("init(string,uint256)", ["FXRP", 0]),
                settings=governance_settings,
                initial_governance=GOVERNANCE,
            )
        assert not any(isinstance(c, CompositeInstance) for c in chain._contracts.values())

    def test_module_must_implement_fingerprint(self, chain, governance_settings, settings_module):
        with pytest.raises(CutError):
            CompositeInstance.assemble(
                chain,
                [ModuleCut(settings_module.address, FacetCutAction.ADD, ("0xdeadbeef",))],
                ZERO_ADDRESS, b"",
                settings=governance_settings,
                initial_governance=GOVERNANCE,
            )

    def test_unknown_module_address(self, chain, governance_settings):
        with pytest.raises(CutError):
            CompositeInstance.assemble(
                chain,
                [ModuleCut("0x" + "ee" * 20, FacetCutAction.ADD, (GET_NAME,))],
                ZERO_ADDRESS, b"",
                settings=governance_settings,
                initial_governance=GOVERNANCE,
            )

    def test_builtin_functions_cannot_be_rerouted(self, chain, governance_settings):
        shadow = chain.deploy(AbiArtifact.of("Shadow", ["facets()"])())
        with pytest.raises(CutError):
            CompositeInstance.assemble(
                chain,
                [ModuleCut(shadow.address, FacetCutAction.ADD, (function_fingerprint("facets()"),))],
                ZERO_ADDRESS, b"",
                settings=governance_settings,
                initial_governance=GOVERNANCE,
            )


# =============================================================================
# DIAMOND CUT
# =============================================================================

class TestDiamondCut:
    """Later cuts go through the governed diamondCut."""

    def _cut(self, composite, cuts, sender=GOVERNANCE):
        return composite.transact(DIAMOND_CUT_SIGNATURE, cuts, ZERO_ADDRESS, b"\x00" * 4, sender=sender)

    def test_add_existing_rejected(self, composite, settings_module):
        with pytest.raises(CutError):
            self._cut(composite, [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))])

    def test_add_new_selector(self, composite, settings_module):
        receipt = self._cut(composite, [ModuleCut(settings_module.address, FacetCutAction.ADD, (SUPPORTS_INTERFACE,))])
        assert receipt.require_event("DiamondCut")["diamondCut"][0]["functionSelectors"] == [SUPPORTS_INTERFACE]
        assert composite.call("supportsInterface(bytes4)", "0x01ffc9a7") is False

    def test_replace_transfers_ownership(self, chain, composite):
        replacement = chain.deploy(SettingsModule())
        self._cut(composite, [ModuleCut(replacement.address, FacetCutAction.REPLACE, (GET_NAME,))])

        assert composite.facet_address(GET_NAME) == replacement.address
        assert len(composite.facet_addresses()) == 2
        assert composite.call("getName()") == "FXRP"

    def test_replace_with_same_module_rejected(self, composite, settings_module):
        with pytest.raises(CutError):
            self._cut(composite, [ModuleCut(settings_module.address, FacetCutAction.REPLACE, (GET_NAME,))])

    def test_replace_missing_rejected(self, chain, composite):
        replacement = chain.deploy(SettingsModule())
        with pytest.raises(CutError):
            self._cut(composite, [ModuleCut(replacement.address, FacetCutAction.REPLACE, (SUPPORTS_INTERFACE,))])

    def test_remove(self, composite):
        self._cut(composite, [ModuleCut(ZERO_ADDRESS, FacetCutAction.REMOVE, (GET_NAME,))])
        assert composite.facet_address(GET_NAME) == ZERO_ADDRESS
        with pytest.raises(FunctionNotFoundError):
            composite.call("getName()")

    def test_remove_requires_zero_address(self, composite, settings_module):
        with pytest.raises(CutError):
            self._cut(composite, [ModuleCut(settings_module.address, FacetCutAction.REMOVE, (GET_NAME,))])

    def test_remove_missing_rejected(self, composite):
        with pytest.raises(CutError):
            self._cut(composite, [ModuleCut(ZERO_ADDRESS, FacetCutAction.REMOVE, (SUPPORTS_INTERFACE,))])

    def test_batch_is_atomic(self, composite, settings_module):
        before = composite.facets()
        with pytest.raises(CutError):
            self._cut(composite, [
                ModuleCut(ZERO_ADDRESS, FacetCutAction.REMOVE, (GET_NAME,)),
                ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_LOT_SIZE,)),
            ])
        assert composite.facets() == before

    def test_only_governance(self, composite, settings_module):
        with pytest.raises(UnauthorizedAuthorityError):
            self._cut(
                composite,
                [ModuleCut(settings_module.address, FacetCutAction.ADD, (SUPPORTS_INTERFACE,))],
                sender=OUTSIDER,
            )

    def test_production_cut_uses_minimum_timelock(self, chain, settings_module):
        settings = GovernanceSettings(GOVERNANCE, timelock_seconds=60, executors=frozenset({EXECUTOR}))
        composite = CompositeInstance.assemble(
            chain,
            [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
            ZERO_ADDRESS, b"",
            settings=settings,
            initial_governance=GOVERNANCE,
            diamond_cut_min_timelock_seconds=7200,
        )
        composite.transact("switchToProductionMode()", sender=GOVERNANCE)

        receipt = self._cut(composite, [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_LOT_SIZE,))])
        event = receipt.require_event("GovernanceCallTimelocked")
        assert event["allowedAfterTimestamp"] == chain.latest() + 7200
        assert composite.facet_address(GET_LOT_SIZE) == ZERO_ADDRESS

        TimelockSimulator(chain, EXECUTOR).wait_for_timelock(receipt, composite)
        assert composite.facet_address(GET_LOT_SIZE) == settings_module.address

    def test_minimum_timelock_from_config(self, chain, settings_module):
        from diamondkit.config import get_config_manager

        get_config_manager().set("governance.diamond_cut_min_timelock_seconds", 100)
        settings = GovernanceSettings(GOVERNANCE, timelock_seconds=10, executors=frozenset({EXECUTOR}))
        composite = CompositeInstance.assemble(
            chain,
            [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
            ZERO_ADDRESS, b"",
            settings=settings,
            initial_governance=GOVERNANCE,
        )
        assert composite.timelock_seconds_for(function_fingerprint(DIAMOND_CUT_SIGNATURE)) == 100
        assert composite.timelock_seconds_for(SET_LOT_SIZE) == 10


# =============================================================================
# GOVERNANCE THROUGH MODULES
# =============================================================================

class TestModuleGovernanceCalls:
    """Governance calls on modules are gated by the composite's governance."""

    def test_deployment_phase_setter(self, composite):
        composite.transact("setLotSize(uint256)", 20, sender=GOVERNANCE)
        assert composite.call("getLotSize()") == 20

    def test_setter_requires_governance(self, composite):
        with pytest.raises(UnauthorizedAuthorityError):
            composite.transact("setLotSize(uint256)", 20, sender=OUTSIDER)

    def test_production_setter_is_deferred(self, chain, composite):
        composite.transact("switchToProductionMode()", sender=GOVERNANCE)
        receipt = composite.transact("setLotSize(uint256)", 20, sender=GOVERNANCE)
        assert composite.call("getLotSize()") == 10

        executed = TimelockSimulator(chain, EXECUTOR).wait_for_timelock(receipt, composite)
        assert executed.require_event("SettingChanged")["value"] == 20
        assert composite.call("getLotSize()") == 20

    def test_module_setter_called_directly_is_rejected(self, settings_module):
        from diamondkit.hardening import InvariantViolation

        with pytest.raises(InvariantViolation):
            settings_module.transact("setLotSize(uint256)", 20, sender=GOVERNANCE)


# =============================================================================
# CONTROLLER
# =============================================================================

class TestController:

    @pytest.fixture
    def controller(self, chain, governance_settings):
        return chain.deploy(CompositeController(governance_settings, GOVERNANCE))

    @pytest.fixture
    def attached_composite(self, chain, governance_settings, settings_module, controller):
        return CompositeInstance.assemble(
            chain,
            [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
            ZERO_ADDRESS, b"",
            settings=governance_settings,
            initial_governance=GOVERNANCE,
            controller=controller.address,
        )

    def test_add_attaches(self, controller, attached_composite):
        receipt = controller.transact("addCompositeInstance(address)", attached_composite.address, sender=GOVERNANCE)
        assert [e.name for e in receipt.events] == ["ControllerAttached", "CompositeInstanceAdded"]
        assert attached_composite.controller_attached()
        assert controller.call("getCompositeInstances()") == [attached_composite.address]

    def test_remove_detaches(self, controller, attached_composite):
        controller.transact("addCompositeInstance(address)", attached_composite.address, sender=GOVERNANCE)
        controller.transact("removeCompositeInstance(address)", attached_composite.address, sender=GOVERNANCE)
        assert not attached_composite.controller_attached()
        assert controller.composites() == []

    def test_add_is_timelocked_in_production(self, chain, controller, attached_composite):
        controller.transact("switchToProductionMode()", sender=GOVERNANCE)
        receipt = controller.transact("addCompositeInstance(address)", attached_composite.address, sender=GOVERNANCE)
        assert not attached_composite.controller_attached()

        TimelockSimulator(chain, EXECUTOR).wait_for_timelock(receipt, controller)
        assert attached_composite.controller_attached()
        assert controller.is_composite(attached_composite.address)

    def test_only_controller_can_attach(self, attached_composite):
        with pytest.raises(UnauthorizedAuthorityError):
            attached_composite.transact("attachController(bool)", True, sender=GOVERNANCE)

    def test_failed_attach_rolls_back_registry(self, chain, governance_settings, controller, settings_module):
        # composite bound to a different controller refuses the attach
        other = CompositeInstance.assemble(
            chain,
            [ModuleCut(settings_module.address, FacetCutAction.ADD, (GET_NAME,))],
            ZERO_ADDRESS, b"",
            settings=governance_settings,
            initial_governance=GOVERNANCE,
            controller=OUTSIDER,
        )
        with pytest.raises(UnauthorizedAuthorityError):
            controller.transact("addCompositeInstance(address)", other.address, sender=GOVERNANCE)
        assert controller.composites() == []
