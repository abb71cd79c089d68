import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import diamondkit`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from diamondkit.config import get_config_manager  # noqa: E402


GOVERNANCE = "0x" + "11" * 20
EXECUTOR = "0x" + "22" * 20
OUTSIDER = "0x" + "33" * 20
DEPLOYER = "0x" + "44" * 20


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "scenario: end-to-end assembly scenarios",
    )


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test starts from default configuration and no DIAMONDKIT_* overrides."""
    for key in list(os.environ):
        if key.startswith("DIAMONDKIT_"):
            monkeypatch.delenv(key, raising=False)
    get_config_manager().reset()
    yield
    get_config_manager().reset()


@pytest.fixture
def chain():
    from diamondkit.chain import SimulatedChain
    return SimulatedChain(start_timestamp=1_700_000_000)


@pytest.fixture
def settings():
    from diamondkit.governance import GovernanceSettings
    return GovernanceSettings(
        governance_address=GOVERNANCE,
        timelock_seconds=3600,
        executors=frozenset({EXECUTOR}),
    )


@pytest.fixture
def timelock(chain):
    from diamondkit.timelock import TimelockSimulator
    return TimelockSimulator(chain, EXECUTOR)


_AGENTS_ABI = [
    {"type": "function", "name": "createAgent", "inputs": [{"name": "owner", "type": "address"}]},
    {"type": "function", "name": "destroyAgent", "inputs": [{"name": "agent", "type": "address"}]},
    {"type": "event", "name": "AgentCreated", "inputs": [{"name": "agent", "type": "address"}]},
]

_MANIFEST = """\
governance: "{governance}"
executor: "{executor}"
timelock_seconds: 60
interfaces:
  - name: IToken
    functions:
      - "totalSupply()"
      - "balanceOf(address)"
      - "transfer(address,uint)"
  - abi: abi/IAgents.json
modules:
  - name: TokenModule
    functions:
      - "totalSupply()"
      - "balanceOf(address)"
      - "transfer(address,uint256)"
      - "supportsInterface(bytes4)"
  - abi: artifacts/AgentsModule.json
initializer:
  name: TokenInit
  call:
    signature: "init(string,uint256)"
    args: ["FXRP", 10]
"""


@pytest.fixture
def manifest_files(tmp_path):
    """A manifest with inline and file-based interfaces, plus a broken variant."""
    import json

    (tmp_path / "abi").mkdir()
    (tmp_path / "artifacts").mkdir()
    (tmp_path / "abi" / "IAgents.json").write_text(json.dumps(_AGENTS_ABI))
    (tmp_path / "artifacts" / "AgentsModule.json").write_text(
        json.dumps({"contractName": "AgentsModule", "abi": _AGENTS_ABI})
    )

    manifest = tmp_path / "diamond.yaml"
    manifest.write_text(_MANIFEST.format(governance=GOVERNANCE, executor=EXECUTOR))

    # TokenModule no longer exposes transfer
    gap = tmp_path / "gap.yaml"
    gap.write_text(
        _MANIFEST.format(governance=GOVERNANCE, executor=EXECUTOR)
        .replace('      - "transfer(address,uint256)"\n', "")
    )

    return {
        "root": tmp_path,
        "manifest": manifest,
        "gap": gap,
        "abi": tmp_path / "abi" / "IAgents.json",
        "artifact": tmp_path / "artifacts" / "AgentsModule.json",
    }
