"""
DIAMONDKIT CLI Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json

import pytest

from diamondkit.cli import OutputFormat, format_output, main


def _run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


class TestFormatOutput:

    def test_table(self):
        rows = [{"name": "transfer", "fingerprint": "0xa9059cbb"}]
        lines = format_output(rows, OutputFormat.TABLE).splitlines()
        assert lines[0].split(" | ") == ["name    ", "fingerprint"]
        assert lines[2].startswith("transfer")

    def test_dict_as_table(self):
        assert format_output({"a": 1}, OutputFormat.TABLE) == "a: 1"

    def test_yaml(self):
        assert format_output({"a": 1}, OutputFormat.YAML).strip() == "a: 1"


class TestSelectorsCommand:

    def test_abi_file(self, capsys, manifest_files):
        code, out, _ = _run(capsys, "selectors", str(manifest_files["abi"]))
        assert code == 0
        rows = json.loads(out)
        assert [r["name"] for r in rows] == ["createAgent", "destroyAgent"]
        assert all(r["contract"] == "IAgents" for r in rows)

    def test_exclude(self, capsys, manifest_files):
        code, out, _ = _run(
            capsys, "selectors", str(manifest_files["abi"]), "--exclude", "destroyAgent(address)"
        )
        assert code == 0
        assert [r["name"] for r in json.loads(out)] == ["createAgent"]

    def test_table_format(self, capsys, manifest_files):
        code, out, _ = _run(capsys, "--format", "table", "selectors", str(manifest_files["artifact"]))
        assert code == 0
        assert out.splitlines()[0].startswith("fingerprint")
        assert "AgentsModule" in out

    def test_missing_file(self, capsys, tmp_path):
        code, out, err = _run(capsys, "selectors", str(tmp_path / "missing.json"))
        assert code == 1
        assert out == ""
        assert "Error:" in err

    def test_quiet_suppresses_error_message(self, capsys, tmp_path):
        code, _, err = _run(capsys, "--quiet", "selectors", str(tmp_path / "missing.json"))
        assert code == 1
        assert "Error:" not in err


class TestManifestCommands:

    def test_plan(self, capsys, manifest_files):
        code, out, _ = _run(capsys, "plan", str(manifest_files["manifest"]))
        assert code == 0
        plan = json.loads(out)
        assert plan["required"] == 5
        assert [c["module"] for c in plan["cuts"]] == ["TokenModule", "AgentsModule"]
        assert plan["cuts"][0]["functions"] == ["totalSupply", "balanceOf", "transfer"]
        assert plan["cuts"][0]["action"] == 0

    def test_verify_complete(self, capsys, manifest_files):
        code, out, _ = _run(capsys, "verify", str(manifest_files["manifest"]))
        assert code == 0
        report = json.loads(out)
        assert report["complete"] is True
        assert report["required"] == 5

    def test_verify_gap(self, capsys, manifest_files):
        code, out, err = _run(capsys, "verify", str(manifest_files["gap"]))
        assert code == 1
        assert json.loads(out)["missing"][0]["name"] == "transfer"
        assert "Deployed modules are missing methods transfer" in err


class TestConfigCommands:

    def test_get(self, capsys):
        code, out, _ = _run(capsys, "config", "get", "governance.timelock_seconds")
        assert code == 0
        assert json.loads(out) == {"path": "governance.timelock_seconds", "value": 3600}

    def test_set_coerces_value(self, capsys):
        code, out, _ = _run(capsys, "config", "set", "governance.timelock_seconds", "60")
        assert code == 0
        assert json.loads(out)["value"] == 60

    def test_unknown_path(self, capsys):
        code, _, err = _run(capsys, "config", "get", "governance.nope")
        assert code == 1
        assert "Invalid config path" in err

    def test_show_and_schema(self, capsys):
        _, out, _ = _run(capsys, "config", "show")
        assert json.loads(out)["assembly"]["verify_coverage"] is True

        _, out, _ = _run(capsys, "config", "schema")
        schema = json.loads(out)
        timelock = schema["properties"]["governance"]["properties"]["timelock_seconds"]
        assert timelock["env_var"] == "DIAMONDKIT_GOVERNANCE_TIMELOCK"
        assert timelock["type"] == "integer"

    def test_validate(self, capsys, monkeypatch):
        code, out, _ = _run(capsys, "config", "validate")
        assert code == 0
        assert json.loads(out)["valid"] is True

        monkeypatch.setenv("DIAMONDKIT_LOG_LEVEL", "chatty")
        code, out, _ = _run(capsys, "config", "validate")
        assert code == 1
        assert json.loads(out)["errors"]

    def test_config_file(self, capsys, tmp_path):
        path = tmp_path / "diamondkit.yaml"
        path.write_text("governance:\n  timelock_seconds: 120\n")
        code, out, _ = _run(capsys, "--config", str(path), "config", "get", "governance.timelock_seconds")
        assert code == 0
        assert json.loads(out)["value"] == 120


class TestEntryPoint:

    def test_no_command_prints_help(self, capsys):
        code, out, _ = _run(capsys)
        assert code == 0
        assert "usage: diamondkit" in out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "diamondkit" in capsys.readouterr().out
