"""
Unit tests for the versioning CLI.
"""

import copy
import json

import pytest

from apitize.versioning_server.config import PlannerConfig
from apitize.versioning_server.tools import VersioningCLI
from apitize.versioning_server.tools.versioning_cli import main
from tests.helpers import orders_v1


@pytest.fixture
def spec_files(tmp_path):
    """Write a baseline spec, a compatible change and a breaking change."""
    v1 = orders_v1()

    additive = copy.deepcopy(v1)
    additive["info"]["version"] = "1.1.0"
    additive["paths"]["/customers"] = {"get": {"responses": {"200": {}}}}

    breaking = copy.deepcopy(v1)
    breaking["info"]["version"] = "2.0.0"
    del breaking["paths"]["/orders/{id}"]

    paths = {}
    for name, document in (("v1", v1), ("additive", additive), ("breaking", breaking)):
        path = tmp_path / f"{name}.json"
        path.write_text(json.dumps(document))
        paths[name] = str(path)

    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"version": "1.0.0", "specification": v1}))
    paths["wrapped"] = str(wrapped)
    return paths


class TestVersioningCLI:
    """Tests for the VersioningCLI class."""

    def test_compare_labels_versions(self, spec_files):
        report = VersioningCLI().compare(spec_files["v1"], spec_files["breaking"])

        assert report.version1 == "1.0.0"
        assert report.version2 == "2.0.0"
        assert not report.compatible

    def test_load_wrapped_payload(self, spec_files):
        spec = VersioningCLI().load_specification(spec_files["wrapped"])
        assert spec.info.version == "1.0.0"

    def test_classify(self):
        assert VersioningCLI().classify("1.4.2", "2.0.0") == "major"

    def test_plan_uses_config(self):
        cli = VersioningCLI(PlannerConfig(rollback_error_rate_pct=1.0))
        plan = cli.plan("immediate")

        assert [s["id"] for s in plan["steps"]] == ["prep-1", "deploy-1", "verify-1", "cleanup-1"]
        assert plan["rollback_plan"]["conditions"][0] == "error-rate > 1%"


class TestMain:
    """Tests for the command line entry point."""

    def test_compare_compatible_exits_zero(self, spec_files, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["compare", "--old", spec_files["v1"], "--new", spec_files["additive"]])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("Compatible (score 100)")

    def test_compare_breaking_exits_one(self, spec_files, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["compare", "--old", spec_files["v1"], "--new", spec_files["breaking"]])

        assert exc_info.value.code == 1
        out = capsys.readouterr().out
        assert "breaking change(s)" in out
        assert "removed-endpoint" in out

    def test_compare_malformed_spec_exits_two(self, spec_files, tmp_path, capsys):
        malformed = tmp_path / "malformed.json"
        malformed.write_text(json.dumps({"paths": {"/orders": {"get": "oops"}}}))

        with pytest.raises(SystemExit) as exc_info:
            main(["compare", "--old", spec_files["v1"], "--new", str(malformed)])

        assert exc_info.value.code == 2
        assert "Invalid specification" in capsys.readouterr().err

    def test_compare_json(self, spec_files, capsys):
        with pytest.raises(SystemExit):
            main([
                "compare",
                "--old", spec_files["v1"],
                "--new", spec_files["breaking"],
                "--format", "json",
            ])

        report = json.loads(capsys.readouterr().out)
        assert report["compatible"] is False
        assert report["breaking_changes"][0]["type"] == "removed-endpoint"

    def test_classify(self, capsys):
        main(["classify", "1.0.0", "1.1.0"])
        assert capsys.readouterr().out.strip() == "minor"

    def test_classify_invalid(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["classify", "v1", "1.1.0"])

        assert exc_info.value.code == 2
        assert "Invalid version" in capsys.readouterr().err

    def test_plan_text(self, capsys):
        main(["plan", "--strategy", "canary"])

        out = capsys.readouterr().out
        assert "Strategy: canary" in out
        assert "Deploy Canary (10%)" in out
        assert "error-rate > 5%" in out

    def test_plan_json(self, capsys):
        main(["plan", "-s", "rolling", "--format", "json"])

        plan = json.loads(capsys.readouterr().out)
        assert plan["strategy"] == "rolling"
        assert plan["steps"][-1]["id"] == "cleanup-1"

    def test_plan_unknown_strategy(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["plan", "--strategy", "big-bang"])

        assert exc_info.value.code == 2
        assert capsys.readouterr().err
