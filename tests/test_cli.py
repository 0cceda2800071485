"""Tests for the featuregate CLI."""

import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import ADMIN, MEMBER
from featuregate.cli import (
    Available,
    FeatureCreate,
    FeatureList,
    FeatureToggle,
    FeatureUpdate,
    FlagList,
    FlagRemove,
    FlagSet,
    Hooks,
    Install,
    dispatch,
    entry_point,
    install_config,
    main,
    render_result,
    show_hooks,
)
from featuregate.config import FeatureGateConfig
from featuregate.results import OperationResult


class TestEntryPoint:
    """Test argv rewriting for grouped subcommands."""

    @pytest.mark.parametrize(
        "argv, expected",
        [
            (["feature", "create", "beta"], ["feature-create", "beta"]),
            (["--as-user", "u1", "flag", "set", "o1", "f1"], ["--as-user", "u1", "flag-set", "o1", "f1"]),
            (["feature", "--help"], ["feature", "--help"]),
            (["hooks", "--json"], ["hooks", "--json"]),
        ],
    )
    def test_rewrite(self, argv, expected):
        with patch.object(sys, "argv", ["featuregate", *argv]), patch("featuregate.cli.tyro.cli") as cli:
            entry_point()
            assert sys.argv == ["featuregate", *expected]
        cli.assert_called_once_with(main)


class TestDispatch:
    """Test commands against a registry over the memory store."""

    @pytest.mark.asyncio
    async def test_feature_and_flag_commands(self, registry):
        created = await dispatch(registry, FeatureCreate(name="beta", display_name="Beta", inactive=True), ADMIN)
        assert created.ok
        assert created.data.active is False
        feature_id = created.data.id

        blocked = await dispatch(registry, FlagSet(principal_id="org-1", feature_id=feature_id), ADMIN)
        assert blocked.status == 400

        assert (await dispatch(registry, FeatureToggle(feature_id=feature_id, state="on"), ADMIN)).data.active
        flag = await dispatch(registry, FlagSet(principal_id="org-1", feature_id=feature_id), ADMIN)
        assert flag.data.enabled is True

        listed = await dispatch(registry, FlagList(principal_id="org-1"), MEMBER)
        assert [f.id for f in listed.data] == [flag.data.id]
        assert [f.id for f in (await dispatch(registry, Available(), MEMBER)).data] == [flag.data.id]

        removed = await dispatch(registry, FlagRemove(principal_id="org-1", feature_id=feature_id), ADMIN)
        assert removed.data == {"success": True}

    @pytest.mark.asyncio
    async def test_update_sends_only_given_fields(self, registry):
        created = await dispatch(registry, FeatureCreate(name="beta", display_name="Beta"), ADMIN)

        updated = await dispatch(registry, FeatureUpdate(feature_id=created.data.id, description="x"), ADMIN)

        assert updated.data.description == "x"
        assert updated.data.display_name == "Beta"
        assert updated.data.active is True

    @pytest.mark.asyncio
    async def test_without_user(self, registry):
        result = await dispatch(registry, FeatureList(), None)
        assert result.status == 401


class TestRenderResult:
    """Test output formatting."""

    def test_json(self, capsys):
        render_result(OperationResult.success({"success": True}), as_json=True)
        assert json.loads(capsys.readouterr().out) == {"success": True}

    def test_table(self, capsys):
        render_result(OperationResult.success([{"id": "f1", "name": "beta", "displayName": "Beta", "active": True}]))
        out = capsys.readouterr().out
        assert "beta" in out
        assert "1 row(s)" in out

    def test_empty(self, capsys):
        render_result(OperationResult.success([]))
        assert "No results" in capsys.readouterr().out

    def test_error_exits(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            render_result(OperationResult.failure("Feature not found", 404))
        assert exc_info.value.code == 1
        assert "Feature not found" in capsys.readouterr().err


class TestInstall:
    """Test config installation."""

    def test_install(self, tmp_path: Path):
        install_config(tmp_path / "conf")
        installed = (tmp_path / "conf" / "featuregate.yaml").read_text()
        assert "featuregate:" in installed
        assert FeatureGateConfig.from_yaml(tmp_path / "conf" / "featuregate.yaml").principal == "organization"

    def test_install_refuses_overwrite(self, tmp_path: Path):
        (tmp_path / "featuregate.yaml").write_text("featuregate: {}\n")
        with pytest.raises(SystemExit):
            install_config(tmp_path)
        install_config(tmp_path, force=True)
        assert "hooks:" in (tmp_path / "featuregate.yaml").read_text()

    def test_main_install(self, tmp_path: Path):
        main(Install(), config_dir=tmp_path)
        assert (tmp_path / "featuregate.yaml").exists()


class TestHooksCommand:
    """Test the hooks command."""

    def test_show_hooks_json(self, capsys):
        config = FeatureGateConfig(hooks={"createFeature": {"before": "featuregate.pipeline.hooks.normalize_feature_name"}})
        show_hooks(config, as_json=True)
        data = json.loads(capsys.readouterr().out)
        assert data == {
            "createFeature": {
                "before": "featuregate.pipeline.hooks.normalize_name.normalize_feature_name",
                "after": None,
            }
        }

    def test_main_hooks_from_template(self, tmp_path: Path, capsys):
        install_config(tmp_path)
        capsys.readouterr()
        main(Hooks(json=True), config_dir=tmp_path)
        data = json.loads(capsys.readouterr().out)
        assert data["createFeature"]["before"].endswith("normalize_feature_name")
        assert all(entry["after"].endswith("audit_log") for entry in data.values())

    def test_no_database_url(self, tmp_path: Path):
        with patch.dict("os.environ", {}, clear=True), pytest.raises(SystemExit):
            main(FeatureList(), config_dir=tmp_path, as_user="admin-1")
