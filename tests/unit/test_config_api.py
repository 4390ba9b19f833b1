"""Tests for the document-level convenience API (deploy_orchestrator.config)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

import deploy_orchestrator.config as api
from deploy_orchestrator.config import ConfigError
from deploy_orchestrator.engine.errors import SpecValidationError, UnknownResourceTypeError
from deploy_orchestrator.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from deploy_orchestrator.config.schema import Config

_DOC = """\
target: dev
parameters:
  Greeting:
    default: hello
resources:
  Bucket:
    type: Null::Resource
    properties:
      outputs:
        name: data-bucket
  Notes:
    type: Local::File
    properties:
      path: out/notes.txt
      content: !Join [" ", [!Ref Greeting, !GetAtt Bucket.name]]
outputs:
  NotesPath: !GetAtt Notes.path
"""

_ZONES_DOC = """\
target: dev
parameters:
  Zones:
    type: CommaDelimitedList
    default: eu-1a,eu-1b
resources:
  Network:
    type: Null::Resource
    properties:
      outputs:
        zones: !Ref Zones
  Zone:
    type: Local::File
    properties:
      path: zone.txt
      content: !Select [1, !GetAtt Network.zones]
outputs:
  FirstZone: !Select [0, !Ref Zones]
"""


class TestEngineFromConfig:
    def test_builds_engine_for_target(self, make_config: Callable[..., Config]) -> None:
        engine = api.engine_from_config(make_config(_DOC))
        assert engine.target == "dev"
        assert engine.registry.types()[:2] == ["Local::File", "Null::Resource"]

    def test_state_path_next_to_document(
        self, tmp_path: Path, make_config: Callable[..., Config]
    ) -> None:
        engine = api.engine_from_config(make_config(_DOC))
        assert engine.store.path == tmp_path / ".deploy-state.json"

    def test_plugin_error_becomes_config_error(
        self, make_config: Callable[..., Config]
    ) -> None:
        config = make_config("target: t\nproviders: [missing.module:factory]\n")
        with pytest.raises(ConfigError, match="not found"):
            api.engine_from_config(config)


class TestLifecycle:
    def test_plan_apply_state_destroy(
        self, tmp_path: Path, make_config: Callable[..., Config]
    ) -> None:
        config = make_config(_DOC)

        plan = api.plan(config)
        assert [r.key for r in plan.changes.records] == ["create:Bucket", "create:Notes"]

        result = api.apply(plan, config)
        assert result.succeeded
        notes = tmp_path / "out" / "notes.txt"
        assert notes.read_text() == "hello data-bucket"
        assert result.outputs == {"NotesPath": str(notes.resolve())}

        state = api.state(config)
        assert sorted(state.resources) == ["Bucket", "Notes"]
        assert state.outputs == result.outputs

        again = api.plan(config)
        assert all(r.action == Action.NOOP for r in again.changes.records)

        destroyed = api.destroy(config)
        assert destroyed.succeeded
        assert not notes.exists()
        assert api.state(config).resources == {}

    def test_parameters_flow_through(
        self, tmp_path: Path, make_config: Callable[..., Config]
    ) -> None:
        config = make_config(_DOC)
        result = api.plan_and_apply(config, parameters={"Greeting": "hi"})
        assert result.succeeded
        assert (tmp_path / "out" / "notes.txt").read_text() == "hi data-bucket"

    def test_validate_does_not_touch_state(
        self, tmp_path: Path, make_config: Callable[..., Config]
    ) -> None:
        graph = api.validate(make_config(_DOC))
        assert graph.topological_order() == ["Bucket", "Notes"]
        assert not (tmp_path / ".deploy-state.json").exists()

    def test_select_over_list_output(
        self, tmp_path: Path, make_config: Callable[..., Config]
    ) -> None:
        result = api.plan_and_apply(make_config(_ZONES_DOC))

        assert result.succeeded
        assert (tmp_path / "zone.txt").read_text() == "eu-1b"
        assert result.outputs == {"FirstZone": "eu-1a"}

    def test_validate_unknown_type(self, make_config: Callable[..., Config]) -> None:
        config = make_config("target: t\nresources:\n  A:\n    type: Acme::Nope\n")
        with pytest.raises(UnknownResourceTypeError):
            api.validate(config)

    def test_get_att_without_attribute(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "target: t\nresources:\n  A:\n    type: Null::Resource\n"
            "  B:\n    type: Null::Resource\n"
            "    properties:\n      outputs:\n        a: !GetAtt A\n"
        )
        with pytest.raises(SpecValidationError, match="B: Fn::GetAtt"):
            api.validate(config)


class TestLoad:
    def test_load_returns_config(self, make_config: Callable[..., Config]) -> None:
        config = make_config(_DOC)
        assert config.target == "dev"

    def test_dotenv_from_config_dir_not_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        cfg_dir = tmp_path / "project"
        cfg_dir.mkdir()
        (cfg_dir / "deploy.yaml").write_text("resources: {}\n")
        (cfg_dir / ".env").write_text("DEPLOY_TARGET=from-project\n")
        other = tmp_path / "elsewhere"
        other.mkdir()
        (other / ".env").write_text("DEPLOY_TARGET=wrong\n")
        monkeypatch.chdir(other)

        assert api.load(cfg_dir / "deploy.yaml").target == "from-project"

    def test_dotenv_with_bom(self, tmp_path: Path) -> None:
        (tmp_path / "deploy.yaml").write_text("resources: {}\n")
        (tmp_path / ".env").write_bytes(b"\xef\xbb\xbfDEPLOY_TARGET=bom\n")
        assert api.load(tmp_path / "deploy.yaml").target == "bom"
