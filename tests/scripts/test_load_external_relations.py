from __future__ import annotations

import pytest

from harvest_sync.config import HarvestConfig
from harvest_sync.integrations.harvest.registry import ExternalSourceRegistry
from harvest_sync.models.harvest import HarvestProject, HarvestTimeEntry, HarvestUser
from scripts import load_external_relations as mod


def test_parse_relations() -> None:
    assert mod.parse_relations("*") == "*"
    assert mod.parse_relations("user, project,,task") == ["user", "project", "task"]


def test_host_resources_only_lists_models_with_relations() -> None:
    assert mod.HOST_RESOURCES == ["contacts", "estimates", "invoices", "projects", "time_entries"]


def test_parse_args_requires_an_id() -> None:
    with pytest.raises(SystemExit):
        mod._parse_args(["--resource", "time_entries"])


def _registry() -> ExternalSourceRegistry:
    entry = HarvestTimeEntry.from_payload(
        {
            "id": 636709355,
            "hours": 2.0,
            "user": {"id": 1782959},
            "project": {"id": 14308069},
            "task": None,
            "client": None,
            "invoice": None,
        }
    )
    return ExternalSourceRegistry(
        {
            "time_entry": lambda external_id: [entry] if external_id == entry.external_id else [],
            "user": lambda external_id: [HarvestUser(external_id=external_id, first_name="Kim")],
            "project": lambda external_id: [],
        }
    )


def test_main_dry_run_reports_each_relation(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setattr(mod, "load_env", lambda: None)
    monkeypatch.setattr(
        mod,
        "load_harvest_config",
        lambda: HarvestConfig(account_id="12345", access_token="token-abc", uses_database=True),
    )
    monkeypatch.setattr(mod, "build_session", lambda config: object())
    monkeypatch.setattr(mod, "build_default_registry", lambda **_kwargs: _registry())

    def no_db():
        raise AssertionError("dry-run must not connect to Supabase")

    monkeypatch.setattr(mod, "create_supabase_admin_client", no_db)

    exit_code = mod.main(["--resource", "time_entries", "--id", "636709355", "--dry-run"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "user: fetched (user)" in out
    assert "project: not_found (project)" in out
    assert "task: skipped (missing_external_id)" in out
    assert "Done. hosts=1 failed=0" in out


def test_main_counts_missing_hosts_as_failures(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(mod, "load_env", lambda: None)
    monkeypatch.setattr(mod, "load_harvest_config", lambda: HarvestConfig(account_id="1", access_token="t"))
    monkeypatch.setattr(mod, "build_session", lambda config: object())
    monkeypatch.setattr(mod, "build_default_registry", lambda **_kwargs: _registry())

    exit_code = mod.main(["--resource", "time_entries", "--id", "1", "--dry-run"])

    assert exit_code == 1
    assert "NOT FOUND time_entries external_id=1" in capsys.readouterr().out


def test_main_reports_unregistered_sources(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    project = HarvestProject(external_id=5, external_client_id=9)
    monkeypatch.setattr(mod, "load_env", lambda: None)
    monkeypatch.setattr(mod, "load_harvest_config", lambda: HarvestConfig(account_id="1", access_token="t"))
    monkeypatch.setattr(mod, "build_session", lambda config: object())
    monkeypatch.setattr(
        mod,
        "build_default_registry",
        lambda **_kwargs: ExternalSourceRegistry({"project": lambda external_id: [project]}),
    )

    exit_code = mod.main(["--resource", "projects", "--id", "5", "--dry-run"])

    assert exit_code == 1
    assert "No external source is registered for relation 'client'" in capsys.readouterr().err
