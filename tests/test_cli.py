"""Tests for the sitemapper CLI commands.

Mocking strategy:
- ``cli.context.settings.cli_config_dir`` points at ``tmp_path`` so the
  active-sitemap file never touches the real home directory.
- ``cli.session.make_services`` returns the in-memory fakes from
  ``conftest`` instead of the REST services.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from cli.context import CliContext, load_context, save_context
from cli.main import app
from cli.session import Services
from sitemapper.models import LinkStatus

from tests.conftest import make_task

runner = CliRunner()


@pytest.fixture(autouse=True)
def temp_context_dir(tmp_path, monkeypatch):
    context_dir = tmp_path / ".sitemapper_cli"
    monkeypatch.setattr("cli.context.settings.cli_config_dir", context_dir)
    return context_dir


@pytest.fixture
def fakes(monkeypatch, node_service, link_service, generation_service) -> Services:
    services = Services(nodes=node_service, links=link_service, generation=generation_service)
    monkeypatch.setattr("cli.session.make_services", lambda api: services)
    return services


@pytest.fixture
def active(fakes: Services) -> Services:
    save_context(CliContext(active_sitemap_id=1, active_site_id=1))
    return fakes


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class TestContext:
    def test_use_saves_sitemap_and_site(self) -> None:
        result = runner.invoke(app, ["use", "1", "--site", "4"])
        assert result.exit_code == 0
        assert "Active sitemap: 1 (site 4)" in result.stdout
        assert load_context() == CliContext(active_sitemap_id=1, active_site_id=4)

    def test_switching_sitemap_forgets_site(self) -> None:
        save_context(CliContext(active_sitemap_id=1, active_site_id=4))
        runner.invoke(app, ["use", "2"])
        assert load_context() == CliContext(active_sitemap_id=2, active_site_id=None)

    def test_corrupt_context_file_gives_defaults(self, temp_context_dir) -> None:
        temp_context_dir.mkdir(parents=True)
        (temp_context_dir / "context.json").write_text("{broken", encoding="utf-8")
        assert load_context() == CliContext()

    def test_status(self) -> None:
        save_context(CliContext(active_sitemap_id=3))
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Sitemap : 3" in result.stdout
        assert "Site    : (none)" in result.stdout

    def test_commands_require_active_sitemap(self, fakes: Services) -> None:
        result = runner.invoke(app, ["tree", "show"])
        assert result.exit_code == 1
        assert "No active sitemap selected" in result.stdout


# ---------------------------------------------------------------------------
# tree
# ---------------------------------------------------------------------------

class TestTree:
    def test_show_tree(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "show"])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0].startswith("🏠 Home")
        assert any(line.startswith("├── ") and "About" in line for line in lines)
        assert any(line.startswith("│   └── ") and "Careers" in line for line in lines)

    def test_show_tree_with_link_counts(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "show", "--links"])
        assert result.exit_code == 0
        assert "About  /about  [2]  ↗1 ↙0" in result.stdout

    def test_show_list(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "show", "--format", "list"])
        assert result.exit_code == 0
        assert "/about/team" in result.stdout

    def test_show_json(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "show", "--format", "json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data) == 6
        assert {n["title"] for n in data} >= {"Home", "About", "First post"}

    def test_unknown_format(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "show", "--format", "xml"])
        assert result.exit_code == 1

    def test_move(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "move", "4", "--parent", "5"])
        assert result.exit_code == 0
        assert "Moved 'Careers' under 5" in result.stdout
        assert active.nodes.nodes[4].parent_id == 5

    def test_move_into_own_subtree_fails(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "move", "2", "--parent", "3"])
        assert result.exit_code == 1
        assert "❌ Error:" in result.stdout
        assert active.nodes.count("move_node") == 0

    def test_delete_removes_listed_subtree_and_skips_root(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "delete", "1", "2", "3"])
        assert result.exit_code == 0
        assert "Deleted 2 page(s): 2, 3" in result.stdout
        assert "Skipped: 1" in result.stdout
        assert active.nodes.nodes[4].parent_id == 1

    def test_layout_saves_positions(self, active: Services) -> None:
        result = runner.invoke(app, ["tree", "layout"])
        assert result.exit_code == 0
        assert "Laid out" in result.stdout


# ---------------------------------------------------------------------------
# links
# ---------------------------------------------------------------------------

class TestLinks:
    def test_list(self, active: Services) -> None:
        result = runner.invoke(app, ["links", "list"])
        assert result.exit_code == 0
        assert "Plan 1: 2 link(s)" in result.stdout
        assert "About → Blog" in result.stdout

    def test_list_by_status(self, active: Services) -> None:
        result = runner.invoke(app, ["links", "list", "--status", "approved"])
        assert "Plan 1: 1 link(s)" in result.stdout
        assert "Team → First post" in result.stdout

    def test_requires_site(self, fakes: Services) -> None:
        save_context(CliContext(active_sitemap_id=1))
        result = runner.invoke(app, ["links", "list"])
        assert result.exit_code == 1
        assert "No site selected" in result.stdout

    def test_approve_and_reject(self, active: Services) -> None:
        result = runner.invoke(app, ["links", "approve", "1"])
        assert result.exit_code == 0
        assert active.links.links[1].status == LinkStatus.APPROVED

        result = runner.invoke(app, ["links", "reject", "2"])
        assert result.exit_code == 1
        assert "❌ Error:" in result.stdout
        assert active.links.count("reject_link") == 0

    def test_add_self_link_fails(self, active: Services) -> None:
        result = runner.invoke(app, ["links", "add", "3", "3"])
        assert result.exit_code == 1
        assert "cannot link to itself" in result.stdout

    def test_apply_approved(self, active: Services) -> None:
        result = runner.invoke(app, ["links", "apply", "--provider", "2"])
        assert result.exit_code == 0
        assert "Applied 1 link(s), 0 failed." in result.stdout
        assert ("apply_links", 1, [2], 2) in active.links.calls


# ---------------------------------------------------------------------------
# tasks
# ---------------------------------------------------------------------------

class TestTasks:
    def test_list_without_task(self, active: Services) -> None:
        result = runner.invoke(app, ["tasks", "list"])
        assert result.exit_code == 0
        assert "No active generation task." in result.stdout

    def test_list_running_task(self, active: Services) -> None:
        active.generation.tasks["t-1"] = make_task(processed_nodes=3)
        result = runner.invoke(app, ["tasks", "list"])
        assert result.exit_code == 0
        assert "Task t-1  [running]" in result.stdout
        assert "3/10" in result.stdout

    def test_pause(self, active: Services) -> None:
        active.generation.tasks["t-1"] = make_task()
        result = runner.invoke(app, ["tasks", "pause"])
        assert result.exit_code == 0
        assert "Paused task t-1" in result.stdout
        assert active.generation.count("pause_task") == 1

    def test_resume_running_task_fails(self, active: Services) -> None:
        active.generation.tasks["t-1"] = make_task()
        result = runner.invoke(app, ["tasks", "resume"])
        assert result.exit_code == 1
        assert active.generation.count("resume_task") == 0

    def test_pause_without_task(self, active: Services) -> None:
        result = runner.invoke(app, ["tasks", "pause"])
        assert result.exit_code == 1
        assert "No active generation task" in result.stdout

    def test_watch_until_finished(self, active: Services) -> None:
        active.generation.tasks["t-1"] = make_task(node_ids=[1, 2])
        active.generation.stream = [
            ("pagegeneration.node.completed", {"TaskID": "t-1", "NodeID": 1, "Title": "Home"}),
            ("pagegeneration.task.completed", {"TaskID": "t-1", "ProcessedNodes": 2, "TotalNodes": 2}),
            ("pagegeneration.node.completed", {"TaskID": "t-1", "NodeID": 2}),
        ]
        result = runner.invoke(app, ["tasks", "watch"])
        assert result.exit_code == 0
        assert "[completed]" in result.stdout
        assert "2/2" in result.stdout
