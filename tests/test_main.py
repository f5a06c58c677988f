"""Tests for the commerce-agent CLI."""

from commerce_agent.config import settings
from commerce_agent.main import main


async def test_init_creates_database(tmp_path, capsys) -> None:
    database = tmp_path / "agent.db"

    code = await main(["init", "--database", str(database)])

    assert code == 0
    assert database.exists()
    assert "Database initialized" in capsys.readouterr().out


async def test_chat_without_api_key_exits_with_error(tmp_path, capsys, monkeypatch) -> None:
    monkeypatch.setattr(settings, "openrouter_api_key", None)

    code = await main(["chat", "--tenant-id", "shoe_store", "--database", str(tmp_path / "agent.db")])

    assert code == 1
    assert "Error: OPENROUTER_API_KEY is not set" in capsys.readouterr().out


async def test_stats_reports_tenant_scope(tmp_path, capsys) -> None:
    code = await main(["stats", "--tenant-id", "shoe_store", "--database", str(tmp_path / "agent.db")])

    output = capsys.readouterr().out
    assert code == 0
    assert "Scoped to tenant: True" in output
