from __future__ import annotations

import json
from datetime import datetime

from typer.testing import CliRunner

from fomo import cli, config, database
from fomo.crud import create_event
from fomo.responses import append_response, history_for

runner = CliRunner()


def _seed() -> None:
    session = database.SessionLocal()
    try:
        start = datetime(2024, 5, 15, 18, 0)
        create_event(session, event_id="ev1", title="Jazz", start_time=start, tags=["jazz", "live"])
        create_event(session, event_id="ev2", title="Blues", start_time=start, tags=["jazz"])
        append_response(session, user_id="visitor_1", event_id="ev1", response="interested")
        append_response(session, user_id="visitor_1", event_id="ev1", response="going")
        session.commit()
    finally:
        session.close()


def test_no_command_shows_help():
    result = runner.invoke(cli.app, [])
    assert result.exit_code == 0
    assert "migrate-responses" in result.output


def test_tags_lists_usage():
    result = runner.invoke(cli.app, ["tags"])
    assert result.exit_code == 0
    assert "No tags yet." in result.output

    _seed()
    result = runner.invoke(cli.app, ["tags", "--limit", "1"])
    assert result.exit_code == 0
    assert result.output.strip() == "jazz\t2"


def test_current_response_and_migration():
    _seed()

    result = runner.invoke(cli.app, ["current-response", "visitor_1", "ev1"])
    assert result.output.strip() == "going"
    result = runner.invoke(cli.app, ["current-response", "user_1", "ev1"])
    assert result.output.strip() == "none"

    result = runner.invoke(cli.app, ["migrate-responses", "visitor_1", "user_1"])
    assert result.exit_code == 0
    assert "Moved 2 response entries from visitor_1 to user_1" in result.output

    session = database.SessionLocal()
    try:
        assert history_for(session, user_id="visitor_1") == []
        assert len(history_for(session, user_id="user_1")) == 2
    finally:
        session.close()


def test_migrate_responses_rejects_same_user():
    result = runner.invoke(cli.app, ["migrate-responses", "user_1", "user_1"])
    assert result.exit_code == 1


def test_config_updates_file(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "settings", config.settings)
    config_path = tmp_path / "fomo.toml"

    result = runner.invoke(
        cli.app,
        [
            "config",
            "--config-path",
            str(config_path),
            "--tag-facet-limit",
            "6",
            "--exclude-past-events",
            "--show",
        ],
    )

    assert result.exit_code == 0
    assert f"Updated configuration in {config_path}" in result.output
    text = config_path.read_text(encoding="utf-8")
    assert "tag_facet_limit = 6" in text
    assert "include_past_events = false" in text
    effective = json.loads(result.output.split("\n", 1)[1])
    assert effective["tag_facet_limit"] == 6
    assert effective["config_path"] == str(config_path)
