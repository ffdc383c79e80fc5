"""Unit tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from chatlens.cli import app
from chatlens.config import get_settings
from chatlens.learning import get_default_store

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point the CLI at a file store inside tmp_path."""
    monkeypatch.setenv("CHATLENS_STORE_BACKEND", "file")
    monkeypatch.setenv("CHATLENS_STORE_PATH", str(tmp_path / "store"))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestAnalyzeCommand:
    """Tests for `chatlens analyze`."""

    def test_writes_json_result(self, cli_env, marked_conversation):
        source = cli_env / "chat.txt"
        source.write_text(marked_conversation, encoding="utf-8")
        output = cli_env / "out.json"

        result = runner.invoke(app, ["analyze", str(source), "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert "Result saved to" in result.output
        payload = json.loads(output.read_text(encoding="utf-8"))
        assert [m["role"] for m in payload["messages"]] == ["user", "ai", "user", "ai"]
        assert len(payload["semantic_groups"]) == 2

    def test_default_output_path(self, cli_env):
        source = cli_env / "chat.txt"
        source.write_text("User: hi\nAI: hello there", encoding="utf-8")

        result = runner.invoke(app, ["analyze", str(source), "--compact", "--no-store"])

        assert result.exit_code == 0, result.output
        assert (cli_env / "chat_analysis.json").exists()

    def test_multiple_files(self, cli_env, marked_conversation, gemini_paste):
        first = cli_env / "a.txt"
        second = cli_env / "b.txt"
        first.write_text(marked_conversation, encoding="utf-8")
        second.write_text(gemini_paste, encoding="utf-8")
        output = cli_env / "out.json"

        result = runner.invoke(app, ["analyze", str(first), str(second), "-o", str(output)])

        assert result.exit_code == 0, result.output
        payload = json.loads(output.read_text(encoding="utf-8"))
        assert [m["source_id"] for m in payload["messages"]] == [0, 0, 0, 0, 1, 1]

    def test_missing_file_rejected(self, cli_env):
        result = runner.invoke(app, ["analyze", str(cli_env / "absent.txt")])
        assert result.exit_code != 0


class TestLearningCommands:
    """Tests for corrections, weights and the store."""

    def test_correct_and_relearn(self, cli_env):
        result = runner.invoke(app, ["correct", "fix the login bug", "--to", "user", "--relearn"])

        assert result.exit_code == 0, result.output
        assert "Recorded" in result.output
        store = get_default_store()
        [record] = store.role_corrections()
        assert record.original_role.value == "ai"
        assert record.corrected_role.value == "user"
        assert set(store.weight_deltas()) == {"shortText", "hasImperativeForm"}

    def test_correct_rejects_unknown_role(self, cli_env):
        result = runner.invoke(app, ["correct", "hello", "--to", "robot"])
        assert result.exit_code == 1
        assert "unknown role" in result.output

    def test_relearn_without_corrections(self, cli_env):
        result = runner.invoke(app, ["relearn"])
        assert result.exit_code == 0
        assert "No learned weight deltas" in result.output

    def test_stats(self, cli_env):
        runner.invoke(app, ["correct", "ok", "--to", "ai"])
        result = runner.invoke(app, ["stats"])

        assert result.exit_code == 0
        assert "Role corrections" in result.output

    def test_clear(self, cli_env):
        runner.invoke(app, ["correct", "ok", "--to", "ai"])
        result = runner.invoke(app, ["clear", "--yes"])

        assert result.exit_code == 0
        assert get_default_store().stats().total_corrections == 0

    def test_clear_aborted(self, cli_env):
        runner.invoke(app, ["correct", "ok", "--to", "ai"])
        result = runner.invoke(app, ["clear"], input="n\n")

        assert result.exit_code != 0
        assert get_default_store().stats().total_corrections == 1


class TestTopicCommands:
    """Tests for `chatlens topics`."""

    def test_add_list_remove(self, cli_env):
        result = runner.invoke(app, ["topics", "add", "TERRAFORM", "tfstate", "hcl"])
        assert result.exit_code == 0
        assert "Saved topic" in result.output

        result = runner.invoke(app, ["topics", "list"])
        assert "TERRAFORM" in result.output

        result = runner.invoke(app, ["topics", "remove", "TERRAFORM"])
        assert result.exit_code == 0
        assert get_default_store().user_topics() == []

    def test_remove_missing(self, cli_env):
        result = runner.invoke(app, ["topics", "remove", "NOPE"])
        assert result.exit_code == 1

    def test_list_empty(self, cli_env):
        result = runner.invoke(app, ["topics", "list"])
        assert "No user topics" in result.output


class TestMiscCommands:
    """Tests for evaluate and info."""

    def test_evaluate(self, cli_env):
        fixtures = cli_env / "cases.json"
        fixtures.write_text(json.dumps([{
            "id": "tc01",
            "name": "inline",
            "raw_text": "User: hi\nAI: hello there",
            "expected_messages": [{"role": "user", "text": "hi"}, {"role": "ai", "text": "hello there"}],
            "expected_boundary_count": 2,
        }]), encoding="utf-8")

        result = runner.invoke(app, ["evaluate", str(fixtures)])

        assert result.exit_code == 0, result.output
        assert "passing" in result.output
        assert "1/1" in result.output

    def test_evaluate_bad_fixtures(self, cli_env):
        fixtures = cli_env / "cases.json"
        fixtures.write_text("not json", encoding="utf-8")

        result = runner.invoke(app, ["evaluate", str(fixtures)])
        assert result.exit_code == 1

    def test_info(self, cli_env):
        result = runner.invoke(app, ["info"])
        assert result.exit_code == 0
        assert "Store backend" in result.output
