"""Pytest configuration and fixtures."""

import pytest

from chatlens.config import Settings
from chatlens.learning import CorrectionStore, InMemoryBackend


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with an in-memory store and no .env lookups."""
    return Settings(_env_file=None, store_backend="memory", store_path=tmp_path)


@pytest.fixture
def memory_store() -> CorrectionStore:
    """Empty correction store backed by a dictionary."""
    return CorrectionStore(backend=InMemoryBackend())


@pytest.fixture
def marked_conversation() -> str:
    """Conversation with inline role markers on every turn."""
    return (
        "User: How do I undo my last git commit?\n"
        "\n"
        "AI: Run git reset --soft HEAD~1 to undo the last commit and keep your changes staged.\n"
        "\n"
        "User: How can I list running docker containers?\n"
        "\n"
        "AI: Use docker ps to show running containers, or docker ps -a to include stopped ones."
    )


@pytest.fixture
def gemini_paste() -> str:
    """Gemini web UI paste with standalone markers and UI chrome."""
    return (
        "あなたのプロンプト\n"
        "Reactのstateが更新されないのはなぜですか？\n"
        "\n"
        "Gemini の回答\n"
        "Reactのstateが更新されない主な原因は、stateを直接変更していることです。\n"
        "setStateに新しいオブジェクトを渡してください。\n"
        "\n"
        "コピー\n"
        "Good response\n"
    )


@pytest.fixture
def unmarked_conversation() -> str:
    """Conversation without any role markers."""
    return (
        "fix the login bug\n"
        "\n"
        "\n"
        "## Fixing the login bug\n"
        "\n"
        "The login bug happens because the session token is never refreshed. "
        "Here is how to fix it:\n"
        "\n"
        "- Refresh the token before it expires\n"
        "- Retry the request once after a 401 response\n"
        "- Log the user out when the refresh fails\n"
        "\n"
        "This should resolve the issue for most users, including those on mobile."
    )
