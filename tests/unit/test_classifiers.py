"""Unit tests for intent, artifact and topic classification and message cleanup."""

from chatlens.pipeline.models import ArtifactTag, IntentTag
from chatlens.pipeline.stages.artifacts import detect_artifacts
from chatlens.pipeline.stages.cleanup import is_invitation, remove_trailing_invitations
from chatlens.pipeline.stages.intent import classify_intent
from chatlens.pipeline.stages.topics import (
    TOPIC_DICT,
    TopicClassifier,
    detect_topics,
    detect_topics_detailed,
    get_topic_dictionary,
    merge_topic_dictionaries,
)


class TestClassifyIntent:
    """Tests for multi-label intent tags."""

    def test_question(self):
        assert classify_intent("Why does this fail?") == {IntentTag.Q}

    def test_error(self):
        assert classify_intent("I got an Error on startup") == {IntentTag.ERROR}

    def test_command(self):
        assert classify_intent("Please fix the login form") == {IntentTag.CMD}

    def test_meta(self):
        assert classify_intent("Thanks, got it") == {IntentTag.META}

    def test_info_fallback(self):
        assert classify_intent("The cache stores values in memory.") == {IntentTag.INFO}
        assert classify_intent("") == {IntentTag.INFO}

    def test_multiple_labels(self):
        intents = classify_intent("Why did the deploy fail with an Error? Please fix it")
        assert intents == {IntentTag.ERROR, IntentTag.Q, IntentTag.CMD}

    def test_japanese(self):
        assert classify_intent("エラーが出ました。どうすればいい？") == {IntentTag.ERROR, IntentTag.Q}

    def test_info_never_combined(self):
        for text in ["Why?", "Please fix it", "Error", "ok thanks", "Some statement."]:
            intents = classify_intent(text)
            assert intents
            assert IntentTag.INFO not in intents or intents == {IntentTag.INFO}


class TestDetectArtifacts:
    """Tests for artifact tags."""

    def test_code(self):
        assert ArtifactTag.CODE in detect_artifacts("```\nprint(1)\n```")
        assert ArtifactTag.CODE in detect_artifacts("git status")
        assert ArtifactTag.CODE in detect_artifacts("import os\nimport sys")

    def test_log(self):
        assert ArtifactTag.LOG in detect_artifacts("2024-01-01 12:00:00 ERROR: boom")
        assert ArtifactTag.LOG in detect_artifacts("> line1\n> line2\n> line3")
        assert ArtifactTag.LOG not in detect_artifacts("> just a quote\n> of two lines")

    def test_path_and_link(self):
        assert ArtifactTag.PATH in detect_artifacts("open /Users/me/app.py")
        assert ArtifactTag.LINK in detect_artifacts("see https://x.io/docs")

    def test_table(self):
        assert ArtifactTag.TABLE in detect_artifacts("| a | b |")
        assert ArtifactTag.TABLE in detect_artifacts("a\tb\nc\td")

    def test_document(self):
        text = "# Guide\n" + "word " * 50
        assert ArtifactTag.DOC in detect_artifacts(text)
        assert ArtifactTag.DOC not in detect_artifacts("# Short\nbody")

    def test_image_ref(self):
        assert ArtifactTag.IMAGE_REF in detect_artifacts("![diagram](img.png)")

    def test_conflict_needs_intensity_marker(self):
        assert ArtifactTag.CONFLICT in detect_artifacts("However, that is wrong. Actually, the API returns 404.")
        assert ArtifactTag.CONFLICT not in detect_artifacts("However, the API returns 404.")

    def test_plain_text(self):
        assert detect_artifacts("Just a sentence.") == frozenset()


class TestTopics:
    """Tests for keyword topics."""

    def test_most_matched_first(self):
        topics = detect_topics("react useState useEffect component with git")
        assert topics[0] == "REACT"
        assert "GIT" in topics

    def test_short_keyword_needs_word_boundary(self):
        assert "TYPESCRIPT" not in detect_topics("the cats ran")
        assert "TYPESCRIPT" in detect_topics("tsの型エラー")

    def test_long_keyword_matches_inside_words(self):
        assert "GIT" in detect_topics("two commits ahead")

    def test_detailed(self):
        [match] = detect_topics_detailed("git push")
        assert match.topic == "GIT"
        assert match.keywords == ("git", "push")
        assert match.count == 2

    def test_no_topics(self):
        assert detect_topics("hello") == []

    def test_user_topics(self):
        classifier = TopicClassifier({"TERRAFORM": ["terraform plan", "tfstate"]})
        assert "TERRAFORM" in classifier.detect("corrupted tfstate file")
        assert "TERRAFORM" not in detect_topics("corrupted tfstate file")

    def test_merge_extends_builtin_topic(self):
        merged = merge_topic_dictionaries(TOPIC_DICT, {"GIT": ["gitlab", "git"]})
        assert merged["GIT"][-1] == "gitlab"
        assert merged["GIT"].count("git") == 1
        assert "gitlab" not in TOPIC_DICT["GIT"]

    def test_dictionary_copy(self):
        copy = get_topic_dictionary()
        copy["GIT"].append("svn")
        assert "svn" not in TOPIC_DICT["GIT"]


class TestCleanup:
    """Tests for trailing invitation removal."""

    def test_trailing_offer_line(self):
        text = "Here is the fix.\n\nWould you like me to explain more?"
        assert remove_trailing_invitations(text) == "Here is the fix."

    def test_trailing_sentence(self):
        text = "The config is updated. Let me know if you need anything else."
        assert remove_trailing_invitations(text) == "The config is updated."

    def test_japanese_offer_line(self):
        text = "設定を変更しました。\n詳しく説明しましょうか？"
        assert remove_trailing_invitations(text) == "設定を変更しました。"

    def test_source_stubs(self):
        text = "Answer text.\nSources:\nhttps://example.com"
        assert remove_trailing_invitations(text) == "Answer text."

    def test_never_empties(self):
        text = "Would you like more details?"
        assert remove_trailing_invitations(text) == text

    def test_content_untouched(self):
        text = "Run the migration first.\n\nThen restart the server."
        assert remove_trailing_invitations(text) == text

    def test_is_invitation(self):
        assert is_invitation("I hope this helps!")
        assert not is_invitation("The server restarts in ten seconds.")
