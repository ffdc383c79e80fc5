"""Topic classification - Keyword dictionary over developer topics.

Keywords match case-insensitively. Keywords of three characters or fewer
("ts", "ui", "db") only match as whole words; longer keywords match
anywhere, so "commit" also hits "commits".

Users can add their own topics (or extend a built-in one) through the
correction store; ``TopicClassifier`` merges them into the dictionary.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

TOPIC_DICT: dict[str, tuple[str, ...]] = {
    "GIT": (
        "git", "commit", "push", "pull", "merge", "branch", "rebase", "stash",
        "cherry-pick", "checkout", "clone", "fetch", "remote", "upstream",
        "gitignore", ".git", "HEAD", "detached", "conflict",
    ),
    "NPM": (
        "npm", "yarn", "pnpm", "package.json", "node_modules", "package-lock",
        "npm install", "npm run", "npx", "devDependencies", "dependencies",
        "semver", "registry",
    ),
    "NODE": (
        "node", "nodejs", "node.js", "express", "deno", "bun",
        "require", "module", "commonjs", "esm", "ts-node",
    ),
    "REACT": (
        "react", "useState", "useEffect", "useRef", "useMemo", "useCallback",
        "component", "jsx", "tsx", "props", "state", "hook", "context",
        "react-dom", "react-router", "next.js", "nextjs", "vite",
        "create-react-app", "remix",
    ),
    "TYPESCRIPT": (
        "typescript", "ts", "tsx", "tsconfig", "type", "interface",
        "generic", "enum", "union", "intersection", "keyof", "typeof",
        "as const", "satisfies",
    ),
    "CSS": (
        "css", "scss", "sass", "less", "tailwind", "tailwindcss",
        "styled-components", "emotion", "postcss", "flexbox", "grid",
        "responsive", "media query", "animation", "transition",
    ),
    "SUPABASE": (
        "supabase", "rls", "row level security", "postgres", "postgresql",
        "edge function", "supabase-js", "supabase auth",
    ),
    "FIREBASE": (
        "firebase", "firestore", "cloud function", "cloud messaging",
        "firebase auth", "realtime database", "firebase hosting",
        "analytics", "crashlytics",
    ),
    "AUTH": (
        "認証", "ログイン", "ログアウト", "サインアップ", "サインイン",
        "auth", "oauth", "oauth2", "jwt", "token", "session",
        "cookie", "passport", "bcrypt", "hash", "password",
        "二要素認証", "2fa", "mfa",
    ),
    "UI": (
        "ui", "ux", "レイアウト", "デザイン", "ボタン", "フォント",
        "カラー", "色", "アイコン", "モーダル", "ダイアログ",
        "フォーム", "input", "dropdown", "sidebar", "navbar", "header",
        "footer", "responsive", "mobile", "tablet", "desktop",
    ),
    "BUG": (
        "bug", "バグ", "fix", "修正", "デバッグ", "debug", "debugging",
        "issue", "問題", "workaround", "原因", "regression",
        "reproduce", "再現",
    ),
    "DB": (
        "database", "db", "sql", "mysql", "postgres", "postgresql",
        "sqlite", "mongodb", "redis", "query", "table", "column",
        "migration", "schema", "index", "join", "select", "insert",
        "update", "delete", "transaction",
    ),
    "API": (
        "api", "endpoint", "rest", "restful", "graphql", "grpc",
        "fetch", "axios", "request", "response", "status code",
        "json", "xml", "webhook", "websocket", "cors",
    ),
    "DEPLOY": (
        "deploy", "deployment", "vercel", "netlify", "heroku",
        "docker", "dockerfile", "kubernetes", "k8s", "ci", "cd",
        "ci/cd", "github actions", "gitlab ci", "jenkins",
        "terraform", "aws", "gcp", "azure",
    ),
    "TESTING": (
        "test", "テスト", "testing", "jest", "vitest", "mocha",
        "cypress", "playwright", "e2e", "unit test", "integration test",
        "mock", "stub", "spy", "assertion", "expect", "coverage",
    ),
    "PC_SETTING": (
        "設定", "config", "configuration", "env", "環境変数",
        "windows", "mac", "macos", "linux", "ubuntu",
        "terminal", "shell", "bash", "zsh", "powershell",
        "path", "PATH", "homebrew",
    ),
    "PYTHON": (
        "python", "pip", "virtualenv", "venv", "conda",
        "django", "flask", "fastapi", "pandas", "numpy",
        "matplotlib", "pytorch", "tensorflow",
    ),
    "AI_ML": (
        "ai", "機械学習", "machine learning", "ml", "deep learning",
        "neural network", "llm", "gpt", "gemini", "claude",
        "transformer", "embedding", "vector", "rag",
        "prompt", "fine-tune", "model", "inference",
    ),
}

WORD_BOUNDARY_MAX_LEN = 3


@dataclass(frozen=True)
class TopicMatch:
    """Topic hit with the keywords that produced it."""
    topic: str
    count: int
    keywords: tuple[str, ...]


def compile_keyword(keyword: str) -> re.Pattern:
    """Compile one dictionary keyword into its case-insensitive matcher."""
    escaped = re.escape(keyword)
    if len(keyword) <= WORD_BOUNDARY_MAX_LEN:
        # Not glued to ASCII word characters; Japanese neighbours are fine
        return re.compile(rf"(?<![A-Za-z0-9_]){escaped}(?![A-Za-z0-9_])", re.IGNORECASE)
    return re.compile(escaped, re.IGNORECASE)


def merge_topic_dictionaries(
    base: Mapping[str, Iterable[str]],
    extra: Optional[Mapping[str, Iterable[str]]] = None,
) -> dict[str, tuple[str, ...]]:
    """Merge extra topics into a base dictionary.

    Extra keywords extend an existing topic (duplicates dropped); unknown
    topics are appended after the built-in ones.
    """
    merged = {topic: tuple(keywords) for topic, keywords in base.items()}
    for topic, keywords in (extra or {}).items():
        existing = list(merged.get(topic, ()))
        existing.extend(kw for kw in keywords if kw and kw not in existing)
        merged[topic] = tuple(existing)
    return merged


class TopicClassifier:
    """Keyword topic classifier over the built-in plus user dictionaries."""

    def __init__(self, extra_topics: Optional[Mapping[str, Iterable[str]]] = None):
        self.dictionary = merge_topic_dictionaries(TOPIC_DICT, extra_topics)
        self._patterns = {
            topic: [(kw, compile_keyword(kw)) for kw in keywords]
            for topic, keywords in self.dictionary.items()
        }

    def detect_detailed(self, text: str) -> list[TopicMatch]:
        """Match every topic, most matched keywords first.

        Ties keep dictionary order.
        """
        results = []
        for topic, patterns in self._patterns.items():
            matched = tuple(kw for kw, pattern in patterns if pattern.search(text))
            if matched:
                results.append(TopicMatch(topic=topic, count=len(matched), keywords=matched))
        results.sort(key=lambda m: -m.count)
        return results

    def detect(self, text: str) -> list[str]:
        """Topic labels for a text, most relevant first."""
        return [m.topic for m in self.detect_detailed(text)]


_DEFAULT_CLASSIFIER = TopicClassifier()


def detect_topics(text: str) -> list[str]:
    """Detect built-in topics in a text."""
    return _DEFAULT_CLASSIFIER.detect(text)


def detect_topics_detailed(text: str) -> list[TopicMatch]:
    """Detect built-in topics with the matched keywords."""
    return _DEFAULT_CLASSIFIER.detect_detailed(text)


def get_topic_dictionary() -> dict[str, list[str]]:
    """Copy of the built-in dictionary."""
    return {topic: list(keywords) for topic, keywords in TOPIC_DICT.items()}
