"""Intent classification - Multi-label intent tags from ordered regex rules.

Every rule is checked; all matching tags are returned in rule order
(ERROR, CONFIRM, Q, CMD, PLAN, META). INFO is the fallback when nothing
else matched.
"""

import re
from dataclasses import dataclass

from chatlens.pipeline.models import IntentTag


@dataclass(frozen=True)
class IntentRule:
    tag: IntentTag
    patterns: tuple[re.Pattern, ...]


def _compile(*patterns: str, flags: int = 0) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, flags | re.ASCII) for p in patterns)


INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(IntentTag.ERROR, _compile(
        r"\b(?:error|Error|ERROR)\b",
        r"\b(?:exception|Exception)\b",
        r"\b(?:failed|failure|FAIL)\b",
        r"\b(?:ENOENT|EACCES|EPERM|ETIMEDOUT)\b",
        r"動かない", r"落ちる|落ちた", r"エラー", r"失敗", r"無理", r"壊れ",
        r"起動しない", r"表示されない", r"反映されない",
    ) + _compile(
        r"\bnot\s+found\b",
        r"\b(?:stack\s*trace|stacktrace)\b",
        r"\b(?:undefined|null|NaN)\s+(?:is\s+not|error)",
        r"\b(?:crash|segfault|panic)\b",
        flags=re.IGNORECASE,
    )),
    IntentRule(IntentTag.CONFIRM, _compile(
        r"合ってる[？?]", r"これでいい[？?]", r"正しい[？?]", r"大丈夫[？?]",
        r"問題ない[？?]", r"間違ってない[？?]", r"確認",
        r"\bOK\?\s*$",
    ) + _compile(
        r"are you sure",
        r"これで(?:OK|おk|オッケー)[？?]?",
        r"\bright\?\s*$",
        r"\bcorrect\?\s*$",
        flags=re.IGNORECASE,
    )),
    IntentRule(IntentTag.Q, _compile(
        r"[？?]",
        r"なぜ", r"どう(?:すれば|したら|やって|して)", r"何[がをにで]|何です",
        r"どこ[にでがを]", r"いつ", r"どれ|どちら", r"方法", r"教えて", r"知りたい",
        r"わからない|分からない",
    ) + _compile(
        r"\b(?:how|why|what|where|when|which|who)\b",
        r"\bcan\s+(?:I|you|we)\b",
        r"\bis\s+(?:it|this|that)\b",
        flags=re.IGNORECASE,
    )),
    IntentRule(IntentTag.CMD, _compile(
        r"[してやつ作直教見出消変送]て(?:[。、！!]|$)",
        r"ください", r"してほしい", r"してくれ", r"お願い",
        r"作成して", r"修正して", r"追加して", r"変更して", r"削除して", r"実装して",
    ) + _compile(
        r"\bplease\b",
        r"\b(?:create|make|build|fix|update|delete|remove|add|change|modify|implement|write|generate)\b",
        flags=re.IGNORECASE,
    )),
    IntentRule(IntentTag.PLAN, _compile(
        r"方針", r"設計", r"ロードマップ", r"段取り", r"構成", r"アルゴリズム",
        r"計画", r"アーキテクチャ", r"フロー", r"ステップ[をはで]", r"手順", r"フェーズ",
    ) + _compile(
        r"\b(?:plan|design|architecture|roadmap|strategy|workflow)\b",
        flags=re.IGNORECASE,
    )),
    IntentRule(IntentTag.META, _compile(
        r"短く", r"長く", r"次[はにを]", r"一旦", r"やり直し", r"コピペ", r"整形",
        r"もういい", r"まとめて", r"続き", r"ありがとう", r"了解", r"OK$",
        r"わかった", r"りょ",
    ) + _compile(
        r"おk",
        r"\b(?:thanks|thank you|thx|ok|got it|never\s*mind)\b",
        flags=re.IGNORECASE,
    )),
)


def classify_intent(text: str, rules: tuple[IntentRule, ...] = INTENT_RULES) -> frozenset[IntentTag]:
    """Classify the intents of a message.

    Args:
        text: Message text.
        rules: Ordered rule table.

    Returns:
        Non-empty set of intent tags.
    """
    intents = {rule.tag for rule in rules if any(p.search(text) for p in rule.patterns)}
    if not intents:
        intents.add(IntentTag.INFO)
    return frozenset(intents)
