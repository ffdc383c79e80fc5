"""Stage 3: Feature Extraction - Regex feature vector per block.

Every feature is computed from the block text alone, so the stage is a
pure per-block map. Patterns cover English and Japanese chat text.

Word-boundary patterns are compiled with ``re.ASCII`` so that an English
keyword directly followed by Japanese ("errorが出た") still matches.
"""

import re

import structlog

from chatlens.pipeline.models import Block, BlockFeatures, FeaturedBlock

logger = structlog.get_logger(__name__)


# =============================================================================
# Pattern Catalog
# =============================================================================

QUESTION_RE = re.compile(
    r"[？?]"
    r"|^(?:how|why|what|where|when|which|who)\b"
    r"|なぜ|どう|どこ|いつ|何[がをにで]|どれ|どちら|教えて|どうすれば|方法",
    re.IGNORECASE | re.MULTILINE | re.ASCII,
)

# Fenced block, or indented code line
CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```|^(?: {4}|\t)\S", re.MULTILINE)
CODE_FENCE_RE = re.compile(r"```")

MD_HEADING_RE = re.compile(r"^#{1,6}\s", re.MULTILINE)
BULLET_LIST_RE = re.compile(r"^\s*[-*•◦]\s|^\s*\d+[.．)]\s", re.MULTILINE)
TABLE_RE = re.compile(r"\|.*\|")
URL_RE = re.compile(r"https?://\S+")
FILE_PATH_RE = re.compile(r"(?:[A-Z]:\\|/Users/|~/|\./)\S+\.\w+")

# Shell command at the start of a line, optionally behind a "$ " prompt
COMMAND_RE = re.compile(
    r"^\s*(?:\$\s*)?(?:npm|npx|git|cd|brew|pip|yarn|pnpm|sudo|curl|wget|docker|kubectl|make)\s",
    re.MULTILINE,
)

ERROR_KW_RE = re.compile(
    r"\b(?:error|exception|stack\s*trace|not\s+found|undefined|null|failed|crash|ENOENT|EACCES|segfault)\b"
    r"|動かない|落ちる|エラー|失敗|無理|壊れ",
    re.IGNORECASE | re.ASCII,
)

JAPANESE_RE = re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")

POLITE_RE = re.compile(r"です[。.]?$|ます[。.]?$|ございます|でしょう|いたします", re.MULTILINE)

EXPLANATION_RE = re.compile(
    r"とは[、。]|つまり|例えば|すなわち|具体的には|言い換えると|以下[のにはで]|まとめると|ポイント[はを]|ステップ"
    r"|\b(?:for example|in other words|in short|to summarize|here's how|the following|step \d)\b",
    re.IGNORECASE | re.ASCII,
)

IMPERATIVE_RE = re.compile(
    r"[しやつ作直教見出消変送]て[。、！!]?$|ください|してほしい|お願い"
    r"|^(?:please|fix|make|write|create|show|tell|explain|help|give|can you|could you)\b",
    re.IGNORECASE | re.MULTILINE | re.ASCII,
)

# Explicit "Label:" prefix at the start of the block
USER_MARKER_RE = re.compile(r"^(?:User|You|あなた|あなたのプロンプト|自分|Human|Me|Guest):", re.IGNORECASE)
AI_MARKER_RE = re.compile(r"^(?:Assistant|AI|Gemini|ChatGPT|Claude|Bot|GPT|Anthropic|OpenAI):", re.IGNORECASE)

# Casual / emotional speech (user-leaning)
CASUAL_RE = re.compile(
    r"だよ|じゃん|だね|かな[？?]?$|やばい|マジ[でか]|ぽい|わかんない|むり|つらい"
    r"|\b(?:lol|lmao|omg|wtf|pls|plz|gonna|wanna|dunno|thx)\b",
    re.IGNORECASE | re.MULTILINE | re.ASCII,
)

TECH_TERMS_RE = re.compile(
    r"\b(?:API|REST|GraphQL|JSON|XML|HTML|CSS|SQL|TypeScript|JavaScript|Python|React|Vue|Angular"
    r"|Next\.js|Vite|Node|Express|Docker|Kubernetes|AWS|GCP|Azure|Firebase|Supabase|OAuth|JWT"
    r"|CORS|CRUD|CI/CD|Git|GitHub|npm|yarn|webpack|ESLint|Prettier)\b",
    re.IGNORECASE | re.ASCII,
)

EXCLAMATION_RE = re.compile(r"[！!？?]")

# Formality adjustments
NEUTRAL_FORMALITY = 0.5
FORMALITY_STEP = 0.3
SENTIMENT_CHARS_PER_UNIT = 50


# =============================================================================
# Extraction
# =============================================================================

def extract_features(block: Block) -> BlockFeatures:
    """Compute the feature vector of one block.

    Args:
        block: Segmented block.

    Returns:
        BlockFeatures for the block text.
    """
    text = block.text
    lines = [line for line in text.split("\n") if line.strip()]
    char_count = len(text)
    line_count = len(lines)
    avg_line_length = char_count / line_count if line_count else 0.0

    word_count = len(text.split())
    tech_matches = len(TECH_TERMS_RE.findall(text))
    technical_term_density = tech_matches / word_count if word_count else 0.0

    has_polite_form = bool(POLITE_RE.search(text))
    formality = NEUTRAL_FORMALITY
    if has_polite_form:
        formality += FORMALITY_STEP
    if CASUAL_RE.search(text):
        formality -= FORMALITY_STEP
    formality = max(0.0, min(1.0, formality))

    exclamations = len(EXCLAMATION_RE.findall(text))
    sentiment_score = min(exclamations / max(char_count / SENTIMENT_CHARS_PER_UNIT, 1), 1.0)

    return BlockFeatures(
        char_count=char_count,
        line_count=line_count,
        avg_line_length=avg_line_length,
        has_question=bool(QUESTION_RE.search(text)),
        has_code_block=bool(CODE_BLOCK_RE.search(text) or CODE_FENCE_RE.search(text)),
        has_table=bool(TABLE_RE.search(text)),
        has_markdown_heading=bool(MD_HEADING_RE.search(text)),
        has_bullet_list=bool(BULLET_LIST_RE.search(text)),
        has_url=bool(URL_RE.search(text)),
        has_file_path=bool(FILE_PATH_RE.search(text)),
        has_command=bool(COMMAND_RE.search(text)),
        has_error_keyword=bool(ERROR_KW_RE.search(text)),
        has_japanese=bool(JAPANESE_RE.search(text)),
        has_polite_form=has_polite_form,
        has_explanation_structure=bool(EXPLANATION_RE.search(text)),
        has_imperative_form=bool(IMPERATIVE_RE.search(text)),
        has_user_marker=bool(USER_MARKER_RE.match(text)),
        has_ai_marker=bool(AI_MARKER_RE.match(text)),
        sentiment_score=sentiment_score,
        technical_term_density=technical_term_density,
        formality=formality,
    )


def extract_all_features(blocks: list[Block]) -> list[FeaturedBlock]:
    """Attach features to every block."""
    featured = [
        FeaturedBlock(**block.model_dump(), features=extract_features(block))
        for block in blocks
    ]
    logger.debug("features_extracted", blocks=len(featured))
    return featured
