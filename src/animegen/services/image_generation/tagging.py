"""Prompt classification into search tags.

Tags come from a language model when one is available and from keyword
matching otherwise. Tag generation is enrichment only: callers treat any
failure here as "no generated tags".
"""

import re
from typing import Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)

MAX_GENERATED_TAGS = 10
MAX_FALLBACK_TAGS = 8
TAG_PATTERN = re.compile(r"^[a-z0-9\s\-]+$", re.IGNORECASE)
RESPONSE_PREFIX = re.compile(r"^(tags?:\s*|here are the tags:\s*)", re.IGNORECASE)

# tag -> phrases that imply it
KEYWORDS: dict[str, tuple[str, ...]] = {
    "girl": ("girl", "woman", "female"),
    "boy": ("boy", "man", "male"),
    "cat girl": ("cat girl", "nekomimi", "catgirl"),
    "purple hair": ("purple hair",),
    "pink hair": ("pink hair",),
    "blue hair": ("blue hair",),
    "green hair": ("green hair",),
    "red hair": ("red hair",),
    "black hair": ("black hair",),
    "white hair": ("white hair", "silver hair"),
    "blonde hair": ("blonde", "yellow hair"),
    "golden eyes": ("golden eyes", "yellow eyes"),
    "blue eyes": ("blue eyes",),
    "green eyes": ("green eyes",),
    "red eyes": ("red eyes",),
    "purple eyes": ("purple eyes",),
    "school uniform": ("school uniform", "uniform"),
    "dress": ("dress",),
    "armor": ("armor",),
    "anime": ("anime",),
    "manga": ("manga",),
    "kawaii": ("kawaii", "cute"),
    "chibi": ("chibi",),
    "magical girl": ("magical girl",),
    "warrior": ("warrior",),
    "princess": ("princess",),
    "cyberpunk": ("cyberpunk",),
}


class TextCompletion(Protocol):
    async def complete_text(
        self, model: str, prompt: str, max_tokens: int = 100, temperature: float = 0.1
    ) -> str: ...


def build_tag_prompt(prompt: str, negative_prompt: Optional[str] = None) -> str:
    """Build the instruction sent to the language model."""
    lines = [
        "Analyze this anime/art generation prompt and extract relevant tags "
        "for categorization and search.",
        "",
        f'Prompt: "{prompt}"',
    ]
    if negative_prompt:
        lines.append(f'Negative Prompt: "{negative_prompt}"')
    lines += [
        "",
        "Respond with ONLY a comma-separated list of relevant tags (max 10 tags). Focus on:",
        "- Art style (anime, manga, chibi, realistic, etc.)",
        "- Character features (hair color, eye color, clothing, accessories)",
        "- Setting/background elements",
        "- Mood/atmosphere",
        "- Genre/themes",
        "",
        "Tags:",
    ]
    return "\n".join(lines)


def parse_tag_response(text: str) -> list[str]:
    """Extract clean tags from a model response.

    Tags must be 2-30 characters of letters, digits, spaces or hyphens.
    Duplicates are dropped case-insensitively; at most 10 tags are returned.
    """
    body = RESPONSE_PREFIX.sub("", text.lower().strip())
    raw_tags = [tag.strip() for tag in re.split(r"[,\n]", body) if tag.strip()]

    tags: list[str] = []
    for raw in raw_tags[:MAX_GENERATED_TAGS]:
        tag = raw.replace('"', "").replace("'", "").strip()
        if 2 <= len(tag) <= 30 and TAG_PATTERN.match(tag) and tag not in tags:
            tags.append(tag)
    return tags


def extract_keyword_tags(prompt: str) -> list[str]:
    """Keyword-based tags, used when the language model is unavailable.

    "anime" is always present (first) since every image is anime-style.
    """
    lowered = prompt.lower()
    tags = [tag for tag, phrases in KEYWORDS.items() if any(p in lowered for p in phrases)]
    if "anime" not in tags:
        tags.insert(0, "anime")
    return tags[:MAX_FALLBACK_TAGS]


def merge_tags(user_tags: Optional[list[str]], generated: list[str], limit: int = 15) -> list[str]:
    """Merge user tags with generated tags.

    User tags come first. Generated tags equal to an existing tag (ignoring
    case) are skipped. The result is capped at limit.
    """
    merged: list[str] = []
    seen: set[str] = set()
    for tag in list(user_tags or []) + generated:
        key = tag.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(tag.strip())
    return merged[:limit]


class TagGenerator:
    """Generates tags for a prompt with a language model and keyword fallback."""

    def __init__(self, completion: Optional[TextCompletion], model: str, enabled: bool = True):
        self.completion = completion
        self.model = model
        self.enabled = enabled

    async def generate(self, prompt: str, negative_prompt: Optional[str] = None) -> list[str]:
        """Return tags for a prompt. Falls back to keyword matching on model failure."""
        if not self.enabled or self.completion is None:
            return extract_keyword_tags(prompt)

        try:
            response = await self.completion.complete_text(
                self.model, build_tag_prompt(prompt, negative_prompt)
            )
        except Exception as e:
            logger.warning(
                "tags.generation_failed",
                error=str(e),
                error_type=type(e).__name__,
                fallback="keywords",
            )
            return extract_keyword_tags(prompt)

        return parse_tag_response(response)
