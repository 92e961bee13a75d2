"""Lexical heuristics that bucket memory entries into facts, preferences and context.

Best-effort only: the buckets are derived at read time and never stored.
"""

from ..core.domain.memory import CategorizedMemories, MemoryCategory

PREFERENCE_KEYWORDS = ("prefer", "like", "favorite", "love", "hate", "dislike")
FACT_PATTERNS = (" is ", " are ", " was ", " were ", "name is", "work", "live", "age")


def categorize(text: str) -> MemoryCategory:
    """Classify one memory text; preference keywords win over fact patterns."""
    lowered = text.lower()
    if any(keyword in lowered for keyword in PREFERENCE_KEYWORDS):
        return MemoryCategory.PREFERENCE
    if any(pattern in lowered for pattern in FACT_PATTERNS):
        return MemoryCategory.FACT
    return MemoryCategory.CONTEXT


def categorize_all(texts: list[str]) -> CategorizedMemories:
    categorized = CategorizedMemories()
    for text in texts:
        categorized.bucket(categorize(text)).append(text)
    return categorized
