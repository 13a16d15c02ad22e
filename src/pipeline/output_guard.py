"""Detection and truncation of degenerate recognition output.

Vision-language recognition models sometimes fall into a loop on noisy
pages and emit the same line hundreds of times. Long outputs dominated by
one repeated line are cut back and annotated.
"""

from collections import Counter

MIN_LENGTH = 10_000
MIN_LINE_LENGTH = 25
MIN_QUALIFYING_LINES = 5
MAX_REPEATS = 20
TRUNCATION_NOTICE = "\n\n[Truncated: repetitive OCR output detected]"


def is_repetitive(text: str) -> bool:
    """Return True if ``text`` looks like a repetition loop.

    Args:
        text: Recognized page text.

    Returns:
        True when the text is at least ``MIN_LENGTH`` characters long, has
        ``MIN_QUALIFYING_LINES`` or more stripped lines longer than
        ``MIN_LINE_LENGTH`` characters, and one of those lines occurs
        ``MAX_REPEATS`` times or more.
    """
    if len(text) < MIN_LENGTH:
        return False

    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if len(line) > MIN_LINE_LENGTH]
    if len(lines) < MIN_QUALIFYING_LINES:
        return False

    counts = Counter(lines)
    return max(counts.values()) >= MAX_REPEATS


def check(text: str) -> str:
    """Return ``text`` unchanged, or truncated and annotated if degenerate."""
    if is_repetitive(text):
        return text[:MIN_LENGTH] + TRUNCATION_NOTICE
    return text
