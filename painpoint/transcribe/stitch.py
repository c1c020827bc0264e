"""Join per-segment transcripts, dropping the words repeated by the audio overlap.

Each segment is transcribed on its own, so the overlapping seconds show up as a
run of words at the end of one transcript and again at the start of the next.
We look for the longest run where the next transcript's opening words line up
with the tail of what we have so far, and cut there.  This is a nearest-match
heuristic, not an alignment: when no convincing run is found we keep both sides
and accept a few duplicated words over losing real content."""

import logging
import math
import re
import string
import typing as ty

logger = logging.getLogger(__name__)

WORDS_PER_SECOND: ty.Final = 2.5
MIN_MATCH_WORDS: ty.Final = 2

_WORD_RE = re.compile(r"\S+")


class Match(ty.NamedTuple):
    offset: int  # into the tail
    length: int


def search_window(overlap_s: float) -> int:
    """How many words either side of a boundary could plausibly be overlap, with slack."""
    return math.ceil(overlap_s * WORDS_PER_SECOND) * 2


def _norm(word: str) -> str:
    return word.strip(string.punctuation).lower()


def find_overlap(prev_tail: ty.Sequence[str], current_head: ty.Sequence[str]) -> Match:
    """Longest run, starting at current_head[0], that also appears somewhere in prev_tail.

    Ties go to the latest offset, which truncates the least.
    """
    tail = [_norm(w) for w in prev_tail]
    head = [_norm(w) for w in current_head]
    best = Match(offset=0, length=0)
    for j in range(len(tail)):
        length = 0
        while j + length < len(tail) and length < len(head) and tail[j + length] == head[length]:
            length += 1
        if length and length >= best.length:
            best = Match(offset=j, length=length)
    return best


def _stitch_pair(accumulated: str, text: str, window: int, min_match: int) -> str:
    spans = [m.span() for m in _WORD_RE.finditer(accumulated)]
    head = _WORD_RE.findall(text)[:window]
    tail_start = max(0, len(spans) - window)
    prev_tail = [accumulated[a:b] for a, b in spans[tail_start:]]

    match = find_overlap(prev_tail, head) if window else Match(0, 0)
    if match.length < min_match:
        return " ".join(t for t in (accumulated, text) if t)

    cut_word = tail_start + match.offset
    logger.debug(f"Overlap of {match.length} words found; cutting at word {cut_word}")
    kept = accumulated[: spans[cut_word][0]].rstrip()
    return f"{kept} {text.lstrip()}" if kept else text.lstrip()


def stitch_transcripts(
    texts: ty.Sequence[str], overlap_s: float, *, min_match: int = MIN_MATCH_WORDS
) -> str:
    """Merge segment transcripts (in segment order) into one document."""
    if not texts:
        return ""
    if len(texts) == 1:
        return texts[0]

    window = search_window(overlap_s)
    stitched = texts[0]
    for text in texts[1:]:
        stitched = _stitch_pair(stitched, text, window, min_match)

    logger.info(f"Stitched {len(texts)} segment transcripts ({len(stitched)} chars)")
    return stitched
