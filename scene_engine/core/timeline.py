"""Caption Timeline Builder: tokenize words once, group them into batches.

WHY: Word-by-word captions show a few words at a time. A batch that
straddles a sentence end reads badly ("...the cat. Sat on"), so batches
close early at sentence terminators. Deciding the display text (case
transform) and the sentence boundaries from two separate whitespace
splits invites index drift between them; this module does both in one
pass and every later stage reads the same token list.

HOW: tokenize_words() walks the word timestamps once, producing a
CaptionToken per word with its display text and a sentence_end flag.
Sentence ends come from the reference text's whitespace tokens (the
scene narration when supplied, otherwise the words themselves).
build_caption_batches() then accumulates up to words_per_batch tokens
per batch, closing a batch early after any sentence_end token.

RULES:
- words_per_batch == 0 → one batch holding every word (show-all mode)
- words_per_batch < 0 is rejected with ValueError
- A token is a sentence end when its text ends with ".", "!" or "?"
  (ignoring trailing quotes and closing brackets)
- If the reference text's token count differs from the word count, the
  words' own text is used instead and a warning is logged
- Batches are contiguous, non-overlapping, in order, and cover every
  word exactly once
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from scene_engine.core.ir import CaptionBatch, TextTransform, WordTimestamp

logger = logging.getLogger(__name__)

SENTENCE_TERMINATORS = (".", "!", "?")
_TRAILING_CLOSERS = "\"'”’)]"


@dataclass(frozen=True)
class CaptionToken:
    """One caption word after the shared tokenization pass."""

    text: str
    word: WordTimestamp
    sentence_end: bool = False


def apply_text_transform(text: str, transform: TextTransform) -> str:
    """Apply a caption case transform to a single word."""
    if transform is TextTransform.UPPERCASE:
        return text.upper()
    if transform is TextTransform.LOWERCASE:
        return text.lower()
    if transform is TextTransform.CAPITALIZE:
        return text[:1].upper() + text[1:].lower()
    return text


def ends_sentence(token: str) -> bool:
    """True if a whitespace token ends a sentence."""
    return token.rstrip(_TRAILING_CLOSERS).endswith(SENTENCE_TERMINATORS)


def tokenize_words(
    words: Sequence[WordTimestamp],
    text_transform: TextTransform = TextTransform.NONE,
    reference_text: Optional[str] = None,
) -> List[CaptionToken]:
    """Produce display text and sentence flags for every word in one pass.

    Args:
        words: The scene's word timestamps, in order.
        text_transform: Case transform applied to every word.
        reference_text: Narration text used for sentence detection.

    Returns:
        One CaptionToken per word, same order.
    """
    reference = [w.word for w in words]
    if reference_text is not None:
        candidate = reference_text.split()
        if len(candidate) == len(words):
            reference = candidate
        else:
            logger.warning(
                "Reference text has %d tokens but there are %d words; "
                "detecting sentence ends from the words themselves",
                len(candidate), len(words),
            )

    return [
        CaptionToken(
            text=apply_text_transform(" ".join(word.word.split()), text_transform),
            word=word,
            sentence_end=ends_sentence(ref),
        )
        for word, ref in zip(words, reference)
    ]


def build_caption_batches(
    tokens: Sequence[CaptionToken],
    words_per_batch: int,
) -> List[CaptionBatch]:
    """Partition tokens into contiguous display batches.

    Args:
        tokens: Output of tokenize_words().
        words_per_batch: Maximum batch size; 0 means a single batch.

    Returns:
        Batches covering every token exactly once, in order.

    Raises:
        ValueError: If words_per_batch is negative.
    """
    if words_per_batch < 0:
        raise ValueError("words_per_batch must be >= 0, got {}".format(words_per_batch))
    if not tokens:
        return []

    words = tuple(t.word for t in tokens)
    if words_per_batch == 0:
        return [CaptionBatch(words=words, start_index=0, end_index=len(words))]

    batches: List[CaptionBatch] = []
    start = 0
    while start < len(tokens):
        end = start
        while end < len(tokens) and end - start < words_per_batch:
            end += 1
            if tokens[end - 1].sentence_end:
                break
        batches.append(CaptionBatch(words=words[start:end], start_index=start, end_index=end))
        start = end
    return batches


@dataclass
class CaptionTimeline:
    """Tokens plus their batches, with a per-word batch lookup."""

    tokens: List[CaptionToken]
    batches: List[CaptionBatch]

    def __post_init__(self) -> None:
        self._batch_of: List[int] = []
        for batch_no, batch in enumerate(self.batches):
            self._batch_of.extend([batch_no] * (batch.end_index - batch.start_index))

    def batch_for(self, index: int) -> CaptionBatch:
        """The batch that contains word ``index``."""
        return self.batches[self._batch_of[index]]


def build_caption_timeline(
    words: Sequence[WordTimestamp],
    words_per_batch: int,
    text_transform: TextTransform = TextTransform.NONE,
    reference_text: Optional[str] = None,
) -> CaptionTimeline:
    """Tokenize and batch a scene's words."""
    tokens = tokenize_words(words, text_transform, reference_text)
    return CaptionTimeline(tokens=tokens, batches=build_caption_batches(tokens, words_per_batch))


def offset_words(words: Sequence[WordTimestamp], offset_s: float) -> List[WordTimestamp]:
    """Shift word timestamps by a scene's start time within a story."""
    return [
        WordTimestamp(word=w.word, start=w.start + offset_s, end=w.end + offset_s)
        for w in words
    ]
