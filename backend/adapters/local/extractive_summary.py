"""ExtractiveSummaryAdapter — local, deterministic frequency-scored summarizer.

Sentences are scored by the average corpus frequency of their content words.
Ties are broken by position, so identical input always yields identical output.
"""

import logging
import re
from collections import Counter

from domain.models import Summary, TranscriptSegment
from ports.summarization import SummarizationPort
from post_processing import NO_SPEECH_SUMMARY

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_WORD = re.compile(r"[a-z][a-z']+")

STOPWORDS = frozenset("""
a about above after again against all also am an and any are as at be because been
before being below between both but by can could did do does doing down during each
few for from further get got had has have having he her here hers herself him himself
his how i if in into is it its itself just let like me more most my myself no nor not
now of off on once only or other our ours ourselves out over own really same she should
so some such than that the their theirs them themselves then there these they this
those through to too under until up us very was we were what when where which while who
whom why will with would yeah yes you your yours yourself yourselves okay right well
going gonna want think know um uh
""".split())

MAX_HIGHLIGHT_CHARS = 120


def _truncate(text: str, limit: int = MAX_HIGHLIGHT_CHARS) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return cut.rstrip(",;:") + "…"


class ExtractiveSummaryAdapter(SummarizationPort):
    def __init__(self, summary_sentences: int = 3, highlight_count: int = 5, keyword_count: int = 5):
        self._summary_sentences = summary_sentences
        self._highlight_count = highlight_count
        self._keyword_count = keyword_count

    def name(self) -> str:
        return "extractive"

    def summarize(self, segments: list[TranscriptSegment]) -> Summary:
        sentences = [
            s.strip()
            for seg in segments
            for s in _SENTENCE_SPLIT.split(seg.text.strip())
            if s.strip()
        ]
        if not sentences:
            return Summary(text=NO_SPEECH_SUMMARY)

        tokenized = [[w for w in _WORD.findall(s.lower()) if w not in STOPWORDS] for s in sentences]
        freq = Counter(w for words in tokenized for w in words)
        if not freq:
            # Only filler words; fall back to the opening sentences.
            return Summary(text=self._format(sentences[: self._summary_sentences], []))

        top = max(freq.values())
        scores = [
            sum(freq[w] / top for w in words) / len(words) if words else 0.0
            for words in tokenized
        ]
        ranked = sorted(range(len(sentences)), key=lambda i: (-scores[i], i))

        chosen = sorted(ranked[: self._summary_sentences])
        keywords = [w for w, _ in sorted(freq.items(), key=lambda kv: (-kv[1], kv[0]))[: self._keyword_count]]

        highlights: list[str] = []
        seen: set[str] = set()
        for i in ranked:
            if len(highlights) >= self._highlight_count or scores[i] == 0.0:
                break
            text = _truncate(sentences[i])
            if text.lower() in seen:
                continue
            seen.add(text.lower())
            highlights.append(text)

        logger.debug(f"Summarized {len(sentences)} sentences, keywords={keywords}")
        return Summary(
            text=self._format([sentences[i] for i in chosen], keywords),
            highlights=tuple(highlights),
        )

    @staticmethod
    def _format(sentences: list[str], keywords: list[str]) -> str:
        lines = ["Meeting Summary:", ""]
        lines.extend(f"• {s}" for s in sentences)
        if keywords:
            lines.append(f"Key topics: {', '.join(keywords)}")
        return "\n".join(lines)
