"""Split answer text into individually selectable sections.

Paragraphs (separated by one or more blank lines) are sections. Numbered
list items ("1. ...") also start their own section, even without a blank
line between them, so each item can be branched from on its own.
"""

import re
from uuid import uuid4

from inferflow.models import AnswerSection, ConversationNode

_BLANK_LINE = re.compile(r"\r?\n[ \t]*(?:\r?\n)+")
_NUMBERED_ITEM = re.compile(r"^[ \t]*\d+\.", re.MULTILINE)


def parse_answer_into_sections(answer: str) -> list[AnswerSection]:
    """Parse an answer into trimmed, non-empty sections in reading order.

    Empty or whitespace-only input returns an empty list.
    """
    if not answer or not answer.strip():
        return []

    sections: list[AnswerSection] = []
    for paragraph in _BLANK_LINE.split(answer):
        for candidate in _split_numbered_items(paragraph):
            text = candidate.strip()
            if not text:
                continue
            sections.append(AnswerSection(id=str(uuid4()), text=text, index=len(sections)))
    return sections


def _split_numbered_items(paragraph: str) -> list[str]:
    starts = [m.start() for m in _NUMBERED_ITEM.finditer(paragraph)]
    if not starts:
        return [paragraph]
    if starts[0] != 0:
        starts.insert(0, 0)
    bounds = starts + [len(paragraph)]
    return [paragraph[a:b] for a, b in zip(bounds, bounds[1:])]


def get_sections(node: ConversationNode) -> list[AnswerSection]:
    """Cached sections if the node carries them, otherwise parse the answer now."""
    if node.answer_sections is not None:
        return node.answer_sections
    return parse_answer_into_sections(node.answer)
