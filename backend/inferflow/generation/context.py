"""Context assembly for a new question.

ContextBuilder turns a chain of ancestor nodes (as returned by
TreeStore.get_node_chain) into the text sent to a model alongside a new
question. Nodes the user unticked (include_in_context=False) are skipped,
and a branch spawned from one section of an answer inherits only that
section instead of the full answer.
"""

import logging
import math
from collections.abc import Sequence

from inferflow.models import ContextUsage, ConversationNode
from inferflow.trees.sections import get_sections

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"
CONTEXT_HEADER = "Context from previous conversation:"
QUESTION_HEADER = "Current question:"


class ContextBuilder:
    """Renders ancestor chains as labeled Q/A context and wraps prompts.

    Section substitution applies only to the terminal node of the chain,
    the node the new branch is spawned from. Interior ancestors always
    contribute their full answer.
    """

    def build_context(
        self,
        target_node: ConversationNode | None,
        chain: Sequence[ConversationNode],
        selected_section_index: int | None = None,
    ) -> str:
        """Render the chain as Q/A blocks separated by blank lines.

        Returns "" for an empty chain or when every node is excluded.
        """
        if not chain:
            return ""

        terminal = chain[-1]
        if target_node is not None and target_node.id != terminal.id:
            logger.warning(
                "Target %s is not the end of its chain (%s); "
                "section selection applies to the chain end",
                target_node.id,
                terminal.id,
            )

        blocks: list[str] = []
        for i, node in enumerate(chain):
            if node.include_in_context is False:
                continue
            is_terminal = i == len(chain) - 1
            if is_terminal and selected_section_index is not None:
                section_text = self._section_text(node, selected_section_index)
                if section_text is not None:
                    blocks.append(f"Q: {node.question}\nA (selected section): {section_text}")
                    continue
            blocks.append(f"Q: {node.question}\nA: {node.answer}")

        return BLOCK_SEPARATOR.join(blocks)

    @staticmethod
    def build_prompt(question: str, context: str) -> str:
        """Prefix the question with its context, or return it verbatim if there is none."""
        if not context:
            return question
        return f"{CONTEXT_HEADER}\n{context}\n\n{QUESTION_HEADER}\n{question}"

    def context_usage(self, chain: Sequence[ConversationNode]) -> ContextUsage:
        """Approximate token cost of each node's Q/A, split by inclusion."""
        included: list[str] = []
        excluded: list[str] = []
        included_tokens = 0
        excluded_tokens = 0
        for node in chain:
            tokens = self.estimate_tokens(node.question) + self.estimate_tokens(node.answer)
            if node.include_in_context is False:
                excluded.append(node.id)
                excluded_tokens += tokens
            else:
                included.append(node.id)
                included_tokens += tokens
        return ContextUsage(
            total_tokens=included_tokens,
            included_node_ids=included,
            excluded_node_ids=excluded,
            excluded_tokens=excluded_tokens,
        )

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough token count: one token per four characters, rounded up."""
        return math.ceil(len(text) / 4)

    @staticmethod
    def _section_text(node: ConversationNode, index: int) -> str | None:
        sections = get_sections(node)
        for section in sections:
            if section.index == index:
                return section.text
        logger.warning(
            "Section %d not found on node %s (%d sections); using the full answer",
            index,
            node.id,
            len(sections),
        )
        return None
