"""Token-budgeted context assembly over one or many lecture transcripts.

Token counts are estimated from character length (``chars_per_token``), not
from the generation model's tokenizer, so the budget is an approximation.
"""

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.utils.logging import get_logger

logger = get_logger(__name__)

DOCUMENT_SEPARATOR = "\n\n---\n\n"


class ContextDocument(BaseModel):
    """A candidate document for the context, usually one lecture transcript."""

    identifier: str
    title: str
    text: str
    recency: datetime


class AssembledContext(BaseModel):
    text: str
    included_ids: list[str]
    estimated_tokens: int
    mode: Literal["exhaustive", "greedy_recency"]
    excluded_ids: list[str] = Field(default_factory=list)


def estimate_tokens(text: str, chars_per_token: float = 4) -> int:
    """Estimate the token count of text as ``ceil(len(text) / chars_per_token)``."""
    return math.ceil(len(text) / chars_per_token)


def render_document(document: ContextDocument) -> str:
    """Render a document with its title header."""
    return f"Lecture: {document.title}\n{document.text}"


class ContextBudgetAssembler:
    """Builds a context string that fits the generation model's window.

    When everything fits under ``token_budget`` all documents are included in
    their given order. Otherwise documents are taken most recent first while
    the running estimate stays below ``budget_ratio * token_budget``; a
    document that would cross that cap is left out whole and older documents
    are still considered.
    """

    def __init__(
        self,
        token_budget: int = 900_000,
        budget_ratio: float = 0.9,
        chars_per_token: float = 4,
    ):
        if token_budget <= 0:
            raise ValueError("token_budget must be positive")
        if not 0 < budget_ratio <= 1:
            raise ValueError("budget_ratio must be in (0, 1]")

        self.token_budget = token_budget
        self.budget_ratio = budget_ratio
        self.chars_per_token = chars_per_token

    @property
    def greedy_cap(self) -> float:
        return self.token_budget * self.budget_ratio

    def estimate(self, text: str) -> int:
        return estimate_tokens(text, self.chars_per_token)

    def assemble(self, documents: list[ContextDocument]) -> AssembledContext:
        """Assemble context from candidate documents.

        Args:
            documents: Candidates in the order they should appear when all fit.

        Returns:
            AssembledContext with the context text, included ids in output
            order and the estimated token count of the text.
        """
        rendered = [render_document(document) for document in documents]
        full_text = DOCUMENT_SEPARATOR.join(rendered)
        total_tokens = self.estimate(full_text)

        if total_tokens < self.token_budget:
            logger.info(
                "context_assembled",
                mode="exhaustive",
                documents=len(documents),
                estimated_tokens=total_tokens,
            )
            return AssembledContext(
                text=full_text,
                included_ids=[document.identifier for document in documents],
                estimated_tokens=total_tokens,
                mode="exhaustive",
            )

        return self._assemble_greedy(documents, total_tokens)

    def _assemble_greedy(
        self, documents: list[ContextDocument], total_tokens: int
    ) -> AssembledContext:
        by_recency = sorted(documents, key=lambda document: document.recency, reverse=True)

        blocks: list[str] = []
        included: list[str] = []
        excluded: list[str] = []
        running = 0

        for document in by_recency:
            block = render_document(document)
            # Separator cost is charged to every block after the first.
            cost = self.estimate(DOCUMENT_SEPARATOR + block if blocks else block)

            if running + cost >= self.greedy_cap:
                excluded.append(document.identifier)
                logger.info(
                    "context_document_excluded",
                    identifier=document.identifier,
                    estimated_tokens=cost,
                    running_tokens=running,
                    cap=self.greedy_cap,
                )
                continue

            blocks.append(block)
            included.append(document.identifier)
            running += cost

        text = DOCUMENT_SEPARATOR.join(blocks)
        estimated = self.estimate(text)

        logger.info(
            "context_assembled",
            mode="greedy_recency",
            documents=len(documents),
            included=len(included),
            excluded=len(excluded),
            total_tokens=total_tokens,
            estimated_tokens=estimated,
        )
        return AssembledContext(
            text=text,
            included_ids=included,
            estimated_tokens=estimated,
            mode="greedy_recency",
            excluded_ids=excluded,
        )
