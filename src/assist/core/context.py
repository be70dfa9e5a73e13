"""Context window selection."""

from __future__ import annotations

import math
from collections.abc import Sequence

from loguru import logger

from assist.core.types import Role, Turn

DEFAULT_TOKEN_BUDGET = 4000
DEFAULT_SYSTEM_PROMPT = """You are EstateAssist, a professional AI real estate agent specializing in residential and commercial properties.

Your role is to provide expert guidance on:
- Property valuations and market analysis
- Buying and selling processes
- Rental agreements and tenant relations
- Property investment strategies
- Mortgage and financing options
- Real estate market trends and insights
- Property inspection and maintenance advice
- Legal considerations in real estate transactions

Always prioritize:
1. Accuracy of information and current market data
2. Clear, professional communication
3. Ethical real estate practices
4. Client's best interests and financial well-being
5. Transparency about limitations and regulations

Communication style:
- Be knowledgeable yet approachable
- Explain complex real estate concepts in simple terms
- Provide specific, actionable advice when possible
- Ask clarifying questions to better understand the client's needs
- Acknowledge regional differences in real estate practices

If you don't have specific information about local regulations, market conditions, or pricing, clearly state this \
and recommend consulting with a licensed local real estate professional or legal advisor."""


def estimate_tokens(text: str) -> int:
    """Rough token estimate, about four characters per token."""
    return math.ceil(len(text) / 4)


class ContextWindowManager:
    """Select the turns sent upstream for one request.

    A synthesized system turn always comes first and counts against the
    budget. History is walked newest to oldest and truncated at the first turn
    that no longer fits, so recent turns always win over older ones. System
    turns already present in the history are skipped.
    """

    def __init__(self, token_budget: int = DEFAULT_TOKEN_BUDGET, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self.token_budget = token_budget
        self.system_prompt = system_prompt

    def fit(
        self,
        turns: Sequence[Turn],
        token_budget: int | None = None,
        system_prompt: str | None = None,
        *,
        session_id: str = "",
    ) -> list[Turn]:
        budget = self.token_budget if token_budget is None else token_budget
        prompt = self.system_prompt if system_prompt is None else system_prompt
        if not session_id and turns:
            session_id = turns[0].session_id

        system_turn = Turn.create(Role.SYSTEM, prompt, session_id)
        used = estimate_tokens(prompt)
        selected: list[Turn] = []
        for turn in reversed(turns):
            if turn.role is Role.SYSTEM:
                continue
            cost = estimate_tokens(turn.text)
            if used + cost > budget:
                logger.warning("context.truncate kept={} total={} budget={}", len(selected), len(turns), budget)
                break
            used += cost
            selected.append(turn)

        selected.reverse()
        logger.debug("context.fit tokens={}/{} turns={}", used, budget, len(selected) + 1)
        return [system_turn, *selected]
