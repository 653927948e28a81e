"""Context budget manager — keep a transcript inside a model's context window.

Token counts are estimated, not tokenized:

    turn     = ceil(len(serialized turn) / chars_per_token)
               + turn_overhead
               + tool_call_overhead * number of tool calls in the turn
    tools    = ceil(len(serialized tool descriptions) / chars_per_token)
    system   = ceil(len(system prompt) / chars_per_token)
    available = context_window - reserved_output - tools - system

The estimate is deliberately crude and errs on the high side. When the
transcript estimate exceeds ``available`` it is trimmed in stages; trimmed
turns are discarded for good.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from toolrelay.config.schema import BudgetConfig
from toolrelay.core.errors import BudgetExhaustedError
from toolrelay.providers.base import (
    AssistantTurn,
    ToolResultTurn,
    UserTurn,
    is_tool_bearing,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from toolrelay.providers.base import Turn

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BudgetStats:
    """Snapshot of how much of the context window a conversation uses."""

    message_count: int
    estimated_tokens: int
    tool_tokens: int
    system_tokens: int
    model_limit: int
    reserved_output: int
    available_tokens: int

    @property
    def usage_ratio(self) -> float:
        """Fraction of the available budget used by the transcript."""
        if self.available_tokens <= 0:
            return 1.0
        return self.estimated_tokens / self.available_tokens


def default_render(turn: Turn) -> dict[str, Any]:
    """Provider-neutral JSON form of a turn, used for size estimates."""
    if isinstance(turn, UserTurn):
        return {"role": "user", "content": turn.text}
    if isinstance(turn, ToolResultTurn):
        return {
            "role": "tool",
            "tool_call_id": turn.tool_call_id,
            "content": turn.content,
        }
    if turn.raw is not None:
        return {"role": "assistant", "content": turn.raw}
    return {
        "role": "assistant",
        "content": turn.text,
        "tool_calls": [
            {"id": c.id, "name": c.name, "arguments": c.arguments}
            for c in turn.tool_calls
        ],
    }


def _exchange_groups(turns: Sequence[Turn]) -> list[list[int]]:
    """Partition turn indices into units that must be kept or dropped together.

    An assistant turn with tool calls and the result turns answering it form
    one unit; every other turn is a unit of its own.
    """
    groups: list[list[int]] = []
    i = 0
    while i < len(turns):
        turn = turns[i]
        if isinstance(turn, AssistantTurn) and turn.tool_calls:
            ids = {c.id for c in turn.tool_calls}
            group = [i]
            j = i + 1
            while (
                j < len(turns)
                and isinstance(turns[j], ToolResultTurn)
                and turns[j].tool_call_id in ids  # type: ignore[union-attr]
            ):
                group.append(j)
                j += 1
            groups.append(group)
            i = j
        else:
            groups.append([i])
            i += 1
    return groups


class ContextBudgetManager:
    """Estimates and trims a transcript against a fixed token ceiling."""

    def __init__(
        self,
        provider_id: str,
        context_window: int,
        reserved_output: int,
        *,
        config: BudgetConfig | None = None,
        render: Callable[[Turn], Any] | None = None,
    ) -> None:
        self._provider_id = provider_id
        self._config = config or BudgetConfig()
        self._context_window = self._config.context_window or context_window
        self._reserved_output = reserved_output
        self._render = render or default_render
        self._tool_tokens = 0
        self._system_tokens = 0

    @property
    def context_window(self) -> int:
        return self._context_window

    @property
    def tool_tokens(self) -> int:
        return self._tool_tokens

    @property
    def system_tokens(self) -> int:
        return self._system_tokens

    @property
    def available(self) -> int:
        """Tokens left for the transcript itself."""
        return (
            self._context_window
            - self._reserved_output
            - self._tool_tokens
            - self._system_tokens
        )

    # ── Estimation ───────────────────────────────────────────────

    def estimate_text(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._config.chars_per_token)

    def set_tools(self, payload: Any) -> None:
        """Recompute the cost of the serialized tool descriptions."""
        self._tool_tokens = self.estimate_text(json.dumps(payload)) if payload else 0

    def set_system_prompt(self, text: str) -> None:
        self._system_tokens = self.estimate_text(text)

    def estimate_turn(self, turn: Turn) -> int:
        serialized = json.dumps(self._render(turn), ensure_ascii=False, default=str)
        tokens = self.estimate_text(serialized) + self._config.turn_overhead
        if isinstance(turn, AssistantTurn):
            tokens += self._config.tool_call_overhead * len(turn.tool_calls)
        return tokens

    def estimate(self, turns: Sequence[Turn]) -> int:
        return sum(self.estimate_turn(t) for t in turns)

    def stats(self, turns: Sequence[Turn]) -> BudgetStats:
        return BudgetStats(
            message_count=len(turns),
            estimated_tokens=self.estimate(turns),
            tool_tokens=self._tool_tokens,
            system_tokens=self._system_tokens,
            model_limit=self._context_window,
            reserved_output=self._reserved_output,
            available_tokens=self.available,
        )

    # ── Trimming ─────────────────────────────────────────────────

    def check(self) -> int:
        """Return the available budget.

        Raises:
            BudgetExhaustedError: If tools and reserved output leave nothing.
        """
        available = self.available
        if available <= 0:
            raise BudgetExhaustedError(
                self._provider_id, self._context_window, available
            )
        return available

    def fit(self, turns: Sequence[Turn]) -> list[Turn]:
        """Return ``turns`` trimmed to fit the available budget.

        Stage 1 keeps every tool-bearing turn plus the most recent
        ``keep_recent`` turns. If that still exceeds ``stage_two_threshold``
        of the budget, stage 2 keeps only the most recent
        ``stage_two_keep_tool_turns`` tool-bearing turns plus the most
        recent ``stage_two_keep_recent`` turns. If the result still does not
        fit, the oldest remaining units are dropped. No stage removes the
        latest user turn or anything after it, so a tool loop in progress
        keeps its question. Survivors keep their order and tool calls are
        never separated from their results.

        Raises:
            BudgetExhaustedError: If the budget is zero or negative.
        """
        available = self.check()
        before = self.estimate(turns)
        if before <= available:
            return list(turns)

        cfg = self._config
        groups = _exchange_groups(turns)
        n = len(turns)

        tool_idx = [i for i, t in enumerate(turns) if is_tool_bearing(t)]
        protected = set(range(self._protected_start(turns), n))
        recent = set(range(max(0, n - cfg.keep_recent), n))
        kept = self._expand(groups, set(tool_idx) | recent | protected)
        estimate = self._estimate_indices(turns, kept)
        stage = 1

        if estimate > available * cfg.stage_two_threshold:
            stage = 2
            narrow = set(range(max(0, n - cfg.stage_two_keep_recent), n))
            if cfg.stage_two_keep_tool_turns > 0:
                narrow.update(tool_idx[-cfg.stage_two_keep_tool_turns :])
            kept = self._expand(groups, narrow | protected)
            estimate = self._estimate_indices(turns, kept)

        if estimate > available:
            stage = 3
            kept, estimate = self._drop_oldest(turns, groups, kept, available)

        trimmed = [turns[i] for i in sorted(kept)]
        logger.info(
            "[%s] Trimmed transcript (stage %d): %d -> %d turns, "
            "~%d -> ~%d tokens (budget %d)",
            self._provider_id,
            stage,
            n,
            len(trimmed),
            before,
            estimate,
            available,
        )
        if estimate > available:
            logger.warning(
                "[%s] Latest exchange alone exceeds the budget (~%d > %d)",
                self._provider_id,
                estimate,
                available,
            )
        return trimmed

    @staticmethod
    def _expand(groups: list[list[int]], selected: set[int]) -> set[int]:
        """Grow a selection so it covers whole units."""
        kept: set[int] = set()
        for group in groups:
            if selected.intersection(group):
                kept.update(group)
        return kept

    def _estimate_indices(self, turns: Sequence[Turn], indices: set[int]) -> int:
        return sum(self.estimate_turn(turns[i]) for i in indices)

    def _drop_oldest(
        self,
        turns: Sequence[Turn],
        groups: list[list[int]],
        kept: set[int],
        available: int,
    ) -> tuple[set[int], int]:
        protected_from = self._protected_start(turns)
        kept = set(kept)
        estimate = self._estimate_indices(turns, kept)
        for group in groups:
            if estimate <= available:
                break
            if group[-1] >= protected_from:
                break
            if kept.intersection(group):
                kept.difference_update(group)
                estimate = self._estimate_indices(turns, kept)
        return kept, estimate

    def _protected_start(self, turns: Sequence[Turn]) -> int:
        """Index from which turns may never be dropped."""
        last_user = len(turns)
        for i in range(len(turns) - 1, -1, -1):
            if isinstance(turns[i], UserTurn):
                last_user = i
                break
        recent_start = max(0, len(turns) - self._config.stage_two_keep_recent)
        return min(last_user, recent_start)
