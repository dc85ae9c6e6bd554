"""StateMachine: owner of the singleton AgentState.

No other component writes the agent_state table. Reads that fail return a
degraded default instead of raising; writes that fail are logged and the
in-memory state is kept so the loop can continue.
"""

import logging
from dataclasses import replace
from typing import Optional

from mindloop.protocols import StorageError
from mindloop.types import STATE_RANGE, AgentMode, AgentState, Decision, DecisionKind, utc_now
from mindloop.utils import clamp, offload, truncate

logger = logging.getLogger(__name__)

# Checked in order; the first keyword found in the action text wins
MODE_KEYWORDS = (
    ("think", AgentMode.THINKING),
    ("reflect", AgentMode.REFLECTING),
    ("explor", AgentMode.EXPLORING),
    ("sleep", AgentMode.SLEEPING),
    ("rest", AgentMode.SLEEPING),
    ("awake", AgentMode.AWAKE),
)

REST_THOUGHT = "Resting, integrating memories."

_UPDATABLE = frozenset(
    {"mode", "motivation", "motivation_intensity", "last_thought", "autonomy_level"}
)


def parse_mode(action: str) -> Optional[AgentMode]:
    """Extract a target mode from free-form action text, or None."""
    text = (action or "").lower()
    for keyword, mode in MODE_KEYWORDS:
        if keyword in text:
            return mode
    return None


def _normalize(state: AgentState) -> AgentState:
    low, high = STATE_RANGE
    state.motivation_intensity = int(clamp(int(state.motivation_intensity), low, high))
    state.autonomy_level = int(clamp(int(state.autonomy_level), low, high))
    state.last_thought = truncate(state.last_thought or "")
    if not isinstance(state.mode, AgentMode):
        state.mode = AgentMode(state.mode)
    return state


class StateMachine:
    def __init__(self, storage, store_timeout: Optional[float] = None):
        self._storage = storage
        self._store_timeout = store_timeout
        self._state: Optional[AgentState] = None

    @property
    def current(self) -> Optional[AgentState]:
        """Last state read or written by this machine (None before first read)."""
        return self._state

    async def read(self) -> AgentState:
        """Load the live state, creating the initial record on first boot."""
        try:
            state = await offload(self._storage.get_agent_state, timeout=self._store_timeout)
            if state is None:
                state = AgentState.initial()
                await offload(self._storage.save_agent_state, state, timeout=self._store_timeout)
                logger.info("Initialized agent state on first boot")
        except StorageError as e:
            logger.warning(f"Could not read agent state, using degraded default: {e}")
            return AgentState.degraded()
        self._state = state
        return replace(state)

    async def update(self, **fields) -> AgentState:
        """Partial merge: fields not given keep their current value."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown agent state fields: {sorted(unknown)}")

        base = self._state if self._state is not None else await self.read()
        merged = _normalize(replace(base, **fields, updated_at=utc_now()))
        self._state = merged
        try:
            await offload(self._storage.save_agent_state, merged, timeout=self._store_timeout)
        except StorageError as e:
            logger.warning(f"Could not persist agent state, keeping in-memory copy: {e}")
        return replace(merged)

    async def apply_decision(self, decision: Decision) -> AgentState:
        """Move the state according to a decision."""
        if decision.kind == DecisionKind.REST:
            return await self.update(mode=AgentMode.SLEEPING, last_thought=REST_THOUGHT)

        if decision.kind == DecisionKind.CHANGE_STATE:
            target = parse_mode(decision.action)
            if target is None:
                logger.debug(f"No mode keyword in action {decision.action!r}, state unchanged")
                return await self.update(last_thought=decision.reasoning)
            return await self.update(mode=target, last_thought=decision.reasoning)

        return await self.update(last_thought=decision.reasoning)
