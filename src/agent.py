"""LangGraph session loop for the Linear weather agent.

Architecture:
  One *session turn* runs a LangGraph StateGraph with four nodes:

    1. **guard**  — counts iterations; past the cap it publishes the
                    "maximum iterations" error and ends the turn without
                    calling the model
    2. **agent**  — calls the model with the whole transcript, classifies the
                    reply into one activity and publishes it
    3. **act**    — runs the requested tool, publishes the action again with
                    its result and appends ``Tool result: ...`` to the
                    transcript
    4. **pause**  — fixed pacing delay before the next cycle

  Routing:
    guard → (cap reached?) → END
          → agent → (response / elicitation / error) → END
                  → (thought) → pause → guard
                  → (action)  → act → pause → guard

  Every step awaits its publish before moving on, so one turn is strictly
  sequential.  The transcript lives in the graph state of a single
  invocation and is never shared between turns.

  Failures:
    Tool failures are conversation content (the executor returns text).
    Model-call failures and unparseable actions end the turn: the exception
    leaves the graph and ``SessionLoop.handle_prompt`` publishes one
    ``Agent error: ...`` activity.  If publishing itself fails the turn is
    abandoned without further publish attempts.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from src.activities import (
    TERMINAL_STATUS,
    ActionActivity,
    ErrorActivity,
    SessionStatus,
    ThoughtActivity,
    TurnResult,
)
from src.classifier import UnrecognizedActivityError, classify_response
from src.config import (
    ANTHROPIC_API_KEY,
    MAX_ITERATIONS,
    MODEL_MAX_TOKENS,
    MODEL_NAME,
    MODEL_TEMPERATURE,
    PACING_SECONDS,
)
from src.executor import ActionExecutor
from src.prompts import get_system_prompt
from src.services.metrics import metrics
from src.sinks import ActivityPublishError, ActivitySink

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGE = (
    "The agent has reached the maximum number of iterations and will now stop."
)
TOOL_RESULT_PREFIX = "Tool result: "
# Sent (but never stored) when the transcript ends with an assistant entry.
CONTINUE_PROMPT = "Continue."
# guard + agent + act + pause per iteration, plus the final guard.
_STEPS_PER_ITERATION = 4


class ModelCallError(RuntimeError):
    """Raised when the language model call fails."""


# ── State schema ─────────────────────────────────────────────────────


class SessionState(TypedDict):
    """The state that flows through the graph for one turn.

    ``messages`` uses the ``add_messages`` reducer so nodes append to the
    transcript.  ``pending_action`` carries a published-but-not-executed
    action from the agent node to the act node; ``last_response`` is the raw
    model text of the current cycle.
    """

    session_id: str
    messages: Annotated[list[AnyMessage], add_messages]
    iterations: int
    status: SessionStatus
    pending_action: ActionActivity | None
    last_response: str


def initial_state(session_id: str, user_prompt: str) -> SessionState:
    return {
        "session_id": session_id,
        "messages": [
            SystemMessage(content=get_system_prompt()),
            HumanMessage(content=user_prompt),
        ],
        "iterations": 0,
        "status": SessionStatus.RUNNING,
        "pending_action": None,
        "last_response": "",
    }


# ── Model calls ──────────────────────────────────────────────────────


def _build_llm() -> ChatAnthropic:
    """Build the chat model used for every cycle (no tool bindings)."""
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=MODEL_TEMPERATURE,
        max_tokens=MODEL_MAX_TOKENS,
    )


def _message_text(message: Any) -> str:
    """Extract plain text from a chat model reply (string or content blocks)."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def _prepare_model_input(messages: list[AnyMessage]) -> list[AnyMessage]:
    """Return the request messages for one model call.

    Anthropic treats a trailing assistant message as a prefix to continue,
    which happens after every Thought cycle.  A transient user nudge keeps
    each reply a fresh, prefixed activity.
    """
    if messages and isinstance(messages[-1], AIMessage):
        return [*messages, HumanMessage(content=CONTINUE_PROMPT)]
    return list(messages)


async def call_model(llm: Any, messages: list[AnyMessage]) -> str:
    """Call *llm* once with the full transcript and return its text."""
    t0 = time.perf_counter()
    try:
        response = await llm.ainvoke(_prepare_model_input(messages))
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure(
            "anthropic", "session_model_call",
            error_type=type(exc).__name__, latency_ms=elapsed,
        )
        raise ModelCallError(f"Model API error: {exc}") from exc

    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("anthropic", "session_model_call", latency_ms=elapsed)
    logger.debug("Model responded in %.0fms", elapsed)
    return _message_text(response) or "No response"


# ── Nodes ────────────────────────────────────────────────────────────


def _make_guard_node(sink: ActivitySink, max_iterations: int):
    """Create the node that enforces the iteration cap."""

    async def guard_node(state: SessionState) -> dict:
        iterations = state["iterations"] + 1
        if iterations > max_iterations:
            logger.warning(
                "[%s] Reached the maximum of %d iterations",
                state["session_id"], max_iterations,
            )
            await sink.publish(state["session_id"], ErrorActivity(body=MAX_ITERATIONS_MESSAGE))
            return {"status": SessionStatus.EXHAUSTED}
        return {"iterations": iterations}

    return guard_node


def _make_agent_node(llm: Any, sink: ActivitySink, fallback_to_thought: bool):
    """Create the node that calls the model and publishes the classified activity."""

    async def agent_node(state: SessionState) -> dict:
        session_id = state["session_id"]
        raw = await call_model(llm, state["messages"])

        try:
            activity = classify_response(raw)
        except UnrecognizedActivityError:
            if not fallback_to_thought:
                raise
            logger.info("[%s] Reply has no activity prefix, treating it as a thought", session_id)
            activity = ThoughtActivity(body=raw.strip())

        logger.debug(
            "[%s] Iteration %d: %s activity", session_id, state["iterations"], activity.type.value,
        )
        await sink.publish(session_id, activity)

        if isinstance(activity, ActionActivity):
            return {"pending_action": activity, "last_response": raw}
        if activity.is_terminal:
            return {"status": TERMINAL_STATUS[activity.type], "last_response": raw}
        return {"messages": [AIMessage(content=raw)], "last_response": raw}

    return agent_node


def _make_act_node(executor: ActionExecutor, sink: ActivitySink):
    """Create the node that executes a pending action and reports its result."""

    async def act_node(state: SessionState) -> dict:
        action = state["pending_action"]
        result = await executor.execute(action.action, action.parameter)
        await sink.publish(state["session_id"], action.with_result(result))
        return {
            "messages": [
                AIMessage(content=state["last_response"]),
                HumanMessage(content=f"{TOOL_RESULT_PREFIX}{result}"),
            ],
            "pending_action": None,
        }

    return act_node


def _make_pause_node(pacing_seconds: float):
    async def pause_node(state: SessionState) -> dict:
        if pacing_seconds > 0:
            await asyncio.sleep(pacing_seconds)
        return {}

    return pause_node


# ── Conditional edges ────────────────────────────────────────────────


def route_after_guard(state: SessionState) -> str:
    if state["status"] == SessionStatus.EXHAUSTED:
        return END
    return "agent"


def route_after_agent(state: SessionState) -> str:
    if state["status"] != SessionStatus.RUNNING:
        return END
    if state.get("pending_action") is not None:
        return "act"
    return "pause"


# ── Graph assembly ───────────────────────────────────────────────────


def create_session_graph(
    llm: Any,
    sink: ActivitySink,
    executor: ActionExecutor,
    *,
    max_iterations: int = MAX_ITERATIONS,
    pacing_seconds: float = PACING_SECONDS,
    fallback_to_thought: bool = True,
):
    """Build and compile the session-turn graph.

    No checkpointer is attached: a turn's state exists only for the duration
    of one ``ainvoke`` / ``astream`` call.
    """
    graph = StateGraph(SessionState)

    graph.add_node("guard", _make_guard_node(sink, max_iterations))
    graph.add_node("agent", _make_agent_node(llm, sink, fallback_to_thought))
    graph.add_node("act", _make_act_node(executor, sink))
    graph.add_node("pause", _make_pause_node(pacing_seconds))

    graph.set_entry_point("guard")
    graph.add_conditional_edges("guard", route_after_guard, {"agent": "agent", END: END})
    graph.add_conditional_edges(
        "agent", route_after_agent, {"act": "act", "pause": "pause", END: END},
    )
    graph.add_edge("act", "pause")
    graph.add_edge("pause", "guard")

    return graph.compile()


class SessionLoop:
    """Drives one agent session turn from prompt to terminal activity."""

    def __init__(
        self,
        sink: ActivitySink,
        llm: Any = None,
        executor: ActionExecutor | None = None,
        *,
        max_iterations: int = MAX_ITERATIONS,
        pacing_seconds: float = PACING_SECONDS,
        fallback_to_thought: bool = True,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._sink = sink
        self._max_iterations = max_iterations
        self._graph = create_session_graph(
            llm if llm is not None else _build_llm(),
            sink,
            executor or ActionExecutor(),
            max_iterations=max_iterations,
            pacing_seconds=pacing_seconds,
            fallback_to_thought=fallback_to_thought,
        )

    async def handle_prompt(self, session_id: str, user_prompt: str) -> TurnResult:
        """Run one turn for *user_prompt* and return how it ended."""
        state = initial_state(session_id, user_prompt)
        config = {"recursion_limit": self._max_iterations * _STEPS_PER_ITERATION + 5}
        logger.info("[%s] Turn started", session_id)

        try:
            async for snapshot in self._graph.astream(state, config=config, stream_mode="values"):
                state = snapshot
            status = SessionStatus(state["status"])
        except ActivityPublishError as exc:
            logger.error("[%s] Abandoning turn, activity could not be published: %s", session_id, exc)
            status = SessionStatus.FAILED
        except Exception as exc:
            logger.exception("[%s] Turn failed", session_id)
            status = SessionStatus.FAILED
            await self._publish_failure(session_id, f"Agent error: {exc or type(exc).__name__}")

        result = TurnResult(
            session_id=session_id,
            status=status,
            iterations=state["iterations"],
            messages=list(state["messages"]),
        )
        metrics.record_turn(status.value, result.iterations)
        logger.info(
            "[%s] Turn finished: %s after %d iteration(s)",
            session_id, status.value, result.iterations,
        )
        return result

    async def _publish_failure(self, session_id: str, message: str) -> None:
        try:
            await self._sink.publish(session_id, ErrorActivity(body=message))
        except ActivityPublishError as exc:
            logger.error("[%s] Could not publish failure activity: %s", session_id, exc)
        except Exception:
            logger.exception("[%s] Sink crashed while publishing failure activity", session_id)
