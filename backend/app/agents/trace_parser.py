"""
Trace parser: one completion in, typed steps and a final answer out.

Grammar (one label per line, everything else ignored):
    Thought: ...
    Action: <tool name>
    Action Input: <tool input>
    Observation: ...        (discarded; observations come from real execution)
    Final Answer: ...       (terminates parsing; the rest of the text is the answer)

Each completed Action is dispatched before parsing continues, so the order of
observation steps always matches execution order.
"""

import json
import re
from collections.abc import Awaitable, Callable

import structlog

from app.agents.heuristics import needs_clarification
from app.constants import FALLBACK_FINAL_ANSWER, OBSERVATION_MAX_CHARS
from app.models.agent import AgentResponse, Step, StepKind, ToolResult, parse_tool_payload

logger = structlog.get_logger(__name__)

Dispatch = Callable[[str, str], Awaitable[ToolResult]]

# "Action Input" must precede "Action" in the alternation.
LABEL_PATTERN = re.compile(
    r"^\**\s*(Thought|Action Input|Action|Observation|Final Answer)\s*:\**\s*(.*)$"
)
FINAL_ANSWER_PATTERN = re.compile(r"Final Answer:\**\s*(.+)", re.DOTALL | re.IGNORECASE)


def format_observation(tool_name: str, result: ToolResult) -> str:
    """Human-readable observation text for a tool result."""
    if not result.success:
        return f"Tool execution failed: {result.error}"

    payload = parse_tool_payload(tool_name, result.data)
    if payload is not None:
        rendered = payload.model_dump_json(indent=2)
    else:
        rendered = json.dumps(result.data, indent=2, default=str, ensure_ascii=False)
    if len(rendered) > OBSERVATION_MAX_CHARS:
        rendered = rendered[:OBSERVATION_MAX_CHARS] + "..."
    return f"Tool executed successfully in {result.execution_time_ms:.0f}ms. Result: {rendered}"


def _fallback_final_answer(completion: str) -> str | None:
    matches = list(FINAL_ANSWER_PATTERN.finditer(completion))
    if not matches:
        return None
    return matches[-1].group(1).strip() or None


async def _run_action(
    steps: list[Step], index: int, action_input: str, dispatch: Dispatch, max_steps: int
) -> None:
    """Complete the pending action at steps[index], dispatch it, append the observation."""
    pending = steps[index]
    action = pending.model_copy(
        update={
            "action_input": action_input,
            "text": f"{pending.text}\nAction Input: {action_input}",
        }
    )

    if len(steps) >= max_steps:
        logger.warning("trace_step_cap_reached", max_steps=max_steps, tool=action.action_name)
        result = ToolResult.fail(f"Step limit of {max_steps} reached; tool not executed")
    else:
        try:
            result = await dispatch(action.action_name or "", action_input)
        except Exception as e:
            logger.warning("trace_dispatch_error", tool=action.action_name, error=str(e))
            result = ToolResult.fail(f"Tool execution error: {str(e) or type(e).__name__}")

    steps[index] = action.model_copy(update={"tool_result": result})
    steps.append(
        Step(
            kind=StepKind.OBSERVATION,
            text=format_observation(action.action_name or "", result),
            tool_result=result,
        )
    )


async def parse_trace(completion: str, dispatch: Dispatch, max_steps: int = 15) -> AgentResponse:
    """
    Parse a completion into an AgentResponse, executing actions as they appear.

    Never raises. Parse errors keep the steps gathered so far and fall back
    to a canned final answer.
    """
    steps: list[Step] = []
    final_answer: str | None = None
    pending_index: int | None = None

    try:
        lines = completion.splitlines()
        for position, raw_line in enumerate(lines):
            match = LABEL_PATTERN.match(raw_line.strip())
            if not match:
                continue
            label, text = match.group(1), match.group(2).strip()

            if label == "Thought":
                steps.append(Step(kind=StepKind.THOUGHT, text=text))
            elif label == "Action":
                if pending_index is not None:
                    logger.info("trace_action_missing_input", tool=steps[pending_index].action_name)
                steps.append(Step(kind=StepKind.ACTION, text=f"Action: {text}", action_name=text))
                pending_index = len(steps) - 1
            elif label == "Action Input":
                if pending_index is None:
                    logger.debug("trace_orphan_action_input")
                    continue
                await _run_action(steps, pending_index, text, dispatch, max_steps)
                pending_index = None
            elif label == "Final Answer":
                rest = "\n".join([text, *lines[position + 1 :]])
                final_answer = rest.strip() or None
                break
            # Model-written observations are discarded.

        if pending_index is not None:
            logger.info("trace_action_missing_input", tool=steps[pending_index].action_name)

        if final_answer is None:
            final_answer = _fallback_final_answer(completion)
            if final_answer is not None:
                logger.debug("trace_final_answer_recovered")
    except Exception:
        logger.exception("trace_parse_failed", steps=len(steps))
        final_answer = None

    if not final_answer:
        logger.info("trace_final_answer_missing", steps=len(steps))
        return AgentResponse(steps=steps, final_answer=FALLBACK_FINAL_ANSWER)

    # Complete once a final answer exists, even if a trailing action never got an input.
    return AgentResponse(
        steps=steps,
        final_answer=final_answer,
        needs_clarification=needs_clarification(final_answer),
    )
