"""Main orchestration loop for codeloop."""

from __future__ import annotations

import logging
from typing import (
    Callable,
    Optional,
    Tuple,
)

from codeloop.agent.planner_interface import (
    BasePlanner,
    load_planner,
)
from codeloop.agent.tool_executor import ToolDispatcher
from codeloop.common import (
    AnsiColors,
    colored_print,
)
from codeloop.config import settings
from codeloop.core.conversation import Conversation
from codeloop.core.schema import (
    LoopResult,
    LoopStatus,
    UserTurn,
)
from codeloop.tools.sandbox import Workspace

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"", "q", "exit"}
INTERRUPTED = "Error: Tool execution interrupted"


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
def run_agent_loop(
    conversation: Conversation,
    planner: BasePlanner,
    dispatcher: ToolDispatcher,
    max_iterations: Optional[int] = None,
    echo: Optional[Callable[[str], None]] = None,
) -> LoopResult:
    """
    Alternate model calls and dispatch rounds until the model stops asking for tools.

    Each iteration asks *planner* for the next turn and appends it.  A turn without tool calls
    ends the loop; otherwise every call is dispatched in order and its result appended before the
    model is asked again.  With *max_iterations* set, the loop also ends after that many model
    calls, reported as :attr:`LoopStatus.BUDGET_EXHAUSTED`.

    Errors raised by the planner propagate unchanged.  If dispatch itself is interrupted, the
    unanswered calls get placeholder results first so the conversation stays well-formed.
    """
    tools = dispatcher.descriptors
    iterations = 0
    reply: Optional[str] = None

    while True:
        if max_iterations is not None and iterations >= max_iterations:
            logger.warning("Iteration budget of %d model calls exhausted", max_iterations)
            return LoopResult(
                status=LoopStatus.BUDGET_EXHAUSTED, reply=reply, iterations=iterations
            )

        turn = planner.complete(conversation, tools)
        iterations += 1
        conversation.append(turn)
        reply = turn.content
        if turn.content and echo is not None:
            echo(turn.content)

        if not turn.tool_calls:
            logger.debug("Model finished after %d call(s)", iterations)
            return LoopResult(status=LoopStatus.COMPLETED, reply=reply, iterations=iterations)

        logger.info(
            "Planner returned %d tool calls: %s",
            len(turn.tool_calls),
            [call.name for call in turn.tool_calls],
        )
        try:
            for result in dispatcher.dispatch_all(turn.tool_calls):
                conversation.append(result)
        except BaseException:
            conversation.close_pending(INTERRUPTED)
            raise


def ask(
    conversation: Conversation,
    query: str,
    planner: BasePlanner,
    dispatcher: ToolDispatcher,
    max_iterations: Optional[int] = None,
    echo: Optional[Callable[[str], None]] = None,
) -> LoopResult:
    """Append *query* as a user turn and run the agent loop on it."""
    conversation.append(UserTurn(content=query))
    return run_agent_loop(conversation, planner, dispatcher, max_iterations, echo)


# ---------------------------------------------------------------------------
# Interactive shell
# ---------------------------------------------------------------------------
def get_user_message(prompt: str = "") -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    # (True  ⇒  *do* interrupt;  False ⇒ restart them)
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input(prompt).strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def run_cli(
    planner_name: Optional[str] = None,
    workdir: Optional[str] = None,
    max_iterations: Optional[int] = None,
) -> None:
    """Run the interactive shell: one conversation, one query per line."""
    workspace = Workspace.from_settings(workdir)
    planner = load_planner(planner_name, workdir=workspace.root)
    dispatcher = ToolDispatcher(
        workspace, trace=lambda line: colored_print(line, AnsiColors.GREEN)
    )
    if max_iterations is None:
        max_iterations = settings.MAX_ITERATIONS
    conversation = Conversation()

    colored_print(
        f"🔮  codeloop at {workspace.root} - empty line, 'q' or 'exit' to quit.",
        AnsiColors.YELLOW,
    )
    prompt = f"{AnsiColors.CYAN.value}codeloop >> \033[0m"

    while True:
        user_msg, ok = get_user_message(prompt)
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in EXIT_COMMANDS:
            break

        try:
            result = ask(
                conversation,
                user_msg,
                planner,
                dispatcher,
                max_iterations=max_iterations,
                echo=lambda text: colored_print(text, AnsiColors.YELLOW),
            )
        except KeyboardInterrupt:
            colored_print("⚠️ Interrupted.", AnsiColors.RED)
            continue
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Agent loop failed")
            colored_print(f"⚠️ {exc}", AnsiColors.RED)
            continue

        if result.status is LoopStatus.BUDGET_EXHAUSTED:
            colored_print(
                f"⚠️ Stopped after {result.iterations} model calls (MAX_ITERATIONS).",
                AnsiColors.RED,
            )
        print()


if __name__ == "__main__":
    run_cli()
