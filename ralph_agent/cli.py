"""CLI entry point for Ralph."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click
from click.core import ParameterSource

from ralph_agent import __version__
from ralph_agent.config import RalphConfig
from ralph_agent.logs import RunLog, resolve_log_dir, write_summary
from ralph_agent.loop import LoopResult, clear_pending_approvals, run_loop
from ralph_agent.mode import LoopState
from ralph_agent.permissions import PERMISSION_MODES, parse_rules
from ralph_agent.platform import PlatformError, get_platform
from ralph_agent.tools import SchemaToolRegistry
from ralph_agent.ui import get_ui, normalize_ui_mode

EXIT_INTERRUPTED = 130


def _use_cli_value(ctx: click.Context, name: str) -> bool:
    return ctx.get_parameter_source(name) == ParameterSource.COMMANDLINE


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Ralph - Keep a remote coding agent working until it keeps its promise."""
    pass


@cli.command()
@click.argument("task")
@click.option(
    "--completion-promise",
    help="Phrase the agent must emit in <promise> tags to finish",
)
@click.option(
    "--no-promise",
    is_flag=True,
    help="Run without a completion promise (until max iterations or Ctrl-C)",
)
@click.option(
    "--max-iterations", "-n",
    type=int,
    default=0,
    help="Maximum iterations (0 = unbounded)",
)
@click.option(
    "--yolo",
    is_flag=True,
    help="Approve every tool call not matched by a deny rule",
)
@click.option(
    "--agent", "-a",
    "agent_id",
    help="Existing agent id (a new agent is created when omitted)",
)
@click.option(
    "--model", "-m",
    help="Model for a newly created agent",
)
@click.option(
    "--base-url",
    help="Agent platform base URL",
)
@click.option(
    "--permission-mode",
    type=click.Choice(PERMISSION_MODES),
    default="default",
    help="Permission mode for tool approvals",
)
@click.option(
    "--allowed-tools",
    help="Comma-separated allow rules, e.g. 'Read,Bash(git:*)'",
)
@click.option(
    "--disallowed-tools",
    help="Comma-separated deny rules",
)
@click.option(
    "--resume-attempts",
    type=int,
    default=5,
    help="Reconnect attempts for an interrupted stream",
)
@click.option(
    "--log-dir",
    type=click.Path(path_type=Path),
    help="Directory for run logs (default: .ralph/logs)",
)
@click.option(
    "--ui",
    type=click.Choice(["auto", "rich", "plain", "gum"]),
    default="auto",
    help="UI mode",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colors",
)
@click.option(
    "--ascii",
    is_flag=True,
    help="Use ASCII characters only",
)
def run(
    task: str,
    completion_promise: str | None,
    no_promise: bool,
    max_iterations: int,
    yolo: bool,
    agent_id: str | None,
    model: str | None,
    base_url: str | None,
    permission_mode: str,
    allowed_tools: str | None,
    disallowed_tools: str | None,
    resume_attempts: int,
    log_dir: Path | None,
    ui: str,
    no_color: bool,
    ascii: bool,
) -> None:
    """Run TASK in a loop until the completion promise is met.

    Exit codes: 0 promise met, 1 max iterations reached, 2 error, 130 interrupted.
    """
    ctx = click.get_current_context()
    root_dir = Path.cwd()

    # Build config from environment defaults first.
    config = RalphConfig.from_env(root_dir)
    config.task = task

    # Apply CLI overrides when explicitly provided.
    if _use_cli_value(ctx, "completion_promise"):
        config.completion_promise = completion_promise
    if no_promise:
        config.completion_promise = None
    if _use_cli_value(ctx, "max_iterations"):
        config.max_iterations = max_iterations
    if _use_cli_value(ctx, "yolo"):
        config.yolo = yolo
    if _use_cli_value(ctx, "agent_id"):
        config.agent_id = agent_id
    if _use_cli_value(ctx, "model"):
        config.model = model
    if _use_cli_value(ctx, "base_url"):
        config.base_url = base_url or config.base_url
    if _use_cli_value(ctx, "permission_mode"):
        config.permission_mode = permission_mode
    if _use_cli_value(ctx, "allowed_tools"):
        config.allowed_tools = parse_rules(allowed_tools)
    if _use_cli_value(ctx, "disallowed_tools"):
        config.disallowed_tools = parse_rules(disallowed_tools)
    if _use_cli_value(ctx, "resume_attempts"):
        config.resume_attempts = resume_attempts
    if _use_cli_value(ctx, "log_dir"):
        config.log_dir = resolve_log_dir(root_dir, log_dir)
    if _use_cli_value(ctx, "ui"):
        config.ui_mode = ui
    if _use_cli_value(ctx, "no_color"):
        config.no_color = no_color
    if _use_cli_value(ctx, "ascii"):
        config.ascii_only = ascii

    config.ui_mode = normalize_ui_mode(config.ui_mode)

    force_rich = os.environ.get("RALPH_FORCE_RICH") == "1"
    ui_impl = get_ui(
        config.ui_mode,
        config.no_color,
        config.ascii_only,
        force_rich=force_rich,
    )

    errors = config.validate()
    if errors:
        for error in errors:
            ui_impl.err(error)
        sys.exit(2)

    platform = get_platform(config.base_url, config.api_key)
    try:
        policy = config.permission_policy()

        ui_impl.title("Ralph")
        ui_impl.section("Startup")
        ui_impl.kv("Platform", platform.name)
        ui_impl.kv("Max iterations", str(config.max_iterations or "unbounded"))
        ui_impl.kv("Promise", config.completion_promise or "<none>")
        ui_impl.kv("Permissions", policy.mode)
        ui_impl.kv("UI", config.ui_mode)

        try:
            resolved_agent = config.agent_id
            if resolved_agent is None:
                resolved_agent = platform.create_agent(config.model)
                ui_impl.info(f"Created agent {resolved_agent}")
            ui_impl.kv("Agent", resolved_agent)
            registry = SchemaToolRegistry.from_platform(platform, resolved_agent)
            clear_pending_approvals(platform, resolved_agent, ui_impl)
        except PlatformError as exc:
            ui_impl.err(str(exc))
            sys.exit(2)

        state = LoopState()
        with RunLog(config.log_dir) as run_log:
            ui_impl.kv("Log", str(run_log.log_path))
            try:
                result = run_loop(
                    config,
                    ui_impl,
                    platform,
                    agent_id=resolved_agent,
                    arbiter=policy,
                    registry=registry,
                    state=state,
                    run_log=run_log,
                )
            except KeyboardInterrupt:
                # run_loop has already deactivated the state.
                ui_impl.warn("Interrupted")
                _summarize(run_log, config, resolved_agent, None, "interrupted", EXIT_INTERRUPTED)
                sys.exit(EXIT_INTERRUPTED)

            _summarize(
                run_log, config, resolved_agent, result, result.outcome.value, result.exit_code
            )

        sys.exit(result.exit_code)
    finally:
        platform.close()


def _summarize(
    run_log: RunLog,
    config: RalphConfig,
    agent_id: str,
    result: LoopResult | None,
    outcome: str,
    exit_code: int,
) -> None:
    write_summary(
        run_log,
        outcome=outcome,
        exit_code=exit_code,
        iterations=result.iterations if result else 0,
        agent_id=agent_id,
        completion_promise=config.completion_promise,
        message=result.message if result else None,
    )


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
