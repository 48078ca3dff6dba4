import click


@click.group()
def main() -> None:
    """agentloop - Run markdown-defined AI agents over lists of inputs."""


@main.command()
@click.argument("agent_file", type=click.Path(dir_okay=False, path_type=str))
@click.option("--on-inputs", "on_inputs", multiple=True, help="Run the agent on this string input (repeatable).")
@click.option("--on-files", "on_files", multiple=True, help="Run the agent on files matching this glob (repeatable).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Show rendered instructions and AI output.")
@click.option(
    "--dry",
    type=click.Choice(["req", "res"], case_sensitive=False),
    default=None,
    help="Stop after rendering the instruction (req) or after the AI call (res).",
)
@click.option(
    "--workspace",
    default=None,
    type=click.Path(file_okay=False),
    help="Workspace root (default: from AGENTLOOP_WORKSPACE_DIR or cwd).",
)
def run(
    agent_file: str,
    on_inputs: tuple[str, ...],
    on_files: tuple[str, ...],
    verbose: bool,
    dry: str | None,
    workspace: str | None,
) -> None:
    """Run AGENT_FILE over the given inputs and print the result as JSON."""
    import asyncio
    import json
    from pathlib import Path

    from agentloop.agent_runtime.errors import AgentLoopError
    from agentloop.agent_runtime.execution.coordinator import run_command_agent
    from agentloop.agent_runtime.execution.input import build_inputs
    from agentloop.agent_runtime.execution.resolver import load_agent
    from agentloop.agent_runtime.execution.services import RunServices
    from agentloop.agent_runtime.hub import QueuePublisher
    from agentloop.agent_runtime.log import setup_logging
    from agentloop.agent_runtime.models.enums import DryMode
    from agentloop.agent_runtime.models.run import RunOptions
    from agentloop.agent_runtime.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    if workspace:
        settings = settings.model_copy(update={"workspace_dir": Path(workspace)})
    workspace_dir = settings.resolve_workspace_dir()
    config_file = settings.resolve_config_file()

    try:
        inputs = build_inputs(on_inputs, on_files, base_dir=workspace_dir)
    except ValueError as err:
        raise click.UsageError(str(err)) from err

    run_options = RunOptions(verbose=verbose, dry_mode=DryMode.parse(dry))

    async def _run():
        agent = load_agent(Path(agent_file).expanduser().resolve(), config_path=config_file)
        async with QueuePublisher(maxsize=settings.event_buffer_size) as publisher:
            return await run_command_agent(
                agent,
                inputs,
                run_options,
                services=RunServices(publisher=publisher),
                workspace_dir=workspace_dir,
                return_output_values=True,
            )

    try:
        response = asyncio.run(_run())
    except AgentLoopError as err:
        raise click.ClickException(str(err)) from err

    result = response.after_all if response.after_all is not None else response.outputs
    if result is not None:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False, default=str))
