"""
Developer command-line harness for Tandem.

This module provides a small click CLI to chat with the configured model
backend, check connectivity and list local Ollama models.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.theme import Theme

from tandem.agent.service import AIAgentService
from tandem.config.loader import load_configuration
from tandem.config.schema import Configuration, ModelConfig
from tandem.exceptions import ConfigurationError, TandemError
from tandem.llm.adapters.factory import create_adapter
from tandem.llm.adapters.ollama import OllamaAdapter
from tandem.llm.models import StreamChunk

logger = logging.getLogger(__name__)

TANDEM_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bright_red bold",
        "success": "green",
        "muted": "grey50",
        "user": "bright_blue bold",
        "tool": "bright_magenta bold",
    },
)

console = Console(theme=TANDEM_THEME, highlight=False)

SESSION_ID = "cli"


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def resolve_model(
    config: Configuration,
    provider: str | None,
    model: str | None,
    endpoint: str | None,
) -> ModelConfig:
    """
    Apply command-line overrides to the configured model.

    Raises
    ------
    ConfigurationError
        If no provider or model name is known after the overrides.
    """
    values: dict[str, Any] = config.model.model_dump() if config.model else {}
    if provider:
        values["provider"] = provider
    if model:
        values["name"] = model
    if endpoint:
        values["endpoint"] = endpoint
    if not values.get("provider") or not values.get("name"):
        raise ConfigurationError(
            "No model configured. Set [model] in .tandem/config.toml, "
            "TANDEM_PROVIDER/TANDEM_MODEL, or pass --provider and --model.",
        )
    return ModelConfig.model_validate(values)


class ChatCLI:
    """
    Interactive chat loop around ``AIAgentService``.

    Parameters
    ----------
    service : AIAgentService
        Service with a model already set.
    stream : bool
        Stream replies chunk by chunk.
    """

    def __init__(self, service: AIAgentService, stream: bool) -> None:
        self.service: AIAgentService = service
        self.stream: bool = stream

    def _print_chunk(self, chunk: StreamChunk) -> None:
        if chunk.content:
            console.print(chunk.content, end="", markup=False)

    async def ask(self, text: str) -> None:
        if self.stream:
            reply = await self.service.send_message(SESSION_ID, text, on_chunk=self._print_chunk)
            console.print()
        else:
            with console.status("[muted]thinking...[/muted]"):
                reply = await self.service.send_message(SESSION_ID, text)
            console.print(Markdown(reply.content or ""))

        for result in reply.tool_results or []:
            status = "[success]ok[/success]" if result.success else "[error]failed[/error]"
            console.print(f"[tool]⚙ {result.metadata.tool_name}[/tool] {status}")
            console.print(f"[muted]{result.to_model_output()}[/muted]", markup=False)

    def handle_command(self, command: str) -> bool:
        """
        Run a slash command.

        Returns
        -------
        bool
            False when the loop should exit.
        """
        name = command.split(maxsplit=1)[0].lower()
        if name in ("/exit", "/quit"):
            return False
        if name == "/help":
            console.print("commands: /help /stats /tools /clear /exit")
        elif name == "/stats":
            context = self.service.get_conversation_context(SESSION_ID)
            if context is None:
                console.print("[muted]No messages yet[/muted]")
            else:
                console.print("\n[bold]Context Statistics[/bold]")
                for key, value in context.get_stats().items():
                    console.print(f"   {key}: {value}")
        elif name == "/tools":
            tools = self.service.get_available_tools()
            console.print(f"\n[bold]Available tools ({len(tools)})[/bold]")
            for tool in tools:
                console.print(f"  • {tool.name}: {tool.description}")
        elif name == "/clear":
            self.service.clear_conversation_context(SESSION_ID)
            console.print("[success]Conversation cleared[/success]")
        else:
            console.print(f"[error]Unknown command: {name}[/error]")
        return True

    async def run(self) -> None:
        model = self.service.get_current_model()
        if model is not None:
            console.print(f"[bold]Tandem[/bold] [muted]{model.provider}/{model.name}[/muted]")
        console.print("[muted]commands: /help /stats /tools /clear /exit[/muted]")

        while True:
            try:
                text = console.input("\n[user]→[/user] ").strip()
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            if not text:
                continue
            if text.startswith("/"):
                if not self.handle_command(text):
                    break
                continue
            try:
                await self.ask(text)
            except TandemError as e:
                console.print(f"[error]{e.message}[/error]")


async def run_chat(config: Configuration, model: ModelConfig, stream: bool) -> None:
    service = AIAgentService(configuration=config)
    try:
        await service.set_model(model)
        await ChatCLI(service, stream).run()
    finally:
        await service.close()


async def run_ping(model: ModelConfig) -> bool:
    adapter = create_adapter(model.provider)
    try:
        await adapter.initialize(model)
        return await adapter.test_connection()
    finally:
        await adapter.close()


async def run_models(endpoint: str | None) -> None:
    adapter = OllamaAdapter(base_url=endpoint)
    try:
        models = await adapter.list_models()
    finally:
        await adapter.close()

    table = Table(title="Ollama models")
    table.add_column("Name", style="info")
    table.add_column("Size", justify="right")
    table.add_column("Parameters", justify="right")
    table.add_column("Modified", style="muted")
    for model in models:
        table.add_row(
            model.name,
            f"{model.size / 1024**3:.1f} GB",
            str(model.details.get("parameter_size", "")),
            model.modified_at,
        )
    console.print(table)


def load_or_exit(cwd: Path | None) -> Configuration:
    try:
        return load_configuration(cwd=cwd)
    except ConfigurationError as e:
        console.print(f"[error]Configuration Error: {e.message}[/error]")
        sys.exit(1)


@click.group()
@click.option(
    "--cwd",
    "-c",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project directory to load .tandem/ configuration from",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, cwd: Path | None, debug: bool) -> None:
    """Tandem - conversation engine for local and hosted models."""
    load_dotenv()
    config = load_or_exit(cwd)
    configure_logging(debug or config.debug)
    ctx.obj = config


def model_options(func: Any) -> Any:
    func = click.option("--endpoint", "-e", help="Backend endpoint URL")(func)
    func = click.option("--model", "-m", help="Model name")(func)
    func = click.option("--provider", "-p", help="Provider (ollama, huggingface, openai, custom)")(func)
    return func


@cli.command()
@model_options
@click.option("--stream/--no-stream", default=True, help="Stream replies as they arrive")
@click.pass_obj
def chat(
    config: Configuration,
    provider: str | None,
    model: str | None,
    endpoint: str | None,
    stream: bool,
) -> None:
    """Start an interactive chat with the configured model."""
    try:
        model_config = resolve_model(config, provider, model, endpoint)
        asyncio.run(run_chat(config, model_config, stream))
    except TandemError as e:
        console.print(f"[error]{e.message}[/error]")
        sys.exit(1)


@cli.command()
@model_options
@click.pass_obj
def ping(
    config: Configuration,
    provider: str | None,
    model: str | None,
    endpoint: str | None,
) -> None:
    """Check that the configured backend and model are reachable."""
    try:
        model_config = resolve_model(config, provider, model, endpoint)
        ok = asyncio.run(run_ping(model_config))
    except TandemError as e:
        console.print(f"[error]{e.message}[/error]")
        sys.exit(1)
    if not ok:
        console.print("[error]Connection test failed[/error]")
        sys.exit(1)
    console.print(f"[success]{model_config.provider}/{model_config.name} is reachable[/success]")


@cli.command()
@click.option("--endpoint", "-e", help="Ollama endpoint URL")
def models(endpoint: str | None) -> None:
    """List models installed on the Ollama server."""
    try:
        asyncio.run(run_models(endpoint))
    except TandemError as e:
        console.print(f"[error]{e.message}[/error]")
        sys.exit(1)


if __name__ == "__main__":
    cli()
