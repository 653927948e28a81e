"""Main CLI application.

Click commands for toolrelay: chat, tools, providers.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

import click

from toolrelay import __version__
from toolrelay.config.loader import load_config
from toolrelay.core.errors import ConfigError, ToolrelayError

if TYPE_CHECKING:
    from toolrelay.cli.display import ChatDisplay
    from toolrelay.config.schema import GatewayConfig, LoggingConfig, ToolrelayConfig
    from toolrelay.session import SessionController
    from toolrelay.tools.base import ToolCatalog

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(
    config_path: str | None, overrides: dict[str, Any] | None = None
) -> ToolrelayConfig:
    """Load config with user-friendly error handling."""
    try:
        return load_config(path=config_path, overrides=overrides)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy


def _setup_logging(config: LoggingConfig) -> None:
    """Route toolrelay logs to stderr, or to ``config.file`` when set."""
    level = getattr(logging, config.level.upper(), logging.INFO)
    kwargs: dict[str, Any] = {"level": level, "format": _LOG_FORMAT}
    if config.file:
        kwargs["filename"] = config.file
    logging.basicConfig(**kwargs)


def _gateway_overrides(
    mcp_command: str | None,
    mcp_args: tuple[str, ...],
    mcp_url: str | None,
    rest_url: str | None,
) -> dict[str, Any]:
    """Translate gateway CLI options into config overrides."""
    if mcp_command:
        return {"transport": "stdio", "command": mcp_command, "args": list(mcp_args)}
    if mcp_url:
        return {"transport": "http", "url": mcp_url}
    if rest_url:
        return {"transport": "rest", "url": rest_url}
    return {}


def _build_gateway(config: GatewayConfig, *, demo_tools: bool = False) -> ToolCatalog:
    """Instantiate the tool gateway described by ``config``.

    Raises:
        ConfigError: If the transport is unknown or missing its target.
    """
    transport = config.transport
    if transport == "stdio":
        if not config.command:
            msg = "gateway.command is required for the stdio transport"
            raise ConfigError(msg)
        from toolrelay.tools.mcp_gateway import McpStdioGateway

        return McpStdioGateway(
            config.command, config.args, env=config.env, timeout=config.timeout
        )
    if transport in ("http", "rest"):
        if not config.url:
            msg = f"gateway.url is required for the {transport} transport"
            raise ConfigError(msg)
        if transport == "http":
            from toolrelay.tools.mcp_gateway import McpHttpGateway

            return McpHttpGateway(config.url, timeout=config.timeout)
        from toolrelay.tools.http_gateway import RestToolGateway

        return RestToolGateway(config.url, timeout=config.timeout)
    if transport == "none":
        from toolrelay.tools.local import LocalToolGateway, demo_gateway

        return demo_gateway() if demo_tools else LocalToolGateway()
    msg = f"Unknown gateway transport: {transport!r}"
    raise ConfigError(msg)


async def _open_gateway(gateway: ToolCatalog) -> None:
    connect = getattr(gateway, "connect", None)
    if connect is not None:
        await connect()


async def _close_gateway(gateway: ToolCatalog) -> None:
    aclose = getattr(gateway, "aclose", None)
    if aclose is not None:
        await aclose()


# ── CLI group ────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="toolrelay")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """toolrelay - Chat with an LLM that can call your tools.

    One conversation core for Anthropic, OpenAI and Ollama models.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


_gateway_options = [
    click.option("--mcp-command", default=None, help="Launch an MCP server (stdio)."),
    click.option(
        "--mcp-arg",
        "mcp_args",
        multiple=True,
        help="Argument for --mcp-command (repeatable).",
    ),
    click.option("--mcp-url", default=None, help="Remote MCP server URL."),
    click.option("--rest-url", default=None, help="REST tool server base URL."),
    click.option(
        "--demo-tools",
        is_flag=True,
        default=False,
        help="Use the built-in demo tools when no server is given.",
    ),
]


def gateway_options(fn: Any) -> Any:
    for option in reversed(_gateway_options):
        fn = option(fn)
    return fn


# ── chat ─────────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--provider",
    type=click.Choice(["anthropic", "openai", "ollama"]),
    default=None,
    help="Model provider (overrides config).",
)
@click.option("--model", default=None, help="Model id (overrides config).")
@click.option(
    "--base-url", default=None, help="Endpoint for openai-compatible or ollama servers."
)
@gateway_options
@click.pass_context
def chat(
    ctx: click.Context,
    provider: str | None,
    model: str | None,
    base_url: str | None,
    mcp_command: str | None,
    mcp_args: tuple[str, ...],
    mcp_url: str | None,
    rest_url: str | None,
    demo_tools: bool,
) -> None:
    """Start an interactive chat session."""
    llm: dict[str, Any] = {}
    if provider is not None:
        llm["provider"] = provider
    if model is not None:
        llm["model"] = model
    if base_url is not None:
        llm["base_url"] = base_url
    overrides: dict[str, Any] = {}
    if llm:
        overrides["llm"] = llm
    gateway = _gateway_overrides(mcp_command, mcp_args, mcp_url, rest_url)
    if gateway:
        overrides["gateway"] = gateway

    config = _load_config(ctx.obj["config_path"], overrides)
    _setup_logging(config.logging)

    from toolrelay.cli.display import ChatDisplay

    try:
        asyncio.run(_chat_async(config, ChatDisplay(), demo_tools=demo_tools))
    except ToolrelayError as e:
        _error(str(e))


async def _chat_async(
    config: ToolrelayConfig, display: ChatDisplay, *, demo_tools: bool = False
) -> None:
    """Async implementation for the chat command."""
    from toolrelay.session import SessionController

    gateway = _build_gateway(config.gateway, demo_tools=demo_tools)
    await _open_gateway(gateway)
    session = SessionController()
    try:
        await session.connect(config, gateway)
        display.banner(config.llm.provider, config.llm.model, len(session.tools))
        await _chat_loop(session, gateway, display)
    finally:
        await session.aclose()
        await _close_gateway(gateway)


async def _chat_loop(
    session: SessionController, gateway: ToolCatalog, display: ChatDisplay
) -> None:
    """Read lines until /quit or end of input."""
    while True:
        try:
            line = await asyncio.to_thread(display.prompt)
        except (EOFError, KeyboardInterrupt):
            display.info("Bye.")
            return

        text = line.strip()
        if not text:
            continue
        if text in ("/quit", "/exit"):
            display.info("Bye.")
            return
        if text == "/help":
            display.show_help()
            continue
        if text == "/clear":
            session.reset()
            display.info("Conversation cleared.")
            continue
        if text == "/tools":
            try:
                tools = await session.refresh_tools(gateway)
            except ToolrelayError as e:
                display.error(str(e))
                continue
            display.show_tools(tools)
            continue
        if text == "/stats":
            display.show_stats(session.stats(), len(session.history()))
            continue

        try:
            with display.thinking():
                answer = await session.send(text)
        except ToolrelayError as e:
            # The session survives provider failures; report and keep going
            display.error(str(e))
            continue
        display.show_answer(answer)


# ── tools ────────────────────────────────────────────────────────


@cli.command()
@gateway_options
@click.pass_context
def tools(
    ctx: click.Context,
    mcp_command: str | None,
    mcp_args: tuple[str, ...],
    mcp_url: str | None,
    rest_url: str | None,
    demo_tools: bool,
) -> None:
    """List the tools exposed by the configured tool server."""
    overrides: dict[str, Any] = {}
    gateway = _gateway_overrides(mcp_command, mcp_args, mcp_url, rest_url)
    if gateway:
        overrides["gateway"] = gateway
    config = _load_config(ctx.obj["config_path"], overrides)
    _setup_logging(config.logging)

    from toolrelay.cli.display import ChatDisplay

    try:
        asyncio.run(_tools_async(config, ChatDisplay(), demo_tools=demo_tools))
    except ToolrelayError as e:
        _error(str(e))


async def _tools_async(
    config: ToolrelayConfig, display: ChatDisplay, *, demo_tools: bool = False
) -> None:
    """Async implementation for the tools command."""
    gateway = _build_gateway(config.gateway, demo_tools=demo_tools)
    await _open_gateway(gateway)
    try:
        listing = await gateway.list_tools()
    finally:
        await _close_gateway(gateway)
    display.show_tools(listing)


# ── providers ────────────────────────────────────────────────────


@cli.command()
def providers() -> None:
    """List supported providers and the field each one requires."""
    from toolrelay.cli.display import ChatDisplay
    from toolrelay.providers.factory import SUPPORTED_PROVIDERS

    ChatDisplay().show_providers(SUPPORTED_PROVIDERS)
