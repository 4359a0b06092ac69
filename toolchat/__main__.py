"""
toolchat CLI entry point.

Provides command-line access to the chat engine: send a message and watch
the event stream, inspect stored transcripts, and show configuration.
"""

import argparse
import asyncio
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from pydantic import ValidationError

from toolchat import __version__
from toolchat.config.logging import get_logger, setup_logging
from toolchat.config.settings import Settings, load_settings


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="toolchat",
        description="Streaming tool-calling chat engine for a cluster dashboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolchat {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Config command
    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Send one message and print the event stream",
    )
    chat_parser.add_argument(
        "message",
        help='Message to send, e.g. "Why is my ingress returning 503?"',
    )
    chat_parser.add_argument(
        "--session",
        default=None,
        help="Continue an existing session (default: start a new one)",
    )
    chat_parser.add_argument(
        "--model",
        default=None,
        help="Model override for this message (subject to LLM__ALLOWED_MODELS)",
    )
    chat_parser.add_argument(
        "--owner",
        default="cli",
        help="Owner the session belongs to (default: cli)",
    )
    chat_parser.add_argument("--route", default="", help="Dashboard route the user is on")
    chat_parser.add_argument("--kind", default="", help="Kind of the resource being viewed")
    chat_parser.add_argument("--name", default="", help="Name of the resource being viewed")
    chat_parser.add_argument("--namespace", default="", help="Current namespace")

    # History command
    history_parser = subparsers.add_parser(
        "history",
        help="Print a stored session transcript",
    )
    history_parser.add_argument("session_id", help="Session to print")
    history_parser.add_argument(
        "--owner",
        default=None,
        help="Only show the session if it belongs to this owner",
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== toolchat Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nLLM Model: {settings.llm.model}")
    logger.info(f"LLM API Key: {'Set' if settings.llm.api_key else 'Not set'}")
    logger.info(f"LLM API Base: {settings.llm.api_base or 'provider default'}")
    logger.info(f"Model Override: {'allowed' if settings.llm.allow_model_override else 'disabled'}")
    if settings.llm.allowed_models:
        logger.info(f"Allowed Models: {', '.join(settings.llm.allowed_models)}")
    logger.info(f"\nMax Rounds: {settings.chat.max_rounds}")
    logger.info(f"Title Generation: {settings.chat.generate_titles}")
    logger.info(f"Event Buffer: {settings.chat.event_buffer_size}")
    logger.info(f"\nStore Backend: {settings.store.backend}")
    if settings.store.backend == "jsonl":
        logger.info(f"Store Path: {settings.store.path}")
    logger.info(f"\nMCP Tool Server: {settings.tools.mcp_server_command or 'None'}")

    return 0


async def cmd_chat(args, settings: Settings) -> int:
    """
    Send one message and write each event to stdout as it arrives.

    Args:
        args: Parsed command-line arguments
        settings: Application settings

    Returns:
        Exit code (0 if the conversation finished, 1 otherwise)
    """
    from toolchat.chat import ChatContext, ChatRequest, ChatService
    from toolchat.conversation.store import create_store
    from toolchat.events import QueueEventSink
    from toolchat.llm import LiteLLMProvider, LoopState
    from toolchat.tools import NavigateToTool
    from toolchat.tools.mcp import MCPToolServer

    logger = get_logger(__name__)

    try:
        request = ChatRequest(
            session_id=args.session,
            message=args.message,
            model_override=args.model,
            context=ChatContext(
                route=args.route,
                kind=args.kind,
                name=args.name,
                namespace=args.namespace,
            ),
        )
    except ValidationError as e:
        logger.error(f"Invalid chat request: {e}")
        return 1

    if not settings.llm.api_key:
        logger.warning("LLM API key not set (LLM__API_KEY). The request will fail.")

    store = create_store(settings.store)
    service = ChatService(LiteLLMProvider(settings.llm), store, settings.chat, settings.llm)
    sink = QueueEventSink(maxsize=settings.chat.event_buffer_size)

    async with AsyncExitStack() as stack:
        tools = [NavigateToTool()]
        if settings.tools.mcp_server_command:
            try:
                server = await stack.enter_async_context(
                    MCPToolServer(settings.tools.mcp_server_command, settings.tools.mcp_server_args)
                )
                tools.extend(await server.list_tools())
            except Exception as e:
                logger.error(f"Failed to start MCP tool server: {e}")
                return 1

        async def produce():
            try:
                return await service.handle(request, args.owner, sink, tools)
            finally:
                await sink.close()

        producer = asyncio.create_task(produce())
        async for event in sink:
            sys.stdout.write(event.encode())
            sys.stdout.flush()
        result = await producer

        await service.wait_for_background()

    return 0 if result is not None and result.state is LoopState.FINISHED else 1


async def cmd_history(args, settings: Settings) -> int:
    """Print a stored transcript."""
    from toolchat.conversation.store import SessionNotFoundError, create_store, dump_transcript

    logger = get_logger(__name__)
    store = create_store(settings.store)

    try:
        session = await store.load(args.session_id, owner=args.owner)
    except SessionNotFoundError as e:
        logger.error(str(e))
        return 1

    print(dump_transcript(session))
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    # Setup logging
    setup_logging(settings)

    # Execute command
    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    elif args.command == "history":
        return asyncio.run(cmd_history(args, settings))
    else:
        # Default: show help
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
