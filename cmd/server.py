"""
DocQA - Server Entry Point

Starts the HTTP API or an interactive console session over the workspace.

Usage:
    python cmd/server.py --mode api

Or with specific configuration:
    python cmd/server.py --mode interactive --workspace ./data/uploads --model llama-3.3-70b-versatile
"""

import argparse
import asyncio
import sys
import uuid
from pathlib import Path

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

import uvicorn

from docqa.config.settings import Settings, get_settings
from docqa.core.exceptions import DocQAException
from docqa.core.logging import configure_logging
from docqa.main import create_app
from docqa.services.chat_service import ChatRequest
from docqa.services.container import ServiceContainer, build_services


async def interactive_mode(services: ServiceContainer):
    """Run a console chat session against the local workspace."""
    session_id = f"cli-{uuid.uuid4()}"
    print("Interactive mode - type 'exit' to quit, 'reset' to clear the conversation")
    print(f"Workspace: {services.workspace.root} ({services.index.count()} documents indexed)")

    while True:
        try:
            query = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            break

        if query.lower() in ("exit", "quit", "q"):
            break
        if not query:
            continue
        if query.lower() == "reset":
            await services.chat.reset_session(session_id)
            print("Conversation cleared.")
            continue

        try:
            reply = await services.chat.answer(ChatRequest(message=query, session_id=session_id))
        except DocQAException as e:
            print(f"Error: {e.user_message}")
            continue

        print(reply.reply)
        for source in reply.sources:
            print(f"  [{source.filename} lines {source.line_start}-{source.line_end}] score={source.score:.3f}")
        if reply.used_general_knowledge:
            print("  (answered from general knowledge)")


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    if args.model:
        settings.llm.model = args.model
    if args.workspace:
        settings.workspace.root = args.workspace
    if args.host:
        settings.service.host = args.host
    if args.port:
        settings.service.port = args.port
    return settings


def main():
    """Main application entry point."""
    parser = argparse.ArgumentParser(description="DocQA document question answering service")
    parser.add_argument("--mode", choices=["api", "interactive"], default="api", help="Run mode")
    parser.add_argument("--model", help="Chat model to use")
    parser.add_argument("--workspace", help="Workspace directory holding uploaded documents")
    parser.add_argument("--host", help="API host")
    parser.add_argument("--port", type=int, help="API port")

    args = parser.parse_args()
    settings = apply_overrides(get_settings(), args)

    if args.mode == "api":
        print(f"Starting API server on {settings.service.host}:{settings.service.port}")
        uvicorn.run(create_app(settings), host=settings.service.host, port=settings.service.port)
        return

    configure_logging(settings.monitoring.log_level, "console")
    try:
        services = build_services(settings)
    except DocQAException as e:
        print(f"Failed to start: {e.user_message}")
        sys.exit(1)
    asyncio.run(interactive_mode(services))


if __name__ == "__main__":
    main()
