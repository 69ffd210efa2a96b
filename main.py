"""
Invigilator - Main Entry Point

Usage:
    python main.py                     # Start local API server (default)
    python main.py --port 8001         # Start on specific port
    python main.py session             # Proctor this machine until Ctrl+C
    python main.py session --room r1   # ...and publish violations to a LiveKit room

API Endpoints:
    POST /sessions               - Start a proctoring session
    POST /sessions/{id}/stop     - Stop a session, returns submission metadata
    GET  /sessions/{id}          - Status, face count, latest violation
    GET  /sessions/{id}/violations
    POST /sessions/{id}/events   - Check an input event against the lockdown
    GET  /status                 - Active sessions
    GET  /health                 - Health check
"""
from __future__ import annotations

import argparse
import asyncio


def main():
    """Main entry point."""
    from invigilator.cfg import get_settings

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Invigilator proctoring agent")
    parser.add_argument("mode", nargs="?", choices=["serve", "session"], default="serve")
    parser.add_argument("--host", default=settings.api_host, help="Server host")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Server port")
    parser.add_argument("--room", default=None, help="LiveKit room for violation publishing")
    parser.add_argument("--duration", type=float, default=None, help="Session length in seconds")
    args = parser.parse_args()

    if args.mode == "session":
        print("🚀 Starting Invigilator session...")
        from invigilator.service.proctoring import main as run_session
        raise SystemExit(asyncio.run(run_session(args.room, args.duration)))

    print("🚀 Starting Invigilator API...")
    print(f"📡 Listening on http://{args.host}:{args.port}")
    print()
    print("Endpoints:")
    print("  POST /sessions              - Start proctoring")
    print("  POST /sessions/{id}/stop    - Stop proctoring")
    print("  GET  /sessions/{id}         - Session state")
    print("  GET  /status                - Active sessions")
    print("  GET  /health                - Health check")
    print()

    from invigilator.api.server import start_server
    start_server(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
