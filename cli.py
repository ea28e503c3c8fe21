"""CLI entry point for Slump.

Runs the local API for the desktop UI, or drives a login or a stream
session straight from the terminal.
"""
import argparse
import signal
import sys
import threading
import time

from config import load_config, load_env, parse_resolution
from errors import SlumpError
from logging_config import setup_logging

VERSION = "0.1.0"


# ============== Helper Functions ==============

def resolution(value: str) -> tuple[int, int]:
    """argparse type for WIDTHxHEIGHT."""
    try:
        return parse_resolution(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def print_error(result: dict) -> None:
    print(f"[X] {result.get('error_description') or result.get('error', 'Unknown error')}")


# ============== Commands ==============

def cmd_serve(args):
    """Serve the local API for the UI."""
    from main import run

    run(host=args.host, port=args.port)
    return 0


def cmd_login(args):
    """Run one browser login and wait for the outcome."""
    from bridge import Bridge

    config = load_config()
    bridge = Bridge(config)
    done = threading.Event()
    outcome = {}

    def on_success():
        outcome["success"] = True
        done.set()

    def on_failure(result):
        outcome.update(result)
        done.set()

    bridge.on_authenticated(on_success)
    bridge.on_auth_failed(on_failure)

    print("Opening browser for login...")
    result = bridge.start_authorization()
    if not result["success"]:
        print_error(result)
        bridge.shutdown()
        return 1

    pending = bridge.orchestrator.pending
    if pending is not None:
        print(f"If the browser did not open, visit:\n  {pending.authorization_url}")
    print("Waiting for login callback...", flush=True)
    try:
        # The flow has its own timeout; the margin covers the token request
        done.wait(config.auth_timeout + config.token_timeout + 5)
    except KeyboardInterrupt:
        print("\n[X] Login cancelled.")
        bridge.shutdown()
        return 130

    bridge.shutdown()
    if outcome.get("success"):
        print("[OK] Logged in. Tokens are kept in memory only and were not saved.")
        return 0
    if outcome:
        print_error(outcome)
    else:
        print("[X] Login timed out. Please try again.")
    return 1


def cmd_stream(args):
    """Start a stream session and print stats until interrupted."""
    from bridge import Bridge

    config = load_config()
    bridge = Bridge(config)

    settings = {"bitrate_kbps": args.bitrate, "fps": args.fps}
    if args.resolution:
        settings["width"], settings["height"] = args.resolution

    result = bridge.start_stream(settings)
    if not result["success"]:
        print_error(result)
        bridge.shutdown()
        return 1

    cfg = result["config"]
    print(f"[OK] Streaming {cfg['width']}x{cfg['height']}@{cfg['fps']} at {cfg['bitrate_kbps']} kbps")
    print("Press Ctrl+C to stop.")

    stop = threading.Event()
    previous = signal.signal(signal.SIGTERM, lambda sig, frame: stop.set())
    deadline = time.monotonic() + args.duration if args.duration else None
    try:
        while not stop.wait(config.stats_interval):
            if bridge.stream_status() != "connected":
                print("[X] Stream session lost.")
                break
            stats = bridge.get_stats()
            if stats["success"]:
                print(f"  Bitrate: {stats['bitrate_kbps']} kbps  Latency: {stats['latency_ms']} ms")
            if deadline is not None and time.monotonic() >= deadline:
                break
    except KeyboardInterrupt:
        print()
    finally:
        signal.signal(signal.SIGTERM, previous)
        stopped = bridge.stop_stream()
        bridge.shutdown()

    if stopped["success"]:
        print("[OK] Stream stopped.")
    else:
        print("[!] Engine did not confirm the stop; session reset to idle.")
    return 0


def cmd_status(args):
    """Show configuration status."""
    config = load_config()
    missing = config.missing_oauth_settings()

    print("\n=== Slump Status ===\n")
    if missing:
        print("[X] OAuth configuration incomplete. Missing:")
        for name in missing:
            print(f"  - {name}")
    else:
        try:
            settings = config.oauth_settings()
        except SlumpError as e:
            print(f"[X] {e}")
        else:
            print("[OK] OAuth configured")
            print(f"  Authorization URL: {settings.auth_url}")
            print(f"  Redirect URI:      {settings.redirect_uri()}")
            print(f"  Scopes:            {' '.join(settings.scopes)}")
            print(f"  Login timeout:     {settings.timeout:g}s")

    defaults = config.stream_defaults()
    print("\nStreaming:")
    print(f"  Engine module: {config.engine_module}")
    print(f"  Defaults:      {defaults['width']}x{defaults['height']}@{defaults['fps']} "
          f"{defaults['bitrate_kbps']} kbps")
    print(f"  Stats every:   {config.stats_interval:g}s")
    print(f"\nLocal API: http://{config.api_host}:{config.api_port}\n")
    return 1 if missing else 0


def cmd_version(args):
    """Show version information."""
    print(f"slump v{VERSION}")
    return 0


def cmd_help(args):
    """Show detailed help."""
    print("""
Slump - desktop login and stream control

USAGE:
    slump <command> [options]

COMMANDS:
    serve       Serve the local API for the UI (default)
    login       Log in through the browser (tokens stay in memory)
    stream      Start streaming and print stats until Ctrl+C
    status      Show configuration status
    version     Show version information
    help        Show this help message

CONFIGURATION (.env or environment):
    META_CLIENT_ID, META_CLIENT_SECRET      OAuth client credentials
    META_OAUTH_AUTH_URL, META_OAUTH_TOKEN_URL
    META_REDIRECT_PORT                      Loopback port for the redirect
    OAUTH_SCOPES                            Comma separated scopes

EXAMPLES:
    slump serve --port 8767
    slump login
    slump stream --bitrate 12000 --resolution 1920x1080 --fps 90
""")
    return 0


# ============== Main Entry Point ==============

COMMANDS = {
    "serve": cmd_serve,
    "login": cmd_login,
    "stream": cmd_stream,
    "status": cmd_status,
    "version": cmd_version,
    "help": cmd_help,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slump",
        description="Slump - desktop login and stream control",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=list(COMMANDS),
        help="Command to run (default: serve)"
    )
    parser.add_argument("--host", help="Local API host (serve)")
    parser.add_argument("--port", type=int, help="Local API port (serve)")
    parser.add_argument("--bitrate", type=int, help="Bitrate in kbps (stream)")
    parser.add_argument("--resolution", type=resolution, help="WIDTHxHEIGHT (stream)")
    parser.add_argument("--fps", type=int, help="Frames per second (stream)")
    parser.add_argument("--duration", type=float, help="Stop after N seconds (stream)")
    parser.add_argument("--log-level", help="Override SLUMP_LOG_LEVEL")
    return parser


def main(argv=None) -> int:
    """Main entry point for CLI."""
    load_env()
    args = build_parser().parse_args(argv)

    config = load_config()
    setup_logging(args.log_level or config.log_level, config.log_file)

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
