"""Command-line interface."""

import argparse
import platform
import sys

from otter_bridge.app import App
from otter_bridge.config import APP_NAME, BRIDGE_PORT, DEFAULT_HOST, default_config_path
from otter_bridge.errors import BridgeError
from otter_bridge.prefs import Preferences


def print_banner(app: App):
    prefs = app.get_preferences()
    host, port = app.bridge.server_address

    print("")
    print("=" * 50)
    print(f"  {APP_NAME}")
    print("=" * 50)
    print(f"  Address  : {host}:{port}")
    print(f"  Printer  : {prefs.address if prefs.usable else '(not configured)'}")
    print(f"  Config   : {app.store.path}")
    print(f"  Platform : {platform.system()}")
    print("=" * 50)
    print(f"  URL: http://{host}:{port}/")
    print("=" * 50)
    print("")


def serve(app: App) -> int:
    """Run the bridge in the foreground until interrupted."""
    print_banner(app)
    app.startup()

    try:
        app.supervisor.join()
    except KeyboardInterrupt:
        print("\nShutting down...")
        app.shutdown()

    if app.supervisor.failure is not None:
        return 1
    return 0


def show(app: App) -> int:
    prefs = app.get_preferences()
    print(f"printer_ip   : {prefs.printer_ip}")
    print(f"printer_port : {prefs.printer_port}")
    return 0


def set_printer(app: App, ip: str, port: str) -> int:
    """Save printer settings and verify them with a test page."""
    app.save_preferences(Preferences(printer_ip=ip, printer_port=port))
    print(f"Saved printer {ip}:{port}")
    return 0


def test_page(app: App) -> int:
    app.bridge.print_test_page()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="otter-bridge",
        description="Otter Order Printer Bridge - Forward print jobs from the browser to a network receipt printer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                Start the bridge on 127.0.0.1:3838
  %(prog)s serve -H 0.0.0.0               Listen on all interfaces
  %(prog)s set 192.168.1.87               Save printer IP (port 9100) and print a test page
  %(prog)s set 192.168.1.87 --port 9101   Save printer IP and port
  %(prog)s show                           Show saved printer settings
  %(prog)s test-page                      Print a test page
        """,
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help=f"Preferences file (default: {default_config_path()})",
    )

    parser.add_argument(
        "-H",
        "--host",
        default=DEFAULT_HOST,
        metavar="ADDR",
        help=f"Bridge bind address (default: {DEFAULT_HOST})",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=BRIDGE_PORT,
        metavar="PORT",
        help=f"Bridge port (default: {BRIDGE_PORT})",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.add_parser("serve", help="Run the bridge (default)")
    commands.add_parser("show", help="Show saved printer settings")

    set_cmd = commands.add_parser("set", help="Save printer settings and print a test page")
    set_cmd.add_argument("ip", help="Printer IP address")
    set_cmd.add_argument(
        "--port",
        dest="printer_port",
        default=Preferences().printer_port,
        metavar="PORT",
        help="Printer raw port (default: %(default)s)",
    )

    commands.add_parser("test-page", help="Print a test page to the saved printer")

    return parser


def main(argv=None) -> int:
    """Main entry point with CLI argument parsing."""
    args = build_parser().parse_args(argv)
    app = App.create(args.config, host=args.host, port=args.port)

    try:
        if args.command == "show":
            return show(app)
        if args.command == "set":
            return set_printer(app, args.ip, args.printer_port)
        if args.command == "test-page":
            return test_page(app)
        return serve(app)
    except BridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
