#!/usr/bin/env python3
"""
Main entry point for the Drilling Rig Controller.

Usage:
    drillrig                          # Tick scheduler + API server
    drillrig --cli                    # Interactive console, one tick per line
    drillrig --ticks 20 --command drill   # Run ticks headless and exit
"""

import sys
import argparse
import signal
import logging
from pathlib import Path
from typing import Optional

from drillrig.core import (
    DeviceRegistry, DeviceNames, RigController, SequenceConfig,
    CommandQueue, TickScheduler, Command, load_config
)
from drillrig.api import create_app, APIServer
from drillrig.api.logger import get_logger, attach_controller, log_exception


# Global instances for cleanup
scheduler: Optional[TickScheduler] = None


def setup_logging(config: dict) -> None:
    """Configure logging."""
    log_config = config.get('logging', {})
    level = getattr(logging, log_config.get('level', 'INFO').upper())

    log_file = log_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file) if log_file else logging.NullHandler()
        ]
    )

    log_dir = log_config.get('dir')
    if log_dir:
        get_logger().configure_files(
            log_dir,
            max_bytes=log_config.get('max_bytes', 10 * 1024 * 1024),
            backup_count=log_config.get('backup_count', 5),
        )


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    print("\nShutdown requested...")
    cleanup()
    sys.exit(0)


def cleanup():
    """Stop the tick scheduler and close the log files."""
    global scheduler

    if scheduler:
        scheduler.stop()
        scheduler = None

    get_logger().close()

    get_logger().close()


def init_system(config: dict) -> tuple:
    """
    Initialize all system components.

    Returns:
        Tuple of (registry, controller, commands)
    """
    print("Initializing system...")

    registry = DeviceRegistry.from_config(config.get('bench', {}).get('blocks'))
    print(f"  Registry loaded ({len(registry.names)} blocks)")

    sequence_config = SequenceConfig.from_dict(config.get('motion'), config.get('sequencer'))
    names = DeviceNames.from_dict(config.get('devices'))
    max_lines = config.get('status_display', {}).get('max_lines', 23)

    controller = RigController(registry, names, sequence_config, max_lines=max_lines)
    attach_controller(controller)

    if controller.init():
        print("  All rig blocks found")
    else:
        status = controller.get_status()
        print(f"  ERROR: {status.error_message}")

    get_logger().system("Rig controller initialized", source="main",
                        details={'missing': controller.get_status().missing_devices})

    return registry, controller, CommandQueue()


def run_server(config: dict, registry, controller, commands):
    """Run tick scheduler in background and API server in foreground."""
    global scheduler

    interval = config.get('scheduler', {}).get('tick_interval_s', 1.6)
    scheduler = TickScheduler(controller.tick, commands, interval_s=interval)
    scheduler.start()

    api_config = config.get('api', {})
    host = api_config.get('host', '0.0.0.0')
    port = api_config.get('port', 5000)

    print(f"Starting API server on {host}:{port}...")
    app = create_app(controller, registry, commands, config)
    APIServer(app, host, port).start(threaded=False)


def run_ticks(controller, count: int, command: Optional[str]):
    """Run a fixed number of ticks, the command on the first one."""
    for i in range(count):
        controller.tick(command if i == 0 else None)
    print(controller.display.render())


def run_cli_mode(registry, controller):
    """Run interactive CLI mode."""
    print("\n=== Drilling Rig Console ===")
    print(f"Commands: {', '.join(c.value for c in Command)} (each line runs one tick)")
    print("          tick, status, display, devices, set <block> <field> <value>, quit")
    print()

    while True:
        try:
            line = input("> ").strip()
            if not line:
                continue

            parts = line.split()
            cmd = parts[0]

            if cmd in ('quit', 'exit'):
                break

            elif cmd == 'tick':
                controller.tick(parts[1] if len(parts) > 1 else None)
                print(controller.display.text)

            elif cmd == 'status':
                status = controller.get_status()
                print(f"Phase: {status.phase.name} step {status.step}/{status.total_steps}")
                print(f"Error: {status.error.name} {status.error_message}")
                print(f"Sections lowered: {status.sections_completed}")

            elif cmd == 'display':
                print(controller.display.render())

            elif cmd == 'devices':
                for name, device in registry.describe().items():
                    print(f"  {name}: {device}")

            elif cmd == 'set' and len(parts) >= 4:
                # Block names contain spaces: last two words are field and value
                name = " ".join(parts[1:-2])
                if registry.set_value(name, parts[-2], parts[-1]):
                    print(f"{name}.{parts[-2]} = {parts[-1]}")
                else:
                    print(f"Failed to set {parts[-2]} on {name}")

            else:
                controller.tick(cmd)
                print(controller.display.text)

        except KeyboardInterrupt:
            break
        except EOFError:
            break


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Drilling Rig Controller')
    parser.add_argument('--cli', action='store_true',
                        help='Start in CLI mode')
    parser.add_argument('--ticks', type=int, default=0,
                        help='Run this many ticks headless and exit')
    parser.add_argument('--command', default=None,
                        help='Command token for the first headless tick')
    parser.add_argument('--config', default=None,
                        help='Path to settings.yaml')
    parser.add_argument('--host', default=None,
                        help='API server host')
    parser.add_argument('--port', type=int, default=None,
                        help='API server port')
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config = load_config([Path(args.config)] if args.config else None)
    setup_logging(config)

    if args.host:
        config.setdefault('api', {})['host'] = args.host
    if args.port:
        config.setdefault('api', {})['port'] = args.port

    try:
        registry, controller, commands = init_system(config)

        if args.ticks:
            run_ticks(controller, args.ticks, args.command)

        elif args.cli:
            run_cli_mode(registry, controller)

        else:
            run_server(config, registry, controller, commands)

    except ValueError as e:
        log_exception("Invalid configuration", e, source="main")
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    finally:
        cleanup()


if __name__ == '__main__':
    main()
