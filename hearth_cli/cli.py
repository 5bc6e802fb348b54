"""
Hearth CLI - Main entry point.

Provides command-line interface for sending MQTT commands to a bridge.
"""

import argparse
import json
import sys
import uuid
from pathlib import Path
from typing import Any, Dict

import yaml

from .mqtt_client import MQTTCommandClient


def load_yaml_config(config_path: str) -> Dict[str, Any]:
    """
    Load YAML payload file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If YAML is invalid or not a mapping
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(path) as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"{config_path} must contain a mapping")
    return config


def build_command(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed CLI arguments into a control-plane command."""
    if args.command == 'pairing':
        command = {'command': 'pairing_info', 'node_id': args.node_id}

    elif args.command == 'decommission':
        command = {'command': 'decommission', 'node_id': args.node_id}

    elif args.command == 'set-status':
        if args.file:
            status = load_yaml_config(args.file)
            # YAML 1.1 reads a bare `on` key as the boolean True
            if True in status:
                status["on"] = status.pop(True)
        else:
            status = {}
            if args.on is not None:
                status['on'] = args.on == 'on'
            if args.level is not None:
                status['level'] = args.level
            if not status:
                raise ValueError("set-status needs --on/--off, --level or a YAML file")
        command = {'command': 'change_status', 'node_id': args.node_id, 'status': status}

    elif args.command == 'coordinator-state':
        command = {'command': 'coordinator_state', 'node_id': args.node_id}

    elif args.command == 'list-nodes':
        command = {'command': 'list_nodes'}

    else:
        raise ValueError(f"Unknown command: {args.command}")

    command['request_id'] = uuid.uuid4().hex
    return command


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Hearth CLI - Send MQTT commands to a Hearth bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hearth-cli list-nodes
  hearth-cli pairing lamp_1
  hearth-cli decommission agg_1
  hearth-cli set-status lamp_1 --on --level 120
  hearth-cli set-status lamp_1 config/commands/evening.yaml
  hearth-cli coordinator-state srv
"""
    )

    # Global arguments
    parser.add_argument(
        "--bridge-id",
        default="living_room",
        help="Target bridge ID (default: living_room)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Do not wait for the bridge's reply"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    pairing = subparsers.add_parser('pairing', help='Show pairing code of a device or aggregator')
    pairing.add_argument('node_id', help='Device or aggregator node ID')

    decommission = subparsers.add_parser('decommission', help='Forget all paired fabrics')
    decommission.add_argument('node_id', help='Device or aggregator node ID')

    set_status = subparsers.add_parser('set-status', help='Set on/off and level of a device')
    set_status.add_argument('node_id', help='Device node ID')
    set_status.add_argument('file', nargs='?', help='YAML file with {on, level}')
    switch = set_status.add_mutually_exclusive_group()
    switch.add_argument('--on', dest='on', action='store_const', const='on')
    switch.add_argument('--off', dest='on', action='store_const', const='off')
    set_status.add_argument('--level', type=int, help='Level 0-254 (dimmable devices)')

    state = subparsers.add_parser('coordinator-state', help='Startup state of a server or aggregator')
    state.add_argument('node_id', help='Server or aggregator node ID')

    subparsers.add_parser('list-nodes', help='List declared nodes')

    return parser


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        command = build_command(args)
        client = MQTTCommandClient(broker=args.broker, port=args.port)
        reply = client.send_command(
            f"hearth/control/{args.bridge_id}/commands",
            command,
            qos=1,
            reply_topic=None if args.no_wait else f"hearth/control/{args.bridge_id}/status",
        )
        if reply is not None:
            print(json.dumps(reply, indent=2))
        elif not args.no_wait:
            print("⚠️  No reply from bridge", file=sys.stderr)

    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
