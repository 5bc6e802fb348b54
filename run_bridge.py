#!/usr/bin/env python3
"""
Hearth Bridge - Entry Point
===========================

This script starts one Hearth bridge process, which:
- Loads the flow (declared nodes) from YAML
- Constructs the server, aggregator, device, controller and helper nodes
- Lets every server/aggregator coordinator start its resource once its
  participants are in (or after the startup timeout)
- Publishes accessory status changes to MQTT (optional)
- Responds to control commands via MQTT control plane (optional)
- Serves pairing codes over the admin HTTP API (optional)

Usage:
    python run_bridge.py --config config/flow.example.yaml

Lifecycle:
    1. Setup logging (console + file)
    2. Load flow configuration from YAML
    3. Create status publisher and control plane (if mqtt_config)
    4. Create FlowRuntime and load nodes
    5. Start admin HTTP server (if http_config)
    6. Wait for stop signal (Ctrl+C or SIGTERM)
    7. Graceful shutdown (stop: persisted pairing state is kept)

Signals:
    - SIGTERM: Graceful shutdown
    - SIGINT (Ctrl+C): Graceful shutdown
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from werkzeug.serving import make_server

from hearth_core import FlowConfig
from hearth_control import MQTTControlPlane, register_bridge_commands
from hearth_http import create_app
from hearth_mqtt import StatusPublisher, create_logger
from hearth_nodes import FlowRuntime, LoopbackBackend


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Setup logging for the bridge.

    Args:
        log_file: Optional path to log file
        level: Root log level

    Returns:
        Logger instance for the bridge
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class BridgeApp:
    """
    Main application wrapper for one FlowRuntime.

    Handles:
    - Configuration loading
    - Component initialization (runtime, publisher, control plane, admin API)
    - Signal handling (SIGTERM, SIGINT)
    - Graceful shutdown
    """

    def __init__(self, config_path: Path, log_file: Optional[Path] = None):
        self.config_path = config_path
        self.log_file = log_file
        self.logger = setup_logging(log_file)

        # Components (initialized in setup())
        self.config: Optional[FlowConfig] = None
        self.runtime: Optional[FlowRuntime] = None
        self.control_plane: Optional[MQTTControlPlane] = None
        self.status_publisher: Optional[StatusPublisher] = None
        self.http_server = None
        self._http_thread: Optional[threading.Thread] = None

        self._stop_event = threading.Event()
        self._shutdown_requested = False

    def setup(self):
        """
        Setup all components.

        Steps:
        1. Load flow configuration from YAML
        2. Create status publisher and control plane (if configured)
        3. Create FlowRuntime over the loopback backend
        4. Register control commands
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 Hearth Bridge - Starting")
        self.logger.info("=" * 80)

        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = FlowConfig.from_yaml(self.config_path)
        self.logger.info(
            f"✅ Configuration loaded (bridge_id={self.config.bridge_id}, "
            f"{len(self.config.nodes)} node(s))"
        )

        mqtt_config = self.config.mqtt_config
        if mqtt_config:
            topic_args = {'bridge_id': self.config.bridge_id}

            self.logger.info("📤 Creating status publisher")
            self.status_publisher = StatusPublisher(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                topic=mqtt_config.device_status_topic.format(**topic_args),
                logger=create_logger(component="mqtt_publisher"),
                client_id=f"hearth_status_{self.config.bridge_id}",
                username=mqtt_config.username,
                password=mqtt_config.password,
                qos=mqtt_config.qos,
            )

            self.logger.info("🔌 Creating MQTT control plane")
            self.control_plane = MQTTControlPlane(
                broker_host=mqtt_config.broker,
                broker_port=mqtt_config.port,
                command_topic=mqtt_config.command_topic.format(**topic_args),
                status_topic=mqtt_config.status_topic.format(**topic_args),
                client_id=f"hearth_bridge_{self.config.bridge_id}",
                username=mqtt_config.username,
                password=mqtt_config.password,
            )

        self.logger.info("🏗️  Creating flow runtime")
        self.runtime = FlowRuntime(
            self.config,
            backend=LoopbackBackend(),
            status_publisher=self.status_publisher,
        )

        if self.control_plane:
            register_bridge_commands(self.control_plane.command_registry, self.runtime)

        self.logger.info("=" * 80)

    def run(self):
        """
        Run the bridge.

        Blocks until shutdown is requested (via signal or exception).
        """
        if not self.runtime:
            raise RuntimeError("Runtime not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            # Publishers first so the first status changes are not lost
            if self.status_publisher and not self.status_publisher.connect():
                self.logger.warning("⚠️  Status publisher not connected, status changes stay local")
            if self.control_plane and not self.control_plane.connect(timeout=5.0):
                self.logger.warning("⚠️  Control plane not connected")

            self.runtime.load()
            self._start_http()

            self.logger.info("✅ Bridge started")
            self.logger.info("Press Ctrl+C to stop")
            self.logger.info("=" * 80)

            self._stop_event.wait()

        except KeyboardInterrupt:
            self.logger.info("\n⚠️  KeyboardInterrupt received")
            self.shutdown()

        except Exception as e:
            self.logger.error(f"❌ Bridge error: {e}", exc_info=True)
            self.shutdown()
            sys.exit(1)

    def _start_http(self):
        http_config = self.config.http_config
        if not http_config:
            return

        app = create_app(self.runtime)
        self.http_server = make_server(http_config.host, http_config.port, app, threaded=True)
        self._http_thread = threading.Thread(
            target=self.http_server.serve_forever,
            name="AdminHTTP",
            daemon=True,
        )
        self._http_thread.start()
        self.logger.info(f"🌐 Admin API on http://{http_config.host}:{http_config.port}")

    def shutdown(self):
        """
        Graceful shutdown of all components.

        Order:
        1. Admin HTTP server
        2. Flow runtime (stop, not destroy: pairing state survives)
        3. Control plane and status publisher
        """
        if self._shutdown_requested:
            self.logger.warning("⚠️  Shutdown already in progress")
            return

        self._shutdown_requested = True
        self._stop_event.set()

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down bridge")
        self.logger.info("=" * 80)

        if self.http_server:
            try:
                self.http_server.shutdown()
                self.logger.info("✅ Admin API stopped")
            except Exception as e:
                self.logger.error(f"❌ Error stopping admin API: {e}")

        if self.runtime:
            try:
                self.runtime.close(removed=False)
                self.logger.info("✅ Nodes closed")
            except Exception as e:
                self.logger.error(f"❌ Error closing nodes: {e}")

        if self.control_plane:
            try:
                self.control_plane.disconnect()
                self.logger.info("✅ Control plane disconnected")
            except Exception as e:
                self.logger.error(f"❌ Error disconnecting control plane: {e}")

        if self.status_publisher:
            self.status_publisher.disconnect()

        self.logger.info("=" * 80)
        self.logger.info("✅ Shutdown complete")
        self.logger.info("=" * 80)

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"\n⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()
        sys.exit(0)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args():
    parser = argparse.ArgumentParser(
        description="Hearth Bridge - readiness-gated accessory bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with the example flow
  python run_bridge.py --config config/flow.example.yaml

  # Start without file logging (console only)
  python run_bridge.py --config config/flow.example.yaml --no-log-file
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to flow configuration YAML file'
    )

    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/bridge.log'),
        help='Path to log file (default: logs/bridge.log)'
    )

    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )

    return parser.parse_args()


def main():
    args = parse_args()

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = BridgeApp(config_path=args.config, log_file=log_file)

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
