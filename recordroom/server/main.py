#!/usr/bin/env python3
"""
RecordRoom Server - Main Application

Runs the central server that stores browser session recordings and
replays them as timelines, through DevTools, or live to operators.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path

import uvicorn
import yaml

from recordroom.server.api import create_app
from recordroom.server.ingest import IngestService, NetworkReplayer, NotableConfig
from recordroom.server.live import LiveHub, LiveHubConfig
from recordroom.server.replay import PlaybackClockRegistry, ReplayConfig
from recordroom.server.storage import EventLog, StorageConfig

logger = logging.getLogger(__name__)


class RecordroomServer:
    """Main server application."""

    def __init__(self, config_path: str):
        self.config = self._load_config(config_path) or {}

        self.event_log = EventLog(
            config=StorageConfig(**self.config.get("storage", {}))
        )

        self.clock_registry = PlaybackClockRegistry()
        self.live_hub = LiveHub(
            config=LiveHubConfig(**self.config.get("live_hub", {}))
        )

        self.ingest_service = IngestService(
            event_log=self.event_log,
            live_hub=self.live_hub,
            config=NotableConfig(**self.config.get("notable", {})),
        )

        server_config = self.config.get("server", {})
        self.app = create_app(
            event_log=self.event_log,
            clock_registry=self.clock_registry,
            live_hub=self.live_hub,
            ingest_service=self.ingest_service,
            replay_config=ReplayConfig(**self.config.get("replay", {})),
            network_replayer=NetworkReplayer(),
            public_base_url=server_config.get("public_base_url"),
        )

    def _load_config(self, config_path: str) -> dict:
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return {}

        with open(config_file) as f:
            config = yaml.safe_load(f)

        logger.info(f"Loaded configuration from {config_path}")
        return config

    def start(self):
        """Start all server components."""
        logging.basicConfig(
            level=getattr(logging, self.config.get("logging", {}).get("level", "INFO")),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        logger.info("Starting RecordRoom Server")
        logger.info(f"  - Event log: {self.event_log.config.db_path}")
        logger.info(f"  - Live window: {self.live_hub.config.window_seconds}s")
        return True

    def stop(self):
        """Stop all server components."""
        logger.info("Stopping RecordRoom Server")
        self.event_log.close()
        logger.info("RecordRoom Server stopped")

    def run(self):
        """Run the server."""
        if not self.start():
            sys.exit(1)

        server_config = self.config.get("server", {})

        try:
            uvicorn.run(
                self.app,
                host=server_config.get("host", "0.0.0.0"),
                port=server_config.get("port", 8080),
                log_level="info",
            )
        finally:
            self.stop()


def main():
    parser = argparse.ArgumentParser(description="RecordRoom Server")
    parser.add_argument(
        "-c", "--config",
        default="config/config.yaml",
        help="Path to configuration file",
    )

    args = parser.parse_args()

    server = RecordroomServer(args.config)

    # Handle signals
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}")
        server.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    server.run()


if __name__ == "__main__":
    main()
