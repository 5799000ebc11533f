"""Application entry point."""
import logging
import os

from stream_monitor.config import MonitorConfig
from stream_monitor.errors import ConfigurationError
from stream_monitor.monitor import StreamMonitor
from stream_monitor.status_server import StatusServer


def setup_logging(config):
    """Set up logging configuration."""
    log_level = logging.DEBUG if config.debug else logging.INFO

    log_dir = config.log_dir
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),  # Log to console
            logging.FileHandler(os.path.join(log_dir, 'stream_monitor.log'))  # Log to file
        ]
    )


def main():
    """Main entry point for the application."""
    config = MonitorConfig.from_env()
    setup_logging(config)
    logger = logging.getLogger(__name__)

    logger.info("Initializing Stream Monitor")

    try:
        config.validate()
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        raise

    try:
        monitor = StreamMonitor(config)
        if config.status_enabled:
            StatusServer(config, monitor.store).start()
        monitor.run()
    except Exception as e:
        logger.error("Failed to start monitor: %s", e)
        raise


if __name__ == "__main__":
    main()
