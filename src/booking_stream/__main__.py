"""
Booking stream entry point.

Reads every row of rental_bookings from PostgreSQL, encodes it as an
Avro key/value pair and publishes it to Kafka.

Usage:
    python -m booking_stream

Configuration:
    config/config.yaml (or the path in BOOKING_STREAM_CONFIG), with
    ${VAR} expansion. A .env file in the project root is loaded first.

Environment:
    LOG_LEVEL, LOG_DIR, LOG_TO_STDOUT, JSON_LOGS: logging setup
    BOOKING_STORE_DSN, KAFKA_BOOTSTRAP_SERVERS, BOOKING_TOPIC, METRICS_PORT
"""

import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from config.config import load_config
from core.errors import FatalError, classify_exception
from core.logging import generate_run_id, log_exception, set_log_context, setup_logging_from_env
from booking_stream.app import STAGE_NAME, run_pipeline
from booking_stream.metrics import start_metrics_server
from booking_stream.shutdown import ShutdownCoordinator

# Project root directory (where .env file is located)
# __main__.py is at src/booking_stream/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def main():
    load_dotenv(PROJECT_ROOT / ".env")

    global logger
    logger = setup_logging_from_env("booking_stream", stage=STAGE_NAME)
    set_log_context(run_id=generate_run_id())

    try:
        config = load_config()
    except FatalError as e:
        log_exception(logger, e, "Invalid configuration", include_traceback=False)
        sys.exit(1)

    if config.metrics.port > 0:
        start_metrics_server(config.metrics.port)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    shutdown_event = asyncio.Event()
    coordinator = ShutdownCoordinator(shutdown_event)
    coordinator.install(loop)

    exit_code = 0
    main_task = loop.create_task(run_pipeline(config, shutdown_event))
    try:
        loop.run_until_complete(main_task)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
        # Releases the store and producer and logs the partial tally
        main_task.cancel()
        try:
            loop.run_until_complete(main_task)
        except asyncio.CancelledError:
            pass
    except FatalError as e:
        log_exception(logger, e, "Fatal error")
        exit_code = 1
    except Exception as e:
        log_exception(
            logger, e, "Unexpected error", error_category=classify_exception(e).value
        )
        exit_code = 1
    finally:
        coordinator.mark_complete()
        coordinator.uninstall()
        loop.close()
        logger.info("Booking stream shutdown complete")

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
