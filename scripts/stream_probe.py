#!/usr/bin/env python3
"""
Stream Probe
============

Standalone script that connects to a live stream and reports ingestion stats.

This script:
    1. Connects to the configured streaming endpoint
    2. Runs for a configurable duration (or until the server closes)
    3. Logs ingestion stats every N seconds
    4. Reports a final summary

Prerequisites:
    - Credentials in GNIP_USER / GNIP_PASSWORD (or config.yaml)
    - Install the package: pip install -e .

Usage:
    python scripts/stream_probe.py --duration 120
    python scripts/stream_probe.py --url https://stream.example.com/track/prod.json
"""

import argparse
import asyncio
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from gnip_stream.config import load_config
from gnip_stream.errors import ConfigurationError
from gnip_stream.stream import StreamClient


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_probe(
    config,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Run the probe.

    Args:
        config: StreamConfig to connect with
        duration: Probe duration in seconds
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info("Stream Probe")
    logger.info("=" * 60)
    logger.info(f"Stream URL: {config.url}")
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Report interval: {report_interval} seconds")
    logger.info("=" * 60)

    client = StreamClient(config)
    errors = []
    client.on("error", lambda error: errors.append(str(error)))

    client.start()

    start_time = time.time()
    last_report_time = start_time
    last_object_count = 0

    try:
        while client.connection is not None:
            elapsed = time.time() - start_time

            if elapsed >= duration:
                logger.info(f"Probe duration ({duration}s) reached")
                break

            time_since_report = time.time() - last_report_time
            if time_since_report >= report_interval:
                metrics = client.metrics
                objects_since_last = metrics.objects_received - last_object_count
                rate = objects_since_last / time_since_report if time_since_report > 0 else 0

                logger.info("-" * 40)
                logger.info(f"Progress Report (elapsed: {elapsed:.0f}s)")
                logger.info(f"  State: {client.state.value}")
                logger.info(f"  Objects received: {metrics.objects_received}")
                logger.info(f"  Objects/sec: {rate:.1f}")
                logger.info(f"  Tweets: {metrics.tweets}  Deletes: {metrics.deletes}")
                logger.info(f"  Bytes (raw/decompressed): {metrics.bytes_received}/{metrics.bytes_decompressed}")
                logger.info(f"  Parse errors: {metrics.parse_errors}")

                last_report_time = time.time()
                last_object_count = metrics.objects_received

            await asyncio.sleep(0.5)
    finally:
        client.end()
        await client.wait_closed()

    total_time = time.time() - start_time
    metrics = client.metrics

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Last status code: {metrics.last_status_code}")
    logger.info(f"Objects received: {metrics.objects_received}")
    logger.info(f"Tweets: {metrics.tweets}")
    logger.info(f"Deletes: {metrics.deletes}")
    logger.info(f"Info messages: {metrics.infos}")
    logger.info(f"Upstream errors: {metrics.upstream_errors}")
    logger.info(f"Parse errors: {metrics.parse_errors}")
    for error in errors[-5:]:
        logger.info(f"Error: {error}")
    logger.info("=" * 60)

    if metrics.objects_received > 0:
        logger.info("PROBE PASSED - objects received")
    else:
        logger.error("PROBE FAILED - no objects received")

    return {
        "duration": total_time,
        **metrics.to_dict(),
        "errors": len(errors),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Connect to a stream and report ingestion stats"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Streaming endpoint URL (overrides config)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Probe duration in seconds (default: 120)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    config = load_config(args.config).stream
    if args.url:
        config = config.model_copy(update={"url": args.url})

    try:
        result = asyncio.run(run_probe(
            config=config,
            duration=args.duration,
            report_interval=args.report_interval,
        ))
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Probe interrupted by user")
        sys.exit(130)

    sys.exit(0 if result["objects_received"] > 0 else 1)


if __name__ == "__main__":
    main()
