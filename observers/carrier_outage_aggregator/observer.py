"""Long-lived aggregator: subscribe to node status and publish scope judgements."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from observers.carrier_outage.config import ConfigError
from observers.carrier_outage_aggregator.aggregator import Aggregator, publish_all
from observers.carrier_outage_aggregator.config import load_config
from observers.common.log import setup_logger
from observers.common.timeutil import utc_now
from observers.common.transport import RedisTransport, TransportError

LOGGER = logging.getLogger(__name__)


def serve(aggregator: Aggregator, transport: RedisTransport, messages: Iterable[Tuple[str, str]]) -> int:
    """Handle every message in order; returns how many were received."""

    received = 0
    for topic, raw in messages:
        received += 1
        publications = aggregator.handle_raw(topic, raw, utc_now())
        if publications:
            publish_all(transport, publications)
    return received


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Aggregate carrier outage reports across nodes.")
    parser.add_argument("--config", help="Aggregator config JSON (default: $CARRIER_AGGREGATOR_CONFIG)")
    parser.add_argument("--log-file", help="Also log to this file, rotated daily")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logger = setup_logger("observers", Path(args.log_file) if args.log_file else None)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("fatal: %s", exc)
        return 1

    transport = RedisTransport(config.url)
    aggregator = Aggregator(config)
    logger.info("aggregator running (window %ss)", config.window_ms // 1000)
    try:
        serve(aggregator, transport, transport.listen(config.subscriptions))
    except TransportError as exc:
        logger.error("fatal: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("aggregator stopped")
    finally:
        transport.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
