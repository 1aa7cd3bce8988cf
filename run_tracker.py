"""Market-moves entry point.

Usage:
    python run_tracker.py [YEAR MONTH] [--refresh]

Loads config.yaml, loads the persisted stores, fetches the requested month
(current month by default), detects notable moves and reports a summary to
stdout and the log.
"""

import asyncio
import sys
from datetime import datetime

from dotenv import load_dotenv

load_dotenv()  # must precede package imports so env vars are available at module load

from market_moves.core.config import load_config  # noqa: E402
from market_moves.core.errors import ConfigError, InvalidPeriod  # noqa: E402
from market_moves.core.logger import logger  # noqa: E402
from market_moves.pipeline.engine import MarketDataService  # noqa: E402


async def run(year: int, month: int, refresh: bool) -> int:
    try:
        config = load_config()
        service = MarketDataService.from_config(config)
    except (FileNotFoundError, ValueError, ConfigError) as exc:
        logger.error(f"run_tracker: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    service.load()
    try:
        result = await service.get_events(year, month, force_refresh=refresh)
    except InvalidPeriod as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        await service.aclose()

    for failure in result.failures:
        print(f"FAILED: {failure.name}: {failure.reason}")
    for day, events in result.events.items():
        for event in events:
            headline = event.headline or "-"
            print(
                f"{day}  {event.instrument_name:<24} {event.type.value:<4} "
                f"{event.change_pct:+.2f}%  {event.annotation or '-'}  | {headline}"
            )

    total = sum(len(events) for events in result.events.values())
    print(f"SUCCESS: {total} events for {year}-{month:02d}")
    logger.info(f"run_tracker: completed {year}-{month:02d} with {total} events")
    return 0


def main() -> int:
    """Run the tracker. Returns 0 on success, 1 on failure."""
    args = [a for a in sys.argv[1:] if a != "--refresh"]
    refresh = "--refresh" in sys.argv[1:]
    now = datetime.now()
    try:
        year, month = (int(args[0]), int(args[1])) if len(args) >= 2 else (now.year, now.month)
    except ValueError:
        print(__doc__, file=sys.stderr)
        return 1
    return asyncio.run(run(year, month, refresh))


if __name__ == "__main__":
    sys.exit(main())
