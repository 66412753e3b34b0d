"""Drop and rebuild the upcoming releases cache."""

from __future__ import annotations

import asyncio
import json
import logging

from tracker.jobs.refresh_cache import run_refresh_cache


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(run_refresh_cache(force=True))
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
