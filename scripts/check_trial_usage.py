"""Inspect (or reset) trial usage for one token.

Usage:
    python scripts/check_trial_usage.py trial-09w33n-3143-bpckc2
    python scripts/check_trial_usage.py trial-09w33n-3143-bpckc2 --reset

Reads REDIS_URL / KV_URL like the app. Without either, the process-local
store is empty and every token reports zero usage.
"""
import argparse
import asyncio
import sys

from outreach.core.config import Settings
from outreach.features.trial.ledger import UsageLedger, ResourceClass
from outreach.features.trial.policy import TRIAL_LIMITS


def _line(label: str, used: int, limit: int) -> str:
    remaining = max(0, limit - used)
    return f"{label}: {used}/{limit} ({remaining} remaining)"


async def run(token: str, reset: bool) -> int:
    cfg = Settings()
    ledger = UsageLedger.from_url(cfg.usage_store_url, timeout_seconds=cfg.USAGE_STORE_TIMEOUT_SECONDS)
    try:
        print(f"Usage store: {ledger.backend_name}")
        if reset:
            await ledger.reset(token)
            print("Counters reset.")

        usage = await ledger.get(token)
        print("\n=== Trial Usage Summary ===")
        print(f"Token: {token}")
        print(_line("Articles Generated", usage.articles_generated, TRIAL_LIMITS.max_articles))
        print(_line("Topic Discovery Runs", usage.topic_discovery_runs, TRIAL_LIMITS.max_topic_discovery_runs))
        print(_line("Images Generated", usage.images_generated, TRIAL_LIMITS.max_images))
        if usage.last_reset:
            print(f"Last reset: {usage.last_reset.isoformat()}")

        remaining = [TRIAL_LIMITS.limit_for(r) - usage.count(r) for r in ResourceClass]
        print(f"\nAll credits exhausted: {all(r <= 0 for r in remaining)}")
        print(f"Any credit exhausted: {any(r <= 0 for r in remaining)}")
        return 0
    finally:
        await ledger.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check trial usage for a token")
    parser.add_argument("token", help="trial token to inspect")
    parser.add_argument("--reset", action="store_true", help="zero all counters before printing")
    args = parser.parse_args(argv)
    return asyncio.run(run(args.token, args.reset))


if __name__ == "__main__":
    sys.exit(main())
