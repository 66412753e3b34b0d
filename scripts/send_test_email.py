"""Send a test email through the configured provider."""

from __future__ import annotations

import asyncio
import os

from dotenv import load_dotenv

from tracker.email.notifier import Notifier


async def main() -> None:
    load_dotenv()
    recipient = os.environ.get("TEST_RECIPIENT")
    if not recipient:
        raise SystemExit("TEST_RECIPIENT env var required")
    await Notifier().send_test_email(recipient)
    print("Sent test email to", recipient)


if __name__ == "__main__":
    asyncio.run(main())
