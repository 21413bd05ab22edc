# Lightweight shim for Vercel Cron

from seatsync.cron.pending_invite_sweeper import _run  # noqa: WPS450

# Vercel invokes the default exportable object – an async job wrapped in a
# synchronous handler.

def handler(_req, _res):  # type: ignore[unused-argument]
    import asyncio
    asyncio.run(_run())
    return {"status": "ok"}
