"""
Airdrop Tracker.

Keeps a local store of Binance Alpha airdrop listings in sync with the
marketplace and alerts subscribers over Telegram when new airdrops appear.
The sync engine (cache, reconciler, notifier, coordinator, scheduler) runs
on a single asyncio loop and is safe to trigger from several sources at once.
"""

__version__ = "0.1.0"
