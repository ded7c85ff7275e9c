"""adsync: credential lifecycle and sync-on-read layer for ads and analytics platforms."""
