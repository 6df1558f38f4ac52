"""Sponsor modules for the SBC Paymaster SDK."""

from .paymaster_sponsor import (
    PaymasterSponsor,
    SponsorConfig,
    ResolvedSponsorConfig,
)

__all__ = [
    "PaymasterSponsor",
    "SponsorConfig",
    "ResolvedSponsorConfig",
]
