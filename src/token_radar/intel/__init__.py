"""Wallet and social intelligence module."""

from .social import SocialSource, SocialSignalAnalyzer, has_social_validation, format_social_signal
from .wallet import WalletSource, WalletClassifier, classify_evm_activity, classify_solana_activity

__all__ = [
    "SocialSource",
    "SocialSignalAnalyzer",
    "has_social_validation",
    "format_social_signal",
    "WalletSource",
    "WalletClassifier",
    "classify_evm_activity",
    "classify_solana_activity",
]
