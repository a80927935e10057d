"""Interfaces of the external collaborators the study engine talks to."""
from abc import ABC, abstractmethod


class PremiumStatusProvider(ABC):
    """Source of the premium entitlement flag."""

    @abstractmethod
    def is_premium(self) -> bool:
        """Return True when the user has an active premium entitlement."""
        raise NotImplementedError("Subclasses must implement this method")


class RewardedAdProvider(ABC):
    """Shows rewarded ads and reports whether the reward was granted."""

    @abstractmethod
    def show_rewarded_ad(self) -> bool:
        """Show an ad and return True only if the reward was actually granted."""
        raise NotImplementedError("Subclasses must implement this method")
