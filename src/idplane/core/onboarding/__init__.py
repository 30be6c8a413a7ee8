"""Event-driven tenant onboarding."""

from idplane.core.onboarding.choreographer import OnboardingChoreographer, OnboardingStage

__all__ = ["OnboardingChoreographer", "OnboardingStage"]
