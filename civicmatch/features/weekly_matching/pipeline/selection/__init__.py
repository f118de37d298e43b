"""
Eligibility selection package.
"""

from .service import EligibilitySelector, eligibility_selector

__all__ = ["EligibilitySelector", "eligibility_selector"]
