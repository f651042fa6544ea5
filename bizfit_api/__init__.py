"""BizFit API: business-model fit scoring and AI insight generation."""

__version__ = "1.0.0"
