"""Automatic error remediation for failed plan steps."""

from .advisor import ErrorRemediationAdvisor, format_error

__all__ = [
    "ErrorRemediationAdvisor",
    "format_error",
]
