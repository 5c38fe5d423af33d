"""stigmap - STIG checklist to NIST SP 800-53 compliance analysis."""

__version__ = "1.0.0"
