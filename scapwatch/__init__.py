"""scapwatch — continuous SCAP compliance monitoring and remediation."""

__version__ = "0.3.0"
