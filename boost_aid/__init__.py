"""Gift Aid donation cleanup: column mapping, record repair and HMRC-ready exports."""

__version__ = "0.1.0"
