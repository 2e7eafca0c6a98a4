"""MediaRelay: media download jobs with streamed progress."""

__version__ = "0.1.0"

__all__ = ["__version__"]
