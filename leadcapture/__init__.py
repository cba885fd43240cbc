"""Lead capture service: screened form intake and paginated lead retrieval."""

__version__ = "1.0.0"
