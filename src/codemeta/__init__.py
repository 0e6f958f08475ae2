"""CodeMeta: link in-code markers to stored annotation fragments."""

__version__ = "0.3.0"
