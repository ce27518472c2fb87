"""envcrypt: encrypted test credentials for per-environment dotenv files."""

__version__ = "0.1.0"
