# For CLI entry point, use gguf_pack.cli.main:main directly
from .main import PackCLI

__all__ = ["PackCLI"]
