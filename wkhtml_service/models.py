"""
Data models shared by the translator, executor and HTTP layer.

These models describe one conversion request and the binary invocation
derived from it. Nothing here outlives the request that created it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .config import ServiceSettings


class OutputFormat(str, Enum):
    """Target formats and how each one is produced."""

    PDF = "pdf"
    JPG = "jpg"

    @property
    def suffix(self) -> str:
        """Suffix for the temporary output file."""
        return f".{self.value}"

    @property
    def media_type(self) -> str:
        if self is OutputFormat.PDF:
            return "application/pdf"
        return "image/jpeg"

    def binary(self, settings: ServiceSettings) -> str:
        """Rendering binary configured for this format."""
        if self is OutputFormat.PDF:
            return settings.wkhtmltopdf
        return settings.wkhtmltoimage


@dataclass
class ConversionRequest:
    """One submitted conversion, as read from the form."""

    output_format: OutputFormat
    url: str = ""
    html: str = ""
    options: Dict[str, str] = field(default_factory=dict)

    @property
    def has_input(self) -> bool:
        return bool(self.html or self.url)


@dataclass
class CommandInvocation:
    """
    Binary plus ordered arguments for a single run.

    Options always come first; when input and output paths are set they are
    the last two positional arguments, in that order.
    """

    binary: str
    options: List[str] = field(default_factory=list)
    input_path: Optional[str] = None
    output_path: Optional[str] = None

    @property
    def args(self) -> List[str]:
        args = list(self.options)
        if self.input_path is not None:
            args.append(self.input_path)
        if self.output_path is not None:
            args.append(self.output_path)
        return args
