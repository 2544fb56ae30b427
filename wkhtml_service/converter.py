"""
Request orchestration: temp-file lifecycle around one binary invocation.

Every temporary artifact is registered on an ExitStack as soon as it exists,
so it is removed on every exit path: success, error, or cancellation.
"""

import logging
import os
import tempfile
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .arguments import encode_field, options_to_args
from .config import ServiceSettings
from .errors import ExecutionFailed, InvalidRequest, ResourceError
from .executor import run_command
from .models import CommandInvocation, ConversionRequest, OutputFormat

logger = logging.getLogger(__name__)


@contextmanager
def temporary_file(suffix: str, directory: Optional[str] = None) -> Iterator[str]:
    """
    Create an empty, uniquely named temp file and remove it on exit.

    Raises:
        ResourceError: the file could not be created
    """
    try:
        fd, path = tempfile.mkstemp(suffix=suffix, dir=directory)
    except OSError as e:
        raise ResourceError(f"failed to create {suffix} temp file", cause=e) from e
    os.close(fd)

    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temp file {path}: {e}")


def materialize_input(
    conversion: ConversionRequest,
    stack: ExitStack,
    directory: Optional[str] = None,
) -> str:
    """
    Resolve the input argument for the binary.

    Inline HTML is written verbatim to a ``.html`` temp file owned by
    ``stack``; otherwise the URL is passed through untouched.

    Raises:
        InvalidRequest: neither html nor url was submitted
        ResourceError: the html temp file could not be written
    """
    if not conversion.has_input:
        raise InvalidRequest("url or html is required")

    if not conversion.html:
        return conversion.url

    path = stack.enter_context(temporary_file(".html", directory))
    try:
        Path(path).write_bytes(encode_field(conversion.html))
    except OSError as e:
        raise ResourceError("failed to write html temp file", cause=e) from e
    return path


def build_invocation(
    conversion: ConversionRequest,
    settings: ServiceSettings,
    input_path: str,
    output_path: str,
) -> CommandInvocation:
    return CommandInvocation(
        binary=conversion.output_format.binary(settings),
        options=options_to_args(conversion.options),
        input_path=input_path,
        output_path=output_path,
    )


async def convert(
    conversion: ConversionRequest,
    settings: ServiceSettings,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Render one conversion request and return the output file contents.

    Args:
        conversion: Parsed request
        settings: Service configuration (binary paths, temp dir)
        timeout: Seconds the binary may run; None for no limit

    Returns:
        Bytes of the rendered PDF or JPEG

    Raises:
        InvalidRequest, ResourceError, ExecutionFailed
    """
    with ExitStack() as stack:
        input_path = materialize_input(conversion, stack, settings.temp_dir)
        output_path = stack.enter_context(
            temporary_file(conversion.output_format.suffix, settings.temp_dir)
        )
        invocation = build_invocation(conversion, settings, input_path, output_path)

        logger.debug(
            f"Converting to {conversion.output_format.value}",
            extra={"command": invocation.binary, "command_args": invocation.args},
        )

        try:
            await run_command(invocation.binary, invocation.args, timeout=timeout)
        except ExecutionFailed as e:
            raise ExecutionFailed("failed to execute", stderr=e.stderr, cause=e) from e

        try:
            return Path(output_path).read_bytes()
        except OSError as e:
            raise ResourceError("failed to read temp file", cause=e) from e


async def binary_version(settings: ServiceSettings, timeout: Optional[float] = None) -> bytes:
    """Raw ``--version`` output of the PDF binary."""
    return await run_command(
        OutputFormat.PDF.binary(settings), ["--version"], timeout=timeout
    )
