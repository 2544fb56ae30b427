"""
Translation of submitted form fields into rendering-binary arguments.

Fields named ``options[<name>]`` become ``--<name> [value]`` pairs; the
``url`` and ``html`` fields select the content source.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qsl

from .models import ConversionRequest, OutputFormat

OPTION_FIELD_RE = re.compile(r"options\[(.+)\]")

# Bytes that are not valid UTF-8 survive decoding as lone surrogates and are
# restored by encode_field(), so field values round-trip byte for byte.
FIELD_ENCODING = "utf-8"
FIELD_ERRORS = "surrogateescape"

FormData = Mapping[str, Sequence[str]]


def parse_urlencoded(data: bytes) -> List[Tuple[str, str]]:
    """
    Split an ``application/x-www-form-urlencoded`` payload into fields.

    Blank values are kept (``options[grayscale]=`` is a valid switch).

    Example:
        >>> parse_urlencoded(b"url=http%3A%2F%2Fexample.com&options%5Bgrayscale%5D=")
        [('url', 'http://example.com'), ('options[grayscale]', '')]
    """
    return parse_qsl(
        data.decode(FIELD_ENCODING, FIELD_ERRORS),
        keep_blank_values=True,
        encoding=FIELD_ENCODING,
        errors=FIELD_ERRORS,
    )


def encode_field(value: str) -> bytes:
    """Original submitted bytes of a field parsed by parse_urlencoded()."""
    return value.encode(FIELD_ENCODING, FIELD_ERRORS)


def form_from_multi_items(*sources: Iterable[Tuple[str, Any]]) -> Dict[str, List[str]]:
    """
    Merge several (key, value) sequences into a multi-valued form.

    Earlier sources win for ``first value`` lookups, so pass the request body
    before the query string. Non-string values (uploaded files) are skipped.

    Example:
        >>> form_from_multi_items([("url", "a")], [("url", "b")])
        {'url': ['a', 'b']}
    """
    form: Dict[str, List[str]] = {}
    for items in sources:
        for key, value in items:
            if isinstance(value, str):
                form.setdefault(key, []).append(value)
    return form


def first_value(form: FormData, key: str) -> str:
    """First submitted value for ``key``, or an empty string."""
    values = form.get(key)
    return values[0] if values else ""


def option_name(field_name: str) -> Optional[str]:
    """
    Extract the option name from an ``options[<name>]`` field.

    Returns None for any other field.

    Example:
        >>> option_name("options[page-size]")
        'page-size'
    """
    match = OPTION_FIELD_RE.fullmatch(field_name)
    return match.group(1) if match else None


def options_from_form(form: FormData) -> Dict[str, str]:
    """Collect option fields into a name -> value map (first value wins)."""
    options = {}
    for key in form:
        name = option_name(key)
        if name is not None:
            options[name] = first_value(form, key)
    return options


def options_to_args(options: Mapping[str, str]) -> List[str]:
    """
    Render options as command-line arguments.

    Names are sorted so the same form always yields the same command line.
    A value token is only emitted when the value is non-empty, which is how
    boolean switches such as ``--grayscale`` are passed.
    """
    args = []
    for name in sorted(options):
        args.append(f"--{name}")
        if options[name]:
            args.append(options[name])
    return args


def args_from_form(form: FormData) -> List[str]:
    """Option arguments for a submitted form."""
    return options_to_args(options_from_form(form))


def conversion_request_from_form(output_format: OutputFormat, form: FormData) -> ConversionRequest:
    """Build the ConversionRequest for one submitted form."""
    return ConversionRequest(
        output_format=output_format,
        url=first_value(form, "url"),
        html=first_value(form, "html"),
        options=options_from_form(form),
    )
