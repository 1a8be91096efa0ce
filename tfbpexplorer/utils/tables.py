"""Read delimited text into raw, all-string DataFrames."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pandas as pd
from pandas.errors import EmptyDataError, ParserError

from ..errors import MalformedPayloadError

logger = logging.getLogger("shiny")


def _read(source: io.StringIO | Path, sep: str, label: str) -> pd.DataFrame:
    try:
        table = pd.read_csv(
            source,
            sep=sep,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except EmptyDataError:
        logger.warning("No columns to parse from %s", label)
        return pd.DataFrame()
    except (ParserError, UnicodeDecodeError, ValueError) as exc:
        raise MalformedPayloadError(
            f"Unable to parse delimited text from {label}", detail=str(exc)
        ) from exc

    table.columns = [str(column).strip() for column in table.columns]
    return table


def read_delimited_text(text: str, *, sep: str = ",", label: str = "text") -> pd.DataFrame:
    """
    Parse delimited text with a header row.

    Every cell stays a string (missing cells are ``""``) so that numeric coercion
    happens in one place, :mod:`tfbpexplorer.utils.numeric`.

    :param text: The delimited text, header row first.
    :param sep: Field delimiter.
    :param label: Used in log and error messages.
    :return: The raw table; empty when the text has no header.
    :raises MalformedPayloadError: If the text cannot be tokenized.

    """
    return _read(io.StringIO(text), sep, label)


def read_delimited_file(path: Path, *, sep: str = ",") -> pd.DataFrame:
    """File counterpart of :func:`read_delimited_text`."""
    return _read(path, sep, path.name)
