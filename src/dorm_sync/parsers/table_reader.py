"""
Tabular dataset reader.
Loads the authoritative spreadsheet export (xlsx or csv) into a DataFrame
and maps configured column names onto the actual header row.
"""

from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Union
import logging
import zipfile

import pandas as pd

from ..config import InputConfig
from ..utils.exceptions import FatalInputError, MissingColumnsError

logger = logging.getLogger(__name__)

TableSource = Union[str, Path, BinaryIO, bytes]

_EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


def header_key(name) -> str:
    """Case- and whitespace-insensitive form of a column header."""
    return " ".join(str(name).split()).lower()


def read_table(
    source: TableSource,
    input_config: Optional[InputConfig] = None,
    filename: Optional[str] = None,
) -> pd.DataFrame:
    """
    Read a spreadsheet export into a DataFrame of raw cell values.

    Args:
        source: File path, open binary stream, or raw bytes
        input_config: Reader settings (encoding, delimiter, sheet)
        filename: Name hint used to pick the format for streams

    Returns:
        DataFrame with object dtype so keys and dates keep their cell types

    Raises:
        FatalInputError: If the input cannot be read
    """
    input_config = input_config or InputConfig()

    try:
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FatalInputError(f"Input file not found: {path}")
            logger.info(f"Reading dataset: {path}")
            if path.suffix.lower() in _EXCEL_SUFFIXES:
                return _read_excel(path, input_config)
            return _read_csv(path, input_config)

        data = source if isinstance(source, bytes) else source.read()
        if not data:
            raise FatalInputError("Input stream is empty")
        suffix = Path(filename).suffix.lower() if filename else ""
        # xlsx workbooks are zip archives
        if suffix in _EXCEL_SUFFIXES or data[:2] == b"PK":
            return _read_excel(BytesIO(data), input_config)
        return _read_csv(BytesIO(data), input_config)

    except FatalInputError:
        raise
    except (OSError, ValueError, zipfile.BadZipFile, pd.errors.ParserError) as e:
        logger.error(f"Failed to read dataset: {e}")
        raise FatalInputError(f"Failed to read dataset: {e}") from e


def _read_excel(source, input_config: InputConfig) -> pd.DataFrame:
    return pd.read_excel(source, sheet_name=input_config.sheet, dtype=object)


def _read_csv(source, input_config: InputConfig) -> pd.DataFrame:
    return pd.read_csv(
        source,
        encoding=input_config.encoding,
        delimiter=input_config.delimiter,
        dtype=object,
        skip_blank_lines=True,
    )


def resolve_columns(
    headers: Iterable, wanted: dict[str, bool]
) -> dict[str, Optional[str]]:
    """
    Map configured column names onto actual headers.

    Args:
        headers: Header row of the dataset
        wanted: Configured column name -> whether it is required

    Returns:
        Configured column key -> actual header (None for absent optional columns)

    Raises:
        MissingColumnsError: If any required column is absent
    """
    actual: dict[str, str] = {}
    for header in headers:
        # First occurrence wins when a header is repeated
        actual.setdefault(header_key(header), header)

    mapping: dict[str, Optional[str]] = {}
    missing: list[str] = []
    for column, required in wanted.items():
        key = header_key(column)
        if key in actual:
            mapping[key] = actual[key]
        elif required:
            missing.append(column)
        else:
            mapping[key] = None

    if missing:
        raise MissingColumnsError(missing)

    return mapping
