"""
Tabular sensor telemetry reader.

Parses raw CSV text (or already-built records) into validated, immutable
SensorRecords. Structural problems abort the whole input; bad individual
readings are recorded as missing and left to the feature preparer.
"""

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from .config import ID_COLUMNS, PROCESSING_CONFIG, SENSOR_CHANNELS, get_required_channels
from .exceptions import EmptyInputError, FormatError
from .utils import clean_numeric_column, timed


logger = logging.getLogger(__name__)

Identifier = Union[int, str]


@dataclass(frozen=True)
class SensorRecord:
    """One observation: an identifier plus named channel readings (None = missing)"""
    identifier: Identifier
    channels: Mapping[str, Optional[float]] = field(default_factory=dict)

    def __post_init__(self):
        values: Dict[str, Optional[float]] = {}
        for name, value in self.channels.items():
            if value is not None:
                value = float(value)
                if not math.isfinite(value):
                    raise ValueError(f"Channel {name} of record {self.identifier} is not finite")
            values[name] = value
        object.__setattr__(self, "channels", MappingProxyType(values))

    @property
    def missing_channels(self) -> Tuple[str, ...]:
        return tuple(name for name, value in self.channels.items() if value is None)

    def is_complete(self, required: Sequence[str]) -> bool:
        return all(self.channels.get(name) is not None for name in required)


def _is_blank_row(row: List[str]) -> bool:
    return not row or (len(row) == 1 and not row[0].strip())


def _coerce_value(value: Any, valid_range: Optional[tuple]) -> Optional[float]:
    """Scalar counterpart of clean_numeric_column"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    if valid_range and not (valid_range[0] <= number <= valid_range[1]):
        return None
    return number


class RecordIngestor:
    """
    Converts raw tabular input into SensorRecords.

    - Header must be present, well formed and declare every required channel
    - Every data row must match the header's column count
    - Unparsable or out-of-range readings become missing, not dropped
    - Optionally rejects rows with missing required channels
    """

    def __init__(
        self,
        channels: Dict[str, Dict] = SENSOR_CHANNELS,
        reject_incomplete_rows: bool = PROCESSING_CONFIG["reject_incomplete_rows"],
        id_columns: Sequence[str] = ID_COLUMNS
    ):
        self.channels = channels
        self.required_channels = get_required_channels(channels)
        self.reject_incomplete_rows = reject_incomplete_rows
        self.id_columns = tuple(id_columns)

    def ingest(self, raw_input: Union[str, bytes, Iterable[Any]]) -> List[SensorRecord]:
        """Ingest CSV text/bytes or an iterable of records/mappings"""
        if isinstance(raw_input, bytes):
            try:
                raw_input = raw_input.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise FormatError("Input is not valid UTF-8 text") from e
        if isinstance(raw_input, str):
            return self.ingest_text(raw_input)
        return self.ingest_records(raw_input)

    @timed("ingest_text")
    def ingest_text(self, text: str) -> List[SensorRecord]:
        """Parse header + data rows into records, preserving row order"""
        rows = [row for row in csv.reader(io.StringIO(text.lstrip("\ufeff"))) if not _is_blank_row(row)]

        if not rows:
            raise FormatError("Input has no header row")

        header = self._validate_header(rows[0])
        data_rows = rows[1:]

        for row_number, row in enumerate(data_rows, start=1):
            if len(row) != len(header):
                raise FormatError(
                    f"Data row {row_number} has {len(row)} columns, expected {len(header)}"
                )

        if not data_rows:
            raise EmptyInputError("Input contains a header but no data rows")

        frame = pd.DataFrame(
            [[cell.strip() for cell in row] for row in data_rows],
            columns=header,
            dtype=object
        )

        id_column = next((c for c in self.id_columns if c in frame.columns), None)
        identifiers: List[Identifier] = (
            frame[id_column].tolist() if id_column else list(range(len(frame)))
        )

        cleaned: Dict[str, List[Optional[float]]] = {}
        for name, cfg in self.channels.items():
            if name not in frame.columns:
                cleaned[name] = [None] * len(frame)
                continue
            series = clean_numeric_column(frame[name], cfg.get("valid_range"))
            cleaned[name] = [None if pd.isna(v) else float(v) for v in series]

        records = [
            SensorRecord(
                identifier=identifier,
                channels={name: cleaned[name][i] for name in self.channels}
            )
            for i, identifier in enumerate(identifiers)
        ]

        logger.info(f"Parsed {len(records)} records with columns {header}")
        return self._apply_row_policy(records)

    def ingest_records(self, items: Iterable[Any]) -> List[SensorRecord]:
        """Validate in-process records (e.g. synthetic data) against the same invariants"""
        records = []
        for index, item in enumerate(items):
            if isinstance(item, SensorRecord):
                identifier, values = item.identifier, item.channels
            elif isinstance(item, Mapping):
                identifier = next(
                    (item[c] for c in self.id_columns if c in item), index
                )
                values = item
            else:
                raise FormatError(f"Unsupported record type: {type(item).__name__}")

            absent = [name for name in self.required_channels if name not in values]
            if absent:
                raise FormatError(f"Record {identifier} lacks required channels {absent}")

            records.append(SensorRecord(
                identifier=identifier,
                channels={
                    name: _coerce_value(values.get(name), cfg.get("valid_range"))
                    for name, cfg in self.channels.items()
                }
            ))

        if not records:
            raise EmptyInputError("No records supplied")

        return self._apply_row_policy(records)

    def _validate_header(self, raw_header: List[str]) -> List[str]:
        header = [name.strip() for name in raw_header]

        if any(not name for name in header):
            raise FormatError(f"Header contains blank column names: {raw_header}")

        duplicates = sorted({name for name in header if header.count(name) > 1})
        if duplicates:
            raise FormatError(f"Header contains duplicate columns: {duplicates}")

        missing = [name for name in self.required_channels if name not in header]
        if missing:
            raise FormatError(f"Header is missing required channels: {missing}")

        return header

    def _apply_row_policy(self, records: List[SensorRecord]) -> List[SensorRecord]:
        incomplete = [r for r in records if not r.is_complete(self.required_channels)]
        if not incomplete:
            return records

        if not self.reject_incomplete_rows:
            logger.info(f"{len(incomplete)} records have missing required readings; imputing")
            return records

        logger.warning(
            f"Rejecting {len(incomplete)} of {len(records)} records with missing required channels"
        )
        return [r for r in records if r.is_complete(self.required_channels)]
