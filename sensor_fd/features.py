"""
Feature preparation for sensor failure detection.

Turns each SensorRecord into a FeatureVector independently of every other
record: missing readings are imputed with the channel default, channels are
min-max normalized against their valid range, and derived features are
computed from declared channels only.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

import pandas as pd

from .config import DERIVED_FEATURES, DERIVED_OPERATIONS, SENSOR_CHANNELS
from .exceptions import ConfigurationError
from .io_reader import Identifier, SensorRecord
from .utils import safe_divide


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureVector:
    """Derived numeric representation of one SensorRecord"""
    identifier: Identifier
    values: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, name: str, default: float = 0.0) -> float:
        return self.values.get(name, default)


@dataclass(frozen=True)
class FeatureDefinition:
    """A feature computed from one or more declared channels"""
    name: str
    operation: str
    inputs: Tuple[str, ...]
    scale: float = 1.0

    def compute(self, values: Mapping[str, float]) -> float:
        operands = [values[name] for name in self.inputs]

        if self.operation == "ratio":
            result = safe_divide(operands[0], operands[1])
        elif self.operation == "difference":
            result = operands[0] - operands[1]
        elif self.operation == "product":
            result = 1.0
            for operand in operands:
                result *= operand
        else:
            result = sum(operands)

        return result * self.scale


class FeaturePreparer:
    """
    Per-record feature preparation.

    Imputation policy: a missing reading takes the channel's configured
    `missing_value` (0.0 unless configured otherwise). The same policy is
    applied to every record, so preparation never fails on missing data.
    """

    def __init__(
        self,
        channels: Dict[str, Dict] = SENSOR_CHANNELS,
        derived_features: Dict[str, Dict] = DERIVED_FEATURES,
        normalize: bool = True
    ):
        self.channels = channels
        self.normalize = normalize
        self.imputation_values = self._resolve_imputation(channels)
        self.derived = self._build_definitions(derived_features)

        logger.debug(
            f"FeaturePreparer ready: {len(self.channels)} channels, "
            f"{len(self.derived)} derived features"
        )

    @property
    def feature_names(self) -> List[str]:
        names = list(self.channels)
        if self.normalize:
            names += [f"{name}_norm" for name, cfg in self.channels.items() if cfg.get("valid_range")]
        names += [definition.name for definition in self.derived]
        return names

    def prepare(self, record: SensorRecord) -> FeatureVector:
        """Build the feature vector for a single record"""
        imputed = {
            name: (
                record.channels.get(name)
                if record.channels.get(name) is not None
                else self.imputation_values[name]
            )
            for name in self.channels
        }

        features: Dict[str, float] = dict(imputed)

        if self.normalize:
            for name, cfg in self.channels.items():
                valid_range = cfg.get("valid_range")
                if valid_range:
                    low, high = valid_range
                    scaled = safe_divide(imputed[name] - low, high - low)
                    features[f"{name}_norm"] = min(max(scaled, 0.0), 1.0)

        for definition in self.derived:
            features[definition.name] = definition.compute(imputed)

        return FeatureVector(identifier=record.identifier, values=features)

    def prepare_frame(self, records: Iterable[SensorRecord]) -> pd.DataFrame:
        """Prepare records into a DataFrame indexed by identifier"""
        vectors = [self.prepare(record) for record in records]
        frame = pd.DataFrame(
            [dict(v.values) for v in vectors],
            columns=self.feature_names
        )
        frame.index = pd.Index([v.identifier for v in vectors], name="identifier")
        return frame

    @staticmethod
    def _resolve_imputation(channels: Dict[str, Dict]) -> Dict[str, float]:
        if not channels:
            raise ConfigurationError("No sensor channels declared")

        values = {}
        for name, cfg in channels.items():
            missing_value = cfg.get("missing_value", 0.0)
            if missing_value is None:
                raise ConfigurationError(f"Channel {name} has no imputation value")
            values[name] = float(missing_value)
        return values

    def _build_definitions(self, derived_features: Dict[str, Dict]) -> List[FeatureDefinition]:
        definitions = []
        reserved = set(self.channels) | {f"{name}_norm" for name in self.channels}

        for name, spec in derived_features.items():
            operation = spec.get("operation")
            inputs = tuple(spec.get("inputs", ()))

            if name in reserved:
                raise ConfigurationError(f"Derived feature {name} shadows a channel feature")
            if operation not in DERIVED_OPERATIONS:
                raise ConfigurationError(
                    f"Derived feature {name} uses unknown operation {operation!r}; "
                    f"expected one of {list(DERIVED_OPERATIONS)}"
                )

            undeclared = [channel for channel in inputs if channel not in self.channels]
            if undeclared:
                raise ConfigurationError(
                    f"Derived feature {name} references undeclared channels {undeclared}"
                )

            if operation in ("ratio", "difference") and len(inputs) != 2:
                raise ConfigurationError(f"Derived feature {name} ({operation}) needs exactly 2 inputs")
            if not inputs:
                raise ConfigurationError(f"Derived feature {name} has no inputs")

            definitions.append(FeatureDefinition(
                name=name,
                operation=operation,
                inputs=inputs,
                scale=float(spec.get("scale", 1.0))
            ))

        return definitions
