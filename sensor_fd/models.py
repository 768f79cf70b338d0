"""
Classification engine for sensor failure detection.

Implements a fixed ensemble decision policy: every rule is one "tree" that
casts a vote, and the majority label wins. Inference is pure; the same
feature vector and rule set always give the same prediction.
"""

import json
import logging
import operator
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple, Union

from .config import CONDITION_OPERATORS, DEFAULT_RULES, Label
from .exceptions import ConfigurationError, ModelUnavailableError
from .features import FeatureVector
from .io_reader import Identifier


logger = logging.getLogger(__name__)

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne
}

RuleSource = Union[None, str, Path, Sequence[Dict[str, Any]]]


@dataclass(frozen=True)
class Condition:
    """Threshold predicate over one feature"""
    feature: str
    operator: str
    threshold: float

    def holds(self, vector: FeatureVector) -> bool:
        return _OPERATORS[self.operator](vector.get(self.feature), self.threshold)

    def describe(self) -> str:
        return f"{self.feature} {self.operator} {self.threshold:g}"


@dataclass(frozen=True)
class DecisionRule:
    """
    One member of the ensemble.

    Votes `vote` when every condition holds, the opposite label otherwise.
    """
    name: str
    conditions: Tuple[Condition, ...]
    vote: Label = Label.FAILURE

    @property
    def features(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(c.feature for c in self.conditions))

    def fires(self, vector: FeatureVector) -> bool:
        return all(condition.holds(vector) for condition in self.conditions)

    def cast(self, vector: FeatureVector) -> Tuple[Label, Tuple[str, ...]]:
        """Return the vote and the features that decided it"""
        if self.fires(vector):
            return self.vote, self.features
        failed = tuple(dict.fromkeys(
            c.feature for c in self.conditions if not c.holds(vector)
        ))
        return self.vote.opposite, failed

    def to_config(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "conditions": [asdict(c) for c in self.conditions],
            "vote": self.vote.value
        }


@dataclass(frozen=True)
class Prediction:
    """Classification of one feature vector"""
    identifier: Identifier
    label: Label
    confidence: float
    contributing_factors: Tuple[str, ...] = ()
    failure_votes: int = 0
    total_votes: int = 0

    @property
    def is_failure(self) -> bool:
        return self.label is Label.FAILURE

    @property
    def failure_probability(self) -> float:
        if not self.total_votes:
            return 0.0
        return self.failure_votes / self.total_votes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "prediction": self.label.value,
            "confidence": self.confidence,
            "factors": list(self.contributing_factors)
        }


class BaseClassifier(ABC):
    """Abstract base class for failure classifiers"""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def classify(self, vector: FeatureVector) -> Prediction:
        """Classify a single feature vector"""
        pass

    def predict(self, vectors: Iterable[FeatureVector]) -> List[Prediction]:
        """Classify vectors in order"""
        return [self.classify(vector) for vector in vectors]


class RuleEnsembleClassifier(BaseClassifier):
    """
    Majority vote over threshold rules.

    - Label: the label with more votes; a tie goes to `normal`
    - Confidence: fraction of rules agreeing with the final label
    - Contributing factors: features that decided the agreeing votes
    """

    def __init__(self, rules: Sequence[DecisionRule], name: str = "RuleEnsemble"):
        super().__init__(name)
        if not rules:
            raise ModelUnavailableError("Rule set is empty")
        self.rules: Tuple[DecisionRule, ...] = tuple(rules)

    @classmethod
    def from_config(cls, rule_configs: Sequence[Dict[str, Any]]) -> "RuleEnsembleClassifier":
        return cls([_parse_rule(index, config) for index, config in enumerate(rule_configs)])

    @property
    def referenced_features(self) -> List[str]:
        return list(dict.fromkeys(f for rule in self.rules for f in rule.features))

    def validate_features(self, available: Iterable[str]) -> None:
        """Ensure every rule only references features the preparer emits"""
        unknown = sorted(set(self.referenced_features) - set(available))
        if unknown:
            raise ConfigurationError(f"Rules reference unknown features: {unknown}")

    def classify(self, vector: FeatureVector) -> Prediction:
        votes = [rule.cast(vector) for rule in self.rules]
        total = len(votes)
        failure_votes = sum(1 for label, _ in votes if label is Label.FAILURE)
        normal_votes = total - failure_votes

        label = Label.FAILURE if failure_votes > normal_votes else Label.NORMAL
        agreeing = failure_votes if label is Label.FAILURE else normal_votes

        factors = tuple(dict.fromkeys(
            feature for vote, features in votes if vote is label for feature in features
        ))

        return Prediction(
            identifier=vector.identifier,
            label=label,
            confidence=agreeing / total,
            contributing_factors=factors,
            failure_votes=failure_votes,
            total_votes=total
        )

    def rule_summary(self) -> List[Dict[str, str]]:
        return [
            {
                "name": rule.name,
                "when": " and ".join(c.describe() for c in rule.conditions),
                "vote": rule.vote.value
            }
            for rule in self.rules
        ]

    def to_config(self) -> List[Dict[str, Any]]:
        return [rule.to_config() for rule in self.rules]

    def save(self, filepath: Union[str, Path]) -> None:
        """Write the rule set as JSON"""
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump({"rules": self.to_config()}, f, indent=2)
        logger.info(f"Saved {len(self.rules)} rules to {filepath}")


def _parse_rule(index: int, config: Dict[str, Any]) -> DecisionRule:
    try:
        raw_conditions = config["conditions"]
        if not raw_conditions:
            raise ValueError("rule has no conditions")

        conditions = []
        for raw in raw_conditions:
            op = raw.get("operator", ">")
            if op not in CONDITION_OPERATORS:
                raise ValueError(f"unknown operator {op!r}")
            conditions.append(Condition(
                feature=str(raw["feature"]),
                operator=op,
                threshold=float(raw["threshold"])
            ))

        return DecisionRule(
            name=str(config.get("name", f"rule_{index}")),
            conditions=tuple(conditions),
            vote=Label(config.get("vote", Label.FAILURE.value))
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ModelUnavailableError(f"Invalid rule #{index}: {e}") from e


def load_rules(source: RuleSource = None) -> RuleEnsembleClassifier:
    """
    Load the decision policy.

    Args:
        source: None for the built-in rules, a list of rule dicts, or a path
            to a JSON file holding either a list or {"rules": [...]}

    Returns:
        RuleEnsembleClassifier
    """
    if source is None:
        rule_configs: Any = DEFAULT_RULES
    elif isinstance(source, (str, Path)):
        path = Path(source)
        try:
            with open(path, encoding="utf-8") as f:
                rule_configs = json.load(f)
        except (OSError, ValueError) as e:
            raise ModelUnavailableError(f"Failed to load rules from {path}: {e}") from e
        if isinstance(rule_configs, dict):
            rule_configs = rule_configs.get("rules")
    else:
        rule_configs = source

    if not isinstance(rule_configs, (list, tuple)):
        raise ModelUnavailableError("Rule set must be a list of rules")

    classifier = RuleEnsembleClassifier.from_config(rule_configs)
    logger.info(f"Loaded decision policy with {len(classifier.rules)} rules")
    return classifier
