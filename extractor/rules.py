# -*- coding: utf-8 -*-
"""Name based classification rules.

A profile is an ordered tuple of rules evaluated top to bottom; the first rule
whose predicate accepts the layer name decides where the layer goes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from extractor.errors import ExtractorError

# Placements
NAMED = "named"  # list bucket keyed by the layer name
LIST = "list"  # fixed list bucket
SINGLE = "single"  # single entry, the last match wins
CROP_FOCUS = "crop"  # overrides the manifest crop focus, nothing is exported

NamePredicate = Callable[[str], bool]
FilenameRule = Callable[[str, int], str]


def name_startswith(prefix: str) -> NamePredicate:
    return lambda name: name.startswith(prefix)


def name_equals(value: str) -> NamePredicate:
    return lambda name: name == value


def name_contains(fragment: str) -> NamePredicate:
    return lambda name: fragment in name


def any_name(name: str) -> bool:
    return True


def layer_name(name: str, index: int) -> str:
    return name


def fixed_name(value: str) -> FilenameRule:
    return lambda name, index: value


def indexed_name(prefix: str) -> FilenameRule:
    return lambda name, index: f"{prefix}{index}"


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    matches: NamePredicate
    placement: str
    bucket: Optional[str] = None
    filename: FilenameRule = layer_name
    ratio: bool = False

    @property
    def exports(self) -> bool:
        return self.placement != CROP_FOCUS


@dataclass(frozen=True)
class Classification:
    rule: ClassificationRule
    bucket: Optional[str]
    filename: Optional[str]


@dataclass(frozen=True)
class RuleProfile:
    name: str
    rules: Tuple[ClassificationRule, ...]
    recursive: bool = True


BORDER_RULE = ClassificationRule("border", name_startswith("Border"), NAMED)
FOREGROUND_RULE = ClassificationRule(
    "foreground", any_name, LIST, bucket="foreground", filename=indexed_name("foreground")
)

FULL_RULES: Tuple[ClassificationRule, ...] = (
    BORDER_RULE,
    ClassificationRule("important", name_equals("important"), CROP_FOCUS),
    ClassificationRule("background", name_contains("background"), LIST, bucket="background", ratio=True),
    ClassificationRule("blurred", name_equals("blurred"), SINGLE, bucket="blurred", filename=fixed_name("blurred")),
    FOREGROUND_RULE,
)

SIMPLE_RULES: Tuple[ClassificationRule, ...] = (
    BORDER_RULE,
    ClassificationRule("background", name_equals("background"), LIST, bucket="background", ratio=True),
    FOREGROUND_RULE,
)

PROFILES: Dict[str, RuleProfile] = {
    "full": RuleProfile("full", FULL_RULES, recursive=True),
    "simple": RuleProfile("simple", SIMPLE_RULES, recursive=False),
}


def get_profile(name: str) -> RuleProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise ExtractorError(f"Unknown rule profile: {name!r} (expected one of {', '.join(PROFILES)})")


def classify(name: str, index: int, rules: Sequence[ClassificationRule]) -> Classification:
    """Apply the first matching rule to a layer ``name`` at ``index`` in the leaf sequence."""
    for rule in rules:
        if not rule.matches(name):
            continue
        if not rule.exports:
            return Classification(rule, None, None)
        bucket = name if rule.placement == NAMED else rule.bucket
        return Classification(rule, bucket, rule.filename(name, index))
    raise ExtractorError(f"No classification rule matches layer {name!r}")
