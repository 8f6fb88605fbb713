"""
IHD Cohort Configuration
========================

Versioned criteria definitions, activity covariates and source layouts.
Criteria are loaded from YAML into frozen dataclasses and passed to each
evaluator at construction.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union
import yaml

from ihd_cohort.processing.temporal_window import TemporalWindow


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

MODULE_ROOT = Path(__file__).parent.parent
PROJECT_ROOT = MODULE_ROOT.parent
CONFIG_DIR = MODULE_ROOT / "config"
DEFAULT_CRITERIA_YAML = CONFIG_DIR / "criteria.yaml"

DATA_DIR = PROJECT_ROOT / "Data"
OUTPUT_DIR = PROJECT_ROOT / "outputs"


# =============================================================================
# CRITERION KINDS
# =============================================================================

CODE_PATTERN = "code_pattern"
TEXT_PATTERN = "text_pattern"
THRESHOLD = "threshold"
LOOKUP = "lookup"

CRITERION_KINDS = (CODE_PATTERN, TEXT_PATTERN, THRESHOLD, LOOKUP)
COMPARISONS = (">", ">=", "<", "<=")

PATIENT_INDEX_SOURCE = "patient_index"
PROCEDURE_REFERENCE_SOURCE = "procedure_reference"


class CriteriaConfigurationError(ValueError):
    """Criteria definition that cannot be evaluated as configured."""


# =============================================================================
# CONFIGURATION OBJECTS
# =============================================================================

@dataclass(frozen=True)
class PatternRule:
    """One (field, pattern) pair; rules of a criterion are OR-ed."""

    field: str
    pattern: str


@dataclass(frozen=True)
class CriterionConfig:
    """Definition of one IHD criterion."""

    label: str
    kind: str
    source: str

    # code_pattern / text_pattern
    rules: Tuple[PatternRule, ...] = ()

    # threshold
    test_field: str = "test_name"
    test_pattern: Optional[str] = None
    value_field: str = "result_value"
    cutoff: Optional[float] = None
    comparison: str = ">"
    allow_decimal: bool = True

    # lookup
    code_field: str = "procedure_code"
    excluded_categories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ActivityConfig:
    """Activity covariate: distinct or total event count of one source."""

    name: str
    source: str
    column: Optional[str] = None
    distinct: bool = True


@dataclass(frozen=True)
class SourceConfig:
    """On-disk layout of one source table."""

    name: str
    filename: str
    sep: str = "|"
    dayfirst: bool = False
    date_format: Optional[str] = None
    columns: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CriteriaConfig:
    """Complete, versioned criteria set for one study."""

    version: str
    window: TemporalWindow = TemporalWindow()
    criteria: Tuple[CriterionConfig, ...] = ()
    activity: Tuple[ActivityConfig, ...] = ()
    sources: Dict[str, SourceConfig] = field(default_factory=dict)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(c.label for c in self.criteria)

    @property
    def covariates(self) -> Tuple[str, ...]:
        return tuple(a.name for a in self.activity)


# =============================================================================
# YAML LOADING
# =============================================================================

def _parse_criterion(raw: Dict[str, Any]) -> CriterionConfig:
    for key in ("label", "kind", "source"):
        if key not in raw:
            raise CriteriaConfigurationError(f"Criterion missing '{key}': {raw}")

    label = raw["label"]
    kind = raw["kind"]
    if kind not in CRITERION_KINDS:
        raise CriteriaConfigurationError(
            f"Criterion '{label}' has unknown kind '{kind}' (expected one of {CRITERION_KINDS})"
        )

    rules = tuple(
        PatternRule(field=r["field"], pattern=str(r["pattern"]))
        for r in raw.get("rules", [])
    )
    if kind in (CODE_PATTERN, TEXT_PATTERN) and not rules:
        raise CriteriaConfigurationError(f"Criterion '{label}' defines no pattern rules")

    comparison = raw.get("comparison", ">")
    if comparison not in COMPARISONS:
        raise CriteriaConfigurationError(
            f"Criterion '{label}' has unknown comparison '{comparison}'"
        )

    cutoff = raw.get("cutoff")
    if kind == THRESHOLD:
        if cutoff is None or raw.get("test_pattern") is None:
            raise CriteriaConfigurationError(
                f"Threshold criterion '{label}' needs both 'test_pattern' and 'cutoff'"
            )
        cutoff = float(cutoff)

    return CriterionConfig(
        label=label,
        kind=kind,
        source=raw["source"],
        rules=rules,
        test_field=raw.get("test_field", "test_name"),
        test_pattern=raw.get("test_pattern"),
        value_field=raw.get("value_field", "result_value"),
        cutoff=cutoff,
        comparison=comparison,
        allow_decimal=bool(raw.get("allow_decimal", True)),
        code_field=raw.get("code_field", "procedure_code"),
        excluded_categories=tuple(raw.get("excluded_categories", [])),
    )


def parse_criteria(raw: Dict[str, Any]) -> CriteriaConfig:
    """Build a CriteriaConfig from a parsed YAML mapping.

    Args:
        raw: Mapping with version, window, criteria, activity and sources

    Returns:
        Frozen CriteriaConfig
    """
    if "version" not in raw:
        raise CriteriaConfigurationError("Criteria configuration has no 'version'")

    window_raw = raw.get("window") or {}
    window = TemporalWindow(
        lower_exclusive=int(window_raw.get("lower_exclusive", -1)),
        upper_exclusive=int(window_raw.get("upper_exclusive", 365)),
    )

    criteria = tuple(_parse_criterion(c) for c in raw.get("criteria", []))
    labels = [c.label for c in criteria]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise CriteriaConfigurationError(f"Duplicate criterion labels: {duplicates}")

    activity = tuple(
        ActivityConfig(
            name=a["name"],
            source=a["source"],
            column=a.get("column"),
            distinct=bool(a.get("distinct", True)),
        )
        for a in raw.get("activity", [])
    )

    sources = {
        name: SourceConfig(
            name=name,
            filename=s["filename"],
            sep=s.get("sep", "|"),
            dayfirst=bool(s.get("dayfirst", False)),
            date_format=s.get("date_format"),
            columns=dict(s.get("columns") or {}),
        )
        for name, s in (raw.get("sources") or {}).items()
    }

    return CriteriaConfig(
        version=str(raw["version"]),
        window=window,
        criteria=criteria,
        activity=activity,
        sources=sources,
    )


def load_criteria(path: Optional[Union[str, Path]] = None) -> CriteriaConfig:
    """Load criteria definitions from YAML (default: bundled criteria.yaml)."""
    path = Path(path) if path else DEFAULT_CRITERIA_YAML
    with open(path, "r", encoding="utf-8") as f:
        return parse_criteria(yaml.safe_load(f))


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def ensure_directories(output_dir: Optional[Path] = None):
    """Create all required output directories."""
    output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
    for dir_path in [output_dir, output_dir / "hits"]:
        dir_path.mkdir(parents=True, exist_ok=True)
