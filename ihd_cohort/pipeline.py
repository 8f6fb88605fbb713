"""
IHD Cohort Pipeline
===================

Main pipeline: evaluates every configured criterion against the source
tables, summarizes activity and aggregates the cohort membership table.
"""

import argparse
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from tqdm import tqdm

from ihd_cohort.config.cohort_config import (
    DATA_DIR,
    OUTPUT_DIR,
    PATIENT_INDEX_SOURCE,
    PROCEDURE_REFERENCE_SOURCE,
    CriteriaConfig,
    CriteriaConfigurationError,
    ensure_directories,
    load_criteria,
)
from ihd_cohort.evaluators import CriterionEvaluator, EvaluationResult, build_evaluator
from ihd_cohort.extractors.source_loader import load_sources
from ihd_cohort.processing.activity_summary import summarize_activity
from ihd_cohort.processing.cohort_aggregator import ActivityTable, aggregate, prepare_patient_index
from ihd_cohort.processing.cohort_summary import cohort_overlap, summarize_cohorts

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one pipeline run produces."""

    hits: Dict[str, pd.DataFrame] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    membership: pd.DataFrame = field(default_factory=pd.DataFrame)
    summary: pd.DataFrame = field(default_factory=pd.DataFrame)
    overlap: pd.DataFrame = field(default_factory=pd.DataFrame)


def run_evaluator(
    evaluator: CriterionEvaluator,
    table: pd.DataFrame,
    patient_index: Optional[pd.DataFrame],
    **date_options,
) -> EvaluationResult:
    """Worker entry point (module level so it pickles)."""
    return evaluator.evaluate(table, patient_index, **date_options)


class IHDCohortPipeline:
    """Criterion evaluation and cohort aggregation for one criteria set."""

    def __init__(
        self,
        config: CriteriaConfig,
        procedure_reference: Optional[pd.DataFrame] = None,
        max_workers: int = 1,
    ):
        """
        Initialize pipeline.

        Args:
            config: Versioned criteria configuration
            procedure_reference: Procedure code -> category list for lookup criteria
            max_workers: Worker processes for evaluation (1 = sequential)
        """
        self.config = config
        self.procedure_reference = procedure_reference
        self.max_workers = max_workers
        self.failures: Dict[str, str] = {}

    def date_options(self, source: str) -> Dict[str, Any]:
        """Date parsing options of a configured source (defaults if unconfigured)."""
        source_config = self.config.sources.get(source)
        if source_config is None:
            return {}
        return {"dayfirst": source_config.dayfirst, "date_format": source_config.date_format}

    def build_evaluators(self) -> List[CriterionEvaluator]:
        """Build one evaluator per criterion; misconfigured criteria are skipped."""
        evaluators = []
        for criterion in self.config.criteria:
            try:
                evaluators.append(build_evaluator(
                    criterion,
                    window=self.config.window,
                    procedure_reference=self.procedure_reference,
                ))
            except CriteriaConfigurationError as e:
                logger.error(f"Criterion '{criterion.label}' not built: {e}")
                self.failures[criterion.label] = str(e)
        return evaluators

    def evaluate(
        self,
        sources: Dict[str, pd.DataFrame],
        patient_index: Optional[pd.DataFrame] = None,
    ) -> List[EvaluationResult]:
        """
        Run all evaluators against their source tables.

        Args:
            sources: Source name -> canonical DataFrame
            patient_index: Patient index for sources without index_date

        Returns:
            Results of the evaluators that completed, in criteria order
        """
        tasks = []
        for evaluator in self.build_evaluators():
            if evaluator.source not in sources:
                message = f"source '{evaluator.source}' not available"
                logger.error(f"Criterion '{evaluator.label}' skipped: {message}")
                self.failures[evaluator.label] = message
                continue
            tasks.append(evaluator)

        results: Dict[str, EvaluationResult] = {}
        if self.max_workers > 1 and len(tasks) > 1:
            with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(
                        run_evaluator, ev, sources[ev.source], patient_index, **self.date_options(ev.source)
                    ): ev
                    for ev in tasks
                }
                with tqdm(total=len(futures), desc="  Evaluating criteria", unit="criterion") as pbar:
                    for future in as_completed(futures):
                        evaluator = futures[future]
                        try:
                            results[evaluator.label] = future.result()
                        except Exception as e:
                            logger.exception(f"Criterion '{evaluator.label}' failed")
                            self.failures[evaluator.label] = str(e)
                        pbar.update(1)
        else:
            for evaluator in tasks:
                try:
                    results[evaluator.label] = run_evaluator(
                        evaluator,
                        sources[evaluator.source],
                        patient_index,
                        **self.date_options(evaluator.source),
                    )
                except Exception as e:
                    logger.exception(f"Criterion '{evaluator.label}' failed")
                    self.failures[evaluator.label] = str(e)

        return [results[ev.label] for ev in tasks if ev.label in results]

    def summarize_activity(
        self,
        sources: Dict[str, pd.DataFrame],
        patient_index: Optional[pd.DataFrame] = None,
    ) -> List[ActivityTable]:
        """Compute every configured activity covariate that has a source."""
        summaries = []
        for activity in self.config.activity:
            if activity.source not in sources:
                logger.warning(f"Activity '{activity.name}': source '{activity.source}' not available")
                continue
            try:
                counts = summarize_activity(
                    sources[activity.source],
                    activity.name,
                    column=activity.column,
                    distinct=activity.distinct,
                    window=self.config.window,
                    patient_index=patient_index,
                    **self.date_options(activity.source),
                )
            except Exception as e:
                logger.exception(f"Activity '{activity.name}' failed")
                self.failures[activity.name] = str(e)
                continue
            summaries.append((activity.name, counts))
        return summaries

    def process_data(
        self,
        sources: Dict[str, pd.DataFrame],
        patient_index: Optional[pd.DataFrame] = None,
    ) -> PipelineResult:
        """
        Evaluate, summarize and aggregate pre-loaded source tables.

        Args:
            sources: Source name -> canonical DataFrame
            patient_index: Patient index with demographics

        Returns:
            PipelineResult
        """
        self.failures = {}
        if patient_index is not None:
            patient_index = prepare_patient_index(
                patient_index, **self.date_options(PATIENT_INDEX_SOURCE)
            )
        results = self.evaluate(sources, patient_index)
        activity = self.summarize_activity(sources, patient_index)

        # Barrier: aggregation starts after every evaluator finished
        membership = aggregate(
            [(r.label, r.hits) for r in results],
            patient_index=patient_index,
            activity_summaries=activity,
        )
        covariates = [name for name, _ in activity]

        return PipelineResult(
            hits={r.label: r.hits for r in results},
            failures=dict(self.failures),
            warnings=[w for r in results for w in r.warnings],
            membership=membership,
            summary=summarize_cohorts(membership, covariates),
            overlap=cohort_overlap(membership),
        )

    def run(
        self,
        data_dir: Optional[str] = None,
        output_dir: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run full cohort selection.

        Args:
            data_dir: Directory with the source extracts (default: DATA_DIR)
            output_dir: Output directory (default: OUTPUT_DIR)

        Returns:
            PipelineResult
        """
        print("=" * 60)
        print(f"IHD Cohort Selection (criteria v{self.config.version})")
        print("=" * 60)

        data_dir = Path(data_dir) if data_dir else DATA_DIR
        output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
        ensure_directories(output_dir)

        print(f"\n1. Loading sources from {data_dir}...")
        sources = load_sources(data_dir, self.config.sources)
        patient_index = sources.pop(PATIENT_INDEX_SOURCE, None)
        reference = sources.pop(PROCEDURE_REFERENCE_SOURCE, None)
        if reference is not None:
            self.procedure_reference = reference
        if patient_index is None:
            logger.warning("No patient index loaded; sources must carry index_date")
        print(f"   Loaded {len(sources)} sources")

        print(f"\n2. Evaluating {len(self.config.criteria)} criteria...")
        result = self.process_data(sources, patient_index)

        print(f"\n3. Saving to {output_dir}...")
        for label, hits in result.hits.items():
            hits.to_parquet(output_dir / "hits" / f"{label}.parquet", index=False)
        result.membership.to_parquet(output_dir / "cohort_membership.parquet", index=False)
        result.summary.to_csv(output_dir / "cohort_summary.csv")
        result.overlap.to_csv(output_dir / "cohort_overlap.csv")

        print("\n" + "=" * 60)
        print("Cohort Summary")
        print("=" * 60)
        for label, hits in result.hits.items():
            n_patients = len(hits[["patient_id", "index_date"]].drop_duplicates())
            print(f"   {label}: {len(hits):,} hits, {n_patients:,} patients")
        if result.failures:
            print(f"   Failed: {', '.join(sorted(result.failures))}")
        if result.warnings:
            print(f"   Warnings: {len(result.warnings)}")
        print(f"\n   Output: {output_dir}")
        print("=" * 60)

        return result


# =============================================================================
# CLI
# =============================================================================

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Select IHD cohorts from EHR extracts")
    parser.add_argument('--config', type=str, default=None, help='Criteria YAML (default: bundled)')
    parser.add_argument('--data-dir', type=str, default=None, help='Directory with source extracts')
    parser.add_argument('--output-dir', type=str, default=None, help='Output directory')
    parser.add_argument('--workers', type=int, default=1, help='Worker processes for evaluation')
    parser.add_argument('--log-level', type=str, default='INFO', help='Logging level')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = load_criteria(args.config)
    pipeline = IHDCohortPipeline(config, max_workers=args.workers)
    pipeline.run(data_dir=args.data_dir, output_dir=args.output_dir)


if __name__ == "__main__":
    main()
