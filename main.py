"""
Assignment Question Allocation - Main Entry Point

Publishes one assignment from spreadsheet snapshots:
- Loads the question catalog and attendance snapshot from Excel
- Reads the assignment configuration from a JSON file
- Allocates every target student's question list
- Saves the allocation workbook and prints a validation report

Usage:
    python main.py --catalog questions.xlsx --attendance attendance.xlsx --spec assignment.json

Or create sample inputs first:
    python main.py --create-sample
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from allocation_errors import AllocationError
from assignment_builder import AssignmentBuilder
from assignment_models import AssignmentMode, AssignmentSpec
from attendance_resolver import find_gaps
from engine_config import UNASSIGNABLE_SKIP, EngineConfig, get_engine_config
from excel_handler import (
    ExcelResultStore,
    create_sample_attendance_excel,
    create_sample_catalog_excel,
    load_attendance_snapshot,
    load_question_catalog,
)
from metrics import (
    compute_min_max_delta,
    compute_topic_delta,
    compute_usage_table,
    generate_allocation_dataframe,
    print_validation_report,
    run_all_validations,
)


DEFAULT_OUTPUT = "output"
RESULT_FILENAME = "assignment_allocation.xlsx"
PREVIEW_STUDENTS = 5

SAMPLE_SPEC = {
    "assignmentId": "sample-batch-1",
    "title": "Sample attendance-tiered assignment",
    "mode": "attendance-tiered",
    "pool": [f"Q{i}" for i in range(1, 31)],
    "filters": {"topics": [], "subtopics": []},
    "rules": [
        {"min": 0, "max": 50, "count": 8},
        {"min": 50, "max": 75, "count": 6},
        {"min": 75, "max": 100, "count": 4},
    ],
    "topicWeights": [
        {"topic": "Matrices", "weightPercent": 40},
        {"topic": "Calculus", "weightPercent": 35},
        {"topic": "Probability", "weightPercent": 25},
    ],
    "targetCohort": {"departments": [], "course": "MA101"},
}


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Assignment Question Allocation Engine',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  python main.py --catalog questions.xlsx --attendance attendance.xlsx --spec assignment.json
  python main.py --catalog questions.xlsx --attendance attendance.xlsx --spec batch.json --skip-unassignable
  python main.py --create-sample  # Creates sample catalog, attendance and spec files
        '''
    )

    parser.add_argument('--catalog', '-c', type=str, help='Excel file with the question catalog')
    parser.add_argument('--attendance', '-a', type=str, help='Excel file with the attendance snapshot')
    parser.add_argument('--spec', '-s', type=str, help='JSON file with the assignment configuration')

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=DEFAULT_OUTPUT,
        help=f'Output directory (default: {DEFAULT_OUTPUT})'
    )

    parser.add_argument(
        '--seed-nonce',
        type=str,
        default=None,
        help='Secret mixed into per-student seeds (default: ALLOCATOR_SEED_NONCE env var)'
    )

    parser.add_argument(
        '--skip-unassignable',
        action='store_true',
        help='Skip students whose attendance matches no rule instead of failing'
    )

    parser.add_argument(
        '--shuffle',
        action='store_true',
        help='Shuffle question order within each student list'
    )

    parser.add_argument(
        '--create-sample',
        action='store_true',
        help='Create sample input files in the output directory'
    )

    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    return parser.parse_args(argv)


def build_config(args) -> EngineConfig:
    """Environment defaults, overridden by command line flags."""
    config = get_engine_config()
    if args.skip_unassignable:
        config.unassignable_policy = UNASSIGNABLE_SKIP
    if args.seed_nonce is not None:
        config.seed_nonce = args.seed_nonce
    if args.shuffle:
        config.shuffle_within_student = True
    return config


def create_samples(output_dir: str):
    """Write sample catalog, attendance and spec files."""
    catalog_path = os.path.join(output_dir, "sample_catalog.xlsx")
    attendance_path = os.path.join(output_dir, "sample_attendance.xlsx")
    spec_path = os.path.join(output_dir, "sample_assignment.json")

    create_sample_catalog_excel(catalog_path)
    create_sample_attendance_excel(attendance_path)
    with open(spec_path, "w", encoding="utf-8") as f:
        json.dump(SAMPLE_SPEC, f, indent=2)

    print(f"\n📝 Created sample files:")
    print(f"  - {catalog_path}  (30 questions in 3 topics)")
    print(f"  - {attendance_path}  (30 students, 0-100% attendance)")
    print(f"  - {spec_path}  (attendance-tiered, weighted topics)")
    print(f"\nRun: python main.py --catalog {catalog_path} --attendance {attendance_path} --spec {spec_path}")


def main(argv=None) -> bool:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    os.makedirs(args.output, exist_ok=True)

    print("=" * 70)
    print("ASSIGNMENT QUESTION ALLOCATION ENGINE")
    print("=" * 70)

    if args.create_sample:
        create_samples(args.output)
        return True

    # ========================================================================
    # Validate inputs
    # ========================================================================
    for flag, path in (('--catalog', args.catalog), ('--attendance', args.attendance), ('--spec', args.spec)):
        if not path:
            print(f"\n❌ Error: {flag} is required (or use --create-sample)")
            print("Run: python main.py --help")
            return False
        if not Path(path).exists():
            print(f"\n❌ Error: Input file not found: {path}")
            return False

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"\n❌ Configuration Error: {e}")
        return False

    # ========================================================================
    # Step 1: Load snapshots
    # ========================================================================
    print(f"\n[1/5] Loading snapshots")
    try:
        catalog = load_question_catalog(args.catalog)
        attendance = load_attendance_snapshot(args.attendance)
        with open(args.spec, encoding="utf-8") as f:
            spec = AssignmentSpec.from_dict(json.load(f))
    except (ValueError, json.JSONDecodeError) as e:
        print(f"\n❌ Input Error: {e}")
        return False

    print(f"  Catalog:    {len(catalog.get_all())} questions")
    for topic, count in catalog.count_by_topic().items():
        print(f"    - {topic}: {count}")
    print(f"  Attendance: {len(attendance)} students")

    # ========================================================================
    # Step 2: Assignment configuration
    # ========================================================================
    print(f"\n[2/5] Assignment Configuration:")
    print(f"    - Assignment:  {spec.assignment_id} {spec.title}")
    print(f"    - Mode:        {spec.mode.value}")
    print(f"    - Pool:        {len(spec.pool)} questions")
    if spec.question_count is not None:
        print(f"    - Questions:   {spec.question_count} per student")
    for rule in spec.rules:
        print(f"    - Rule:        {rule.label()}")
    for tw in spec.topic_weights:
        print(f"    - Weight:      {tw.topic} {tw.weight}%")
    if spec.mode == AssignmentMode.ATTENDANCE_TIERED:
        for low, high in find_gaps(spec.rules):
            print(f"  ⚠️  No rule covers attendance between {low:g}% and {high:g}%")
    print(f"    - Unassignable students: {config.unassignable_policy}")

    # ========================================================================
    # Step 3: Allocate
    # ========================================================================
    print(f"\n[3/5] Allocating questions...")
    builder = AssignmentBuilder(spec, catalog, attendance, config)
    try:
        result = builder.run()
    except AllocationError as e:
        print(f"\n❌ Assignment rejected ({type(e).__name__}): {e}")
        return False

    print(f"  ✓ Allocated {len(result)} students from {len(result.eligible)} eligible questions")
    if result.skipped:
        print(f"  ⚠️  Skipped {len(result.skipped)} students:")
        for skipped in result.skipped[:5]:
            print(f"    - {skipped.student_id} ({skipped.percentage:.1f}%)")

    # ========================================================================
    # Step 4: Publish
    # ========================================================================
    print(f"\n[4/5] Saving allocation...")
    result_path = os.path.join(args.output, RESULT_FILENAME)
    try:
        builder.publish(ExcelResultStore(result_path, catalog))
    except AllocationError as e:
        print(f"\n❌ {e}")
        return False
    print(f"  ✓ Saved: {result_path}")

    # ========================================================================
    # Step 5: Results
    # ========================================================================
    print(f"\n[5/5] Results Summary")

    print("\n" + "-" * 70)
    print(f"ALLOCATION PREVIEW (first {PREVIEW_STUDENTS} students)")
    print("-" * 70)
    allocation_df = generate_allocation_dataframe(result)
    print(allocation_df.iloc[:, :PREVIEW_STUDENTS].fillna("").to_string())

    print("\n" + "-" * 70)
    print("QUESTION USAGE")
    print("-" * 70)
    usage_df = compute_usage_table(result, catalog)
    least_used = usage_df.sort_values(["total_usage_count", "question_id"]).head(5)
    print("Least used questions:")
    print(least_used.to_string(index=False))
    overall = compute_min_max_delta(dict(zip(usage_df["question_id"], usage_df["total_usage_count"])))
    print()
    topic_stats = compute_topic_delta(result, catalog)
    print(topic_stats.to_string(index=False))
    print(f"\nOverall usage: min {overall['min_usage']}, max {overall['max_usage']}, delta {overall['delta']}")

    validations = run_all_validations(result)
    all_passed = print_validation_report(validations)

    print("=" * 70)
    if all_passed:
        print("✅ SUCCESS: Assignment published!")
    else:
        print("⚠️  WARNING: Some validations failed")
    print("=" * 70)

    return all_passed


def run():
    sys.exit(0 if main() else 1)


if __name__ == "__main__":
    run()
