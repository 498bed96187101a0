"""
Run the Cookie Cats Gate Placement Analysis

Usage:
    # Full dataset from ./data/raw/cookie_cats/cookie_cats.csv
    python run_pipeline.py

    # Explicit input file and a 10% sample
    python run_pipeline.py --data path/to/cookie_cats.csv --sample 0.1

    # Write report figures
    python run_pipeline.py --output-dir reports/figures

    # Run quietly
    python run_pipeline.py --quiet
"""

import argparse
import sys
from typing import List, Optional

from gate_experiment.pipelines import run_cookie_cats_analysis


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(
        description="Run the Cookie Cats gate placement retention analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_pipeline.py
  python run_pipeline.py --data data/raw/cookie_cats/cookie_cats.csv
  python run_pipeline.py --sample 0.1 --output-dir reports/figures
  python run_pipeline.py --quiet
        """
    )

    parser.add_argument(
        '--data',
        default=None,
        help='Path to the Cookie Cats CSV (default: ./data/raw/cookie_cats/cookie_cats.csv)'
    )

    parser.add_argument(
        '--sample',
        type=float,
        default=1.0,
        help='Sample fraction for data loading (0.0-1.0]'
    )

    parser.add_argument(
        '--output-dir',
        default=None,
        help='Directory for PNG report figures (default: no figures)'
    )

    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress verbose output'
    )

    args = parser.parse_args(argv)

    verbose = not args.quiet

    try:
        result = run_cookie_cats_analysis(
            path=args.data,
            sample_frac=args.sample,
            verbose=verbose,
            output_dir=args.output_dir,
        )
        if verbose:
            day7 = result.retention_tests['retained_day7']
            print(f"\nDay-7 retention difference ({result.config.treatment_label} - {result.config.control_label}): {day7.diff:+.4f} (p={day7.p_value:.4f})")
        return 0

    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        if verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
