#!/usr/bin/env python3
"""
Test runner for BioTune
"""

import argparse
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent

SUITES = {
    "unit": ROOT / "tests" / "unit",
    "integration": ROOT / "tests" / "integration",
}


def run_pytest(targets, keyword=None, verbose=False):
    command = [sys.executable, "-m", "pytest", "-v" if verbose else "-q"]
    if keyword:
        command += ["-k", keyword]
    command += [str(target) for target in targets]
    print(f"$ {' '.join(command[1:])}")
    return subprocess.run(command, cwd=ROOT).returncode == 0


def run_suites(names, keyword=None, verbose=False):
    """Run each suite separately and report which ones failed"""
    failed = []
    for name in names:
        print(f"\n{'=' * 50}\n{name} tests\n{'=' * 50}")
        if not run_pytest([SUITES[name]], keyword, verbose):
            failed.append(name)
    return failed


def main():
    parser = argparse.ArgumentParser(description='Run BioTune tests')
    parser.add_argument('--test', help='Run a specific test file')
    parser.add_argument('--suite', choices=sorted(SUITES), action='append',
                        help='Suite to run (repeatable, default: all)')
    parser.add_argument('-k', dest='keyword', help='Only run tests matching this expression')
    parser.add_argument('-v', '--verbose', action='store_true')
    args = parser.parse_args()

    if args.test:
        path = Path(args.test)
        if not path.exists():
            print(f"Test file not found: {args.test}")
            sys.exit(1)
        sys.exit(0 if run_pytest([path.resolve()], args.keyword, args.verbose) else 1)

    failed = run_suites(args.suite or list(SUITES), args.keyword, args.verbose)
    if failed:
        print(f"\n❌ Failed suites: {', '.join(failed)}")
        sys.exit(1)
    print("\n🎉 All tests passed!")


if __name__ == "__main__":
    main()
