"""
Gatekeeper CLI

Command-line interface for the repository quality gates.

Exit codes: 0 all executed checks passed, 1 at least one failed,
2 configuration or repository access error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import ConfigManager, GatekeeperConfig, setup_logging
from .content import validate_content
from .errors import (
    ConfigurationError,
    EvidenceRejectedError,
    RepositoryAccessError,
)
from .evidence import EvidenceRecorder, LocalEvidenceStore, normalize_phase_id
from .file_sizes import FileSizeChecker
from .gates import GateOrchestrator
from .locations import LocationPolicy, LocationValidator
from .overlap import discover_documents, find_overlaps
from .premerge import PreMergeChecker, init_work_verification
from .report import (
    get_console,
    print_content_list,
    print_content_validation,
    print_evidence_recorded,
    print_file_sizes,
    print_gate_report,
    print_overlaps,
    print_verification,
    print_violations,
)
from .vcs import GitClient, VcsClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2


class Context:
    """Per-invocation wiring: configuration, repository root and git access."""

    def __init__(self, args: argparse.Namespace):
        self.root = Path(args.dir).resolve()
        manager = ConfigManager(
            config_file=Path(args.config) if args.config else None,
            base_dir=self.root,
        )
        self.manager = manager
        self.config: GatekeeperConfig = manager.config
        if args.verbose:
            self.config.logging.level = "DEBUG" if args.verbose > 1 else "INFO"
        setup_logging(self.config.logging)

        git = GitClient(self.root)
        self.vcs: Optional[VcsClient] = git if git.is_repository() else None
        if self.vcs is None:
            logger.info(f"{self.root} is not a git repository")

    def recorder(self) -> EvidenceRecorder:
        store = LocalEvidenceStore(
            self.root,
            dir_template=self.config.evidence.evidence_dir_template,
            metrics_dir=self.config.evidence.metrics_dir,
        )
        return EvidenceRecorder(store, self.config.evidence, root=self.root, vcs=self.vcs)


def cmd_check(args, ctx: Context) -> int:
    """Run the full gate sequence."""
    orchestrator = GateOrchestrator(ctx.config, ctx.root, ctx.vcs, ctx.recorder())
    report = orchestrator.run(
        skip_location=args.skip_location,
        skip_evidence=args.skip_evidence,
        skip_content=args.skip_content,
        phase=args.phase,
        commit_message=args.message,
    )
    if args.json:
        print(report.to_json())
    else:
        print_gate_report(report, get_console())
    return EXIT_OK if report.passed else EXIT_FAILED


def cmd_evidence_record(args, ctx: Context) -> int:
    recorder = ctx.recorder()
    try:
        record = recorder.record(
            args.phase,
            test_file=Path(args.test_file) if args.test_file else None,
            force=args.force,
        )
    except EvidenceRejectedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    print_evidence_recorded(record, get_console())
    return EXIT_OK


def cmd_evidence_verify(args, ctx: Context) -> int:
    phase = normalize_phase_id(args.phase)
    verification = ctx.recorder().verify(phase, max_age_minutes=args.max_age)
    print_verification(phase, verification, get_console())
    return EXIT_OK if verification else EXIT_FAILED


def cmd_locations(args, ctx: Context) -> int:
    validator = LocationValidator(LocationPolicy(ctx.config.locations), ctx.root, ctx.vcs)
    violations = validator.scan(staged=args.staged)
    print_violations(violations, get_console(), fix=args.fix)
    return EXIT_FAILED if violations else EXIT_OK


def cmd_overlap(args, ctx: Context) -> int:
    """Advisory only: always exits 0."""
    documents = discover_documents(ctx.root, ctx.config.overlap)
    overlaps = find_overlaps(documents, ctx.config.overlap, threshold=args.threshold)
    print_overlaps(overlaps, get_console(), document_count=len(documents))
    return EXIT_OK


def cmd_content(args, ctx: Context) -> int:
    report = validate_content(ctx.root, ctx.config.content)
    console = get_console()
    if args.action == "list":
        print_content_list(report, console)
        return EXIT_OK
    print_content_validation(report, console)
    return EXIT_OK if report.passed else EXIT_FAILED


def cmd_sizes(args, ctx: Context) -> int:
    checker = FileSizeChecker(ctx.config.file_sizes, ctx.root, ctx.vcs)
    report = checker.check(staged=args.staged)
    print_file_sizes(report, get_console())
    return EXIT_OK if report.passed else EXIT_FAILED


def cmd_premerge_check(args, ctx: Context) -> int:
    """Validate the branch's work verification before merging."""
    checker = PreMergeChecker(ctx.config.premerge, ctx.root, ctx.vcs, ctx.recorder())
    report = checker.run(branch=args.branch)
    if args.json:
        print(report.to_json())
    else:
        print_gate_report(report, get_console(), title="Pre-Merge Validation",
                          action="merge", show_notes=True)
    return EXIT_OK if report.passed else EXIT_FAILED


def cmd_premerge_init(args, ctx: Context) -> int:
    checker = PreMergeChecker(ctx.config.premerge, ctx.root, ctx.vcs)
    branch = checker.current_branch(args.branch)
    try:
        path = init_work_verification(ctx.root, branch, ctx.config.premerge, force=args.force)
    except (FileExistsError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    print(f"Created {path} for {branch}")
    return EXIT_OK


def cmd_config_init(args, ctx: Context) -> int:
    target = ctx.root / (args.output or ".gatekeeper.yaml")
    if target.exists() and not args.force:
        print(f"Error: {target} already exists (use --force to overwrite)", file=sys.stderr)
        return EXIT_FAILED
    ctx.manager.save(target)
    print(f"Wrote {target}")
    return EXIT_OK


def _threshold(value: str) -> float:
    number = float(value)
    if not 0.0 <= number <= 1.0:
        raise argparse.ArgumentTypeError("threshold must be between 0 and 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Repository quality gates: file locations, test evidence, content maturity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gatekeeper check
  gatekeeper check --phase 1.2 --message "feat: phase-1.2 complete"
  gatekeeper evidence record phase-1.2 --test-file test-results.json
  gatekeeper evidence verify phase-1.2
  gatekeeper locations --fix
  gatekeeper overlap --threshold 0.8
  gatekeeper premerge check --branch feature/login
        """
    )
    parser.add_argument('--dir', '-d', default='.', help='Repository root (default: current)')
    parser.add_argument('--config', '-c', help='Configuration file (default: <dir>/.gatekeeper.yaml)')
    parser.add_argument('--verbose', '-v', action='count', default=0, help='More log output (-vv for debug)')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # check
    check_parser = subparsers.add_parser('check', help='Run all gate checks')
    check_parser.add_argument('--skip-location', action='store_true', help='Skip file location check')
    check_parser.add_argument('--skip-evidence', action='store_true',
                              help='Skip phase checks for a phase detected from the commit message')
    check_parser.add_argument('--skip-content', action='store_true', help='Skip content maturity check')
    check_parser.add_argument('--phase', help='Phase to validate (X.Y or phase-X.Y)')
    check_parser.add_argument('--message', '-m', help='Commit message to analyze')
    check_parser.add_argument('--json', action='store_true', help='Output as JSON')
    check_parser.set_defaults(func=cmd_check)

    # evidence
    evidence_parser = subparsers.add_parser('evidence', help='Record or verify test evidence')
    evidence_sub = evidence_parser.add_subparsers(dest='evidence_command')

    record_parser = evidence_sub.add_parser('record', help='Record evidence of a passing test run')
    record_parser.add_argument('phase', help='Phase identifier (phase-X.Y or X.Y)')
    record_parser.add_argument('--test-file', help='Test results file (JSON or JUnit XML)')
    record_parser.add_argument('--force', action='store_true', help='Record even if tests failed')
    record_parser.set_defaults(func=cmd_evidence_record)

    verify_parser = evidence_sub.add_parser('verify', help='Verify evidence is present and fresh')
    verify_parser.add_argument('phase', help='Phase identifier (phase-X.Y or X.Y)')
    verify_parser.add_argument('--max-age', type=int, help='Freshness window in minutes')
    verify_parser.set_defaults(func=cmd_evidence_verify)

    # locations
    locations_parser = subparsers.add_parser('locations', help='Check root file placement')
    locations_parser.add_argument('--staged', action='store_true', help='Check staged files only')
    locations_parser.add_argument('--fix', action='store_true', help='Show git mv commands')
    locations_parser.set_defaults(func=cmd_locations)

    # overlap
    overlap_parser = subparsers.add_parser('overlap', help='Detect overlapping documentation (advisory)')
    overlap_parser.add_argument('--threshold', type=_threshold, help='Similarity threshold in [0, 1]')
    overlap_parser.set_defaults(func=cmd_overlap)

    # content
    content_parser = subparsers.add_parser('content', help='List or validate content maturity')
    content_parser.add_argument('action', nargs='?', choices=['list', 'validate'], default='list')
    content_parser.set_defaults(func=cmd_content)

    # sizes
    sizes_parser = subparsers.add_parser('sizes', help='Check file line counts against limits')
    sizes_parser.add_argument('--staged', action='store_true', help='Check staged files only')
    sizes_parser.set_defaults(func=cmd_sizes)

    # premerge
    premerge_parser = subparsers.add_parser('premerge', help='Validate work verification before merging')
    premerge_sub = premerge_parser.add_subparsers(dest='premerge_command')

    premerge_check_parser = premerge_sub.add_parser('check', help='Check the branch is ready to merge')
    premerge_check_parser.add_argument('--branch', '-b', help='Branch to check (default: current)')
    premerge_check_parser.add_argument('--json', action='store_true', help='Output as JSON')
    premerge_check_parser.set_defaults(func=cmd_premerge_check)

    premerge_init_parser = premerge_sub.add_parser('init', help='Write a work verification template')
    premerge_init_parser.add_argument('--branch', '-b', help='Branch name (default: current)')
    premerge_init_parser.add_argument('--force', '-f', action='store_true', help='Overwrite an existing file')
    premerge_init_parser.set_defaults(func=cmd_premerge_init)

    # config
    config_parser = subparsers.add_parser('config', help='Manage configuration')
    config_sub = config_parser.add_subparsers(dest='config_command')
    init_parser = config_sub.add_parser('init', help='Write the effective configuration to a file')
    init_parser.add_argument('--output', '-o', help='File name relative to --dir')
    init_parser.add_argument('--force', '-f', action='store_true', help='Overwrite an existing file')
    init_parser.set_defaults(func=cmd_config_init)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, 'func', None):
        parser.print_help()
        return EXIT_FAILED

    try:
        ctx = Context(args)
        return args.func(args, ctx)
    except (ConfigurationError, RepositoryAccessError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
