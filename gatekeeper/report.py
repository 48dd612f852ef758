"""Console rendering for gate, location, overlap, content, evidence and size reports."""

from typing import Optional

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from .content import ContentHealthReport, summarize
from .evidence import EvidenceRecord, EvidenceVerification
from .file_sizes import FileSizeReport
from .gates import GateReport, GateStatus
from .locations import Violation
from .overlap import Overlap

STATUS_STYLE = {
    GateStatus.PASSED: "[green]PASSED[/green]",
    GateStatus.FAILED: "[red]FAILED[/red]",
    GateStatus.SKIPPED: "[yellow]SKIPPED[/yellow]",
}


def get_console() -> Console:
    return Console(highlight=False)


def print_gate_report(
    report: GateReport,
    console: Console,
    title: str = "Gate Check Results",
    action: str = "commit",
    show_notes: bool = False,
) -> None:
    console.print(Rule(title))
    if report.branch:
        console.print(f"Branch: [bold]{report.branch}[/bold]")
    if report.commit_message:
        first_line = report.commit_message.splitlines()[0]
        console.print(f"Commit message: \"{first_line}\"")
    if report.phase:
        console.print(f"Active phase: [bold]{report.phase}[/bold]")

    table = Table()
    table.add_column("Check", style="cyan")
    table.add_column("Status")
    table.add_column("Message")
    for result in report.results:
        table.add_row(result.type, STATUS_STYLE[result.status], result.message)
    console.print(table)

    counts = report.counts()
    console.print(
        f"Total checks: {counts['total']}  "
        f"Passed: {counts['passed']}  Failed: {counts['failed']}  Skipped: {counts['skipped']}"
    )

    if show_notes:
        for result in report.executed:
            if result.passed and isinstance(result.details, list):
                for note in result.details:
                    console.print(f"[yellow]Warning:[/yellow] {note}")

    if report.failures:
        console.print("\nFailed checks:")
        for i, result in enumerate(report.failures, 1):
            console.print(f"\n{i}. [bold]{result.type}[/bold]")
            console.print(f"   {result.message}")
            if isinstance(result.details, list):
                for detail in result.details:
                    console.print(f"   - {detail}")
            elif result.details:
                console.print(f"   {result.details}")
        console.print(Rule(f"[red]GATE CHECK FAILED - Fix issues before you {action}[/red]"))
    else:
        console.print(Rule(f"[green]ALL GATES PASSED - Ready to {action}[/green]"))


def print_violations(violations: list[Violation], console: Console, fix: bool = False) -> None:
    console.print(Rule("File Location Check"))
    if not violations:
        console.print("[green]All files in correct locations[/green]")
        return

    console.print(f"[red]{len(violations)} file location violation(s):[/red]\n")
    for v in violations:
        console.print(f"[bold]{v.file}[/bold]")
        console.print(f"   Reason: {v.reason}")
        if v.suggested_path:
            console.print(f"   Should be in: {v.suggested_path}")
            if fix:
                console.print(f"   Fix: git mv {v.file} {v.suggested_path}")

    if fix:
        console.print("\nRun the suggested \"git mv\" commands above to fix.")
    else:
        console.print("\nRun with --fix to see move commands.")


def print_overlaps(overlaps: list[Overlap], console: Console, document_count: Optional[int] = None) -> None:
    console.print(Rule("Document Overlap Detection"))
    if document_count is not None:
        console.print(f"Compared {document_count} document(s)")
    if not overlaps:
        console.print("[green]No overlapping documents detected[/green]")
        return

    console.print(f"[yellow]{len(overlaps)} potential overlap(s) detected:[/yellow]\n")
    for overlap in overlaps:
        s = overlap.suggestion
        console.print(f"[yellow]{overlap.percent}% similar:[/yellow]")
        console.print(f"   {overlap.doc1}")
        console.print(f"   {overlap.doc2}")
        console.print(f"   Reason: {overlap.reason}")
        console.print(f"   Suggestion: {s.action}")
        console.print(f"   - Keep: {s.keep_file}")
        console.print(f"   - Merge from: {s.merge_from}")
        console.print(f"   - Why: {s.reason}")
        console.print("   Steps:")
        for step in s.steps:
            console.print(f"   {step}")
        console.print()

    console.print("This is a warning, not an error. Consider consolidating overlapping documents.")


def print_content_list(report: ContentHealthReport, console: Console) -> None:
    table = Table(title="Content")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Phase")
    table.add_column("Words", justify="right")
    table.add_column("Updated")
    for unit in report.units:
        meta = unit.meta
        status = "[yellow]STUB[/yellow]" if meta.status == "stub" else "[green]PUBLISHED[/green]"
        table.add_row(
            unit.filename,
            status,
            meta.phase_id or "-",
            str(meta.word_count),
            meta.last_updated.isoformat() if meta.last_updated else "-",
        )
    console.print(table)

    counts = summarize(report.units)
    console.print(
        f"Total: {counts['total']}  Published: {counts['published']}  "
        f"Stubs: {counts['stub']}  Stale: {counts['stale']}"
    )


def print_content_validation(report: ContentHealthReport, console: Console) -> None:
    console.print(Rule("Validating Content Health"))
    if report.errors:
        console.print("\n[red]ERRORS:[/red]")
        for finding in report.errors:
            console.print(f"  {finding.describe()}")
    if report.warnings:
        console.print("\n[yellow]WARNINGS:[/yellow]")
        for finding in report.warnings:
            console.print(f"  {finding.describe()}")
    if not report.errors and not report.warnings:
        console.print("[green]All content is healthy[/green]")
    console.print(f"\nErrors: {len(report.errors)}  Warnings: {len(report.warnings)}")


def print_evidence_recorded(record: EvidenceRecord, console: Console) -> None:
    summary = record.test_results.summary
    console.print("[green]Test evidence recorded[/green]")
    console.print(f"  Phase: {record.phase}")
    console.print(f"  Status: {'PASSED' if record.passed else 'FAILED'}")
    console.print(f"  Time: {record.timestamp.isoformat()}")
    console.print(f"  Tests: {summary.passed} passed, {summary.failed} failed")
    if record.test_results.note:
        console.print(f"  Note: {record.test_results.note}")


def print_verification(phase: str, verification: EvidenceVerification, console: Console) -> None:
    if verification.valid:
        console.print(f"[green]Test evidence valid for {phase}[/green]: {verification.message}")
    else:
        console.print(f"[red]Test evidence {verification.reason} for {phase}[/red]: {verification.message}")


def print_file_sizes(report: FileSizeReport, console: Console) -> None:
    console.print(Rule("File Size Check"))
    if report.passed:
        console.print(f"[green]All {report.checked} files within size limits[/green]")
        return

    console.print(f"[red]{len(report.violations)} file(s) exceed size limits:[/red]\n")
    for v in report.violations:
        console.print(f"[bold]{v.file}[/bold]")
        console.print(f"   Lines: {v.lines} (limit: {v.limit}, excess: {v.excess})")
        console.print("   Suggestions:")
        for suggestion in v.suggestions:
            console.print(f"   - {suggestion}")
        console.print()
