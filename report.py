"""
Side-by-side comparison of workload results across targets.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from errors import MissingResultError
from logger import get_logger
from metrics import WorkloadResult

NAME_WIDTH = 24
COLUMN_WIDTH = 22
RULE_WIDTH = 80

# Rows whose counts mean something other than completed commands
COUNT_NOTES = {
    "Pub/Sub": "counts messages published",
    "Pub/Sub Latency": "counts messages received",
}


def find_result(session, workload: str) -> WorkloadResult:
    """The session's result for ``workload``; raises MissingResultError when absent."""
    for result in session.results:
        if result.name == workload:
            return result
    raise MissingResultError(session.name, workload)


def percentage_difference(base: float, other: float) -> Optional[float]:
    """((other / base) - 1) * 100, or None when the base throughput is zero."""
    if base <= 0:
        return None
    return ((other / base) - 1) * 100


@dataclass
class Comparison:
    """One table row: a workload's throughput on every target."""
    workload: str
    throughputs: Dict[str, float]
    # Non-base target -> percentage difference against the base (None = undefined)
    differences: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def base(self) -> str:
        return next(iter(self.throughputs))

    def describe(self, target: str) -> str:
        """Human-readable verdict for ``target`` against the base."""
        diff = self.differences[target]
        if diff is None:
            return f"{self.workload}: n/a ({self.base} recorded no throughput)"
        if diff > 0:
            return f"{self.workload}: {target} is {diff:,.1f}% faster"
        if diff < 0:
            return f"{self.workload}: {self.base} is faster ({target} is {abs(diff):,.1f}% slower)"
        return f"{self.workload}: {self.base} and {target} are equal"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'workload': self.workload,
            'ops_per_second': {name: round(value, 2) for name, value in self.throughputs.items()},
            'difference_pct': {
                name: (round(value, 1) if value is not None else None)
                for name, value in self.differences.items()
            },
        }


@dataclass
class ComparisonReport:
    targets: List[str]
    rows: List[Comparison]
    # Workload -> targets that have no result for it
    missing: Dict[str, List[str]] = field(default_factory=dict)

    def workloads(self) -> List[str]:
        return [row.workload for row in self.rows]


def compare(sessions: Sequence) -> ComparisonReport:
    """
    Join results across sessions by workload name.

    The first session is the base. Only workloads every session completed get a
    row; the others are listed in ``missing``.
    """
    if len(sessions) < 2:
        raise ValueError("At least two targets are needed for a comparison")

    logger = get_logger()
    names: List[str] = []
    for session in sessions:
        for result in session.results:
            if result.name not in names:
                names.append(result.name)

    rows = []
    missing: Dict[str, List[str]] = {}
    for name in names:
        absent = [s.name for s in sessions if not any(r.name == name for r in s.results)]
        if absent:
            missing[name] = absent
            logger.warning(f"'{name}' left out of the comparison: no result for {', '.join(absent)}")
            continue

        throughputs = {s.name: find_result(s, name).throughput for s in sessions}
        base_throughput = throughputs[sessions[0].name]
        differences = {
            s.name: percentage_difference(base_throughput, throughputs[s.name])
            for s in sessions[1:]
        }
        rows.append(Comparison(name, throughputs, differences))

    return ComparisonReport([s.name for s in sessions], rows, missing)


def format_report(report: ComparisonReport) -> List[str]:
    """Render the comparison table and the difference analysis."""
    lines = ["", "Performance Test Results Comparison:", "=" * RULE_WIDTH]

    header = f"{'Test Type':<{NAME_WIDTH}}"
    for target in report.targets:
        header += f" | {target + ' (ops/sec)':>{COLUMN_WIDTH}}"
    lines.append(header)
    lines.append("-" * RULE_WIDTH)

    for row in report.rows:
        line = f"{row.workload:<{NAME_WIDTH}}"
        for target in report.targets:
            line += f" | {row.throughputs[target]:>{COLUMN_WIDTH},.0f}"
        lines.append(line)
    lines.append("=" * RULE_WIDTH)

    lines.append("")
    lines.append("Performance Difference Analysis:")
    for row in report.rows:
        for target in report.targets[1:]:
            lines.append(row.describe(target))

    notes = [f"  {name}: {note}" for name, note in COUNT_NOTES.items() if name in report.workloads()]
    if notes:
        lines.append("")
        lines.append("Notes:")
        lines.extend(notes)

    if report.missing:
        lines.append("")
        lines.append("Not compared (incomplete on some targets):")
        for name, targets in report.missing.items():
            lines.append(f"  {name}: missing on {', '.join(targets)}")

    return lines


def print_report(report: ComparisonReport):
    """Print the comparison to stdout."""
    print("\n".join(format_report(report)))


def export_report_to_json(report: ComparisonReport, sessions: Sequence, file_path: str, run_id: str = None):
    """Export every result and the comparison to a JSON file."""
    summary = {
        'run_id': run_id,
        'targets': {
            session.name: {
                'results': [result.to_dict() for result in session.results],
                'error': str(session.error) if getattr(session, 'error', None) else None,
            }
            for session in sessions
        },
        'comparison': [row.to_dict() for row in report.rows],
        'missing': report.missing,
    }
    with open(file_path, 'w') as f:
        json.dump(summary, f, indent=2)
