"""
Human-readable bootstrap reports.

``render`` is pure: the same RunReport always produces the same text. The
guidance builders are used by the orchestrator when it assembles the report,
so the report itself carries its next steps or troubleshooting list.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import click

from snesdev.models import RunReport, StepRecord, StepStatus

__all__ = ["render", "build_next_steps", "build_troubleshooting"]

DOCS_URL = "https://github.com/alekmaul/pvsneslib"
WIKI_URL = "https://wiki.superfamicom.org/"


def _numbered(items: Sequence[Sequence[str]]) -> List[str]:
    lines: List[str] = []
    for index, (title, *commands) in enumerate(items, start=1):
        lines.append(f"{index}. {title}")
        lines.extend(f"   {command}" for command in commands)
        lines.append("")
    return lines


def build_next_steps(
    environment_file: str,
    project_path: Optional[str],
    optional_failures: Sequence[StepRecord] = (),
) -> List[str]:
    """Ordered guidance shown after a successful run."""
    items: List[Sequence[str]] = []
    if environment_file:
        items.append(("Activate the PVSnesLib environment:", f"source {environment_file}"))
    items.append(("Verify your installation:", "pvsneslib_validate_install --validate-tools"))
    if project_path:
        items.append(("Start developing your SNES game:", f"cd {project_path}", "make build"))
        items.append(("Test your ROM:", "./test.sh"))
    else:
        items.append(("Create a new SNES project:", "pvsneslib_init --project-name my-awesome-game"))

    lines = ["🚀 Next Steps:", ""]
    lines.extend(_numbered(items))

    if optional_failures:
        lines.append("⚠️ Non-fatal issues (optional steps that failed):")
        for step in optional_failures:
            error = f": {step.error_message}" if step.error_message else ""
            lines.append(f"   • {step.description}{error}")
        lines.append("   Re-run with --resume to retry them.")
        lines.append("")

    lines.extend([
        "📚 Resources:",
        f"  • PVSnesLib Documentation: {DOCS_URL}",
        f"  • SNES Development Guide: {WIKI_URL}",
        "  • Examples and Tutorials: Check your installed examples/",
    ])
    return lines


def build_troubleshooting(
    steps: Sequence[StepRecord],
    failure_message: Optional[str] = None,
) -> List[str]:
    """Step-by-step guidance shown after an aborted run."""
    lines: List[str] = []
    if failure_message:
        lines.extend(["❌ Failure Summary:", f"   {failure_message}", ""])

    required = [s for s in steps if s.required and s.status == StepStatus.FAILED]
    optional = [s for s in steps if not s.required and s.status == StepStatus.FAILED]
    not_run = [s for s in steps if s.status == StepStatus.PENDING]

    if required or optional:
        lines.append("🚫 Failed Steps:")
        for step in required:
            error = f" ({step.error_message})" if step.error_message else ""
            lines.append(f"   • [required] {step.description}{error}")
        for step in optional:
            error = f" ({step.error_message})" if step.error_message else ""
            lines.append(f"   • [optional] {step.description}{error}")
        lines.append("")

    if not_run:
        lines.append("⏸️ Not attempted:")
        lines.extend(f"   • {step.description}" for step in not_run)
        lines.append("")

    lines.append("🛠️ Common Solutions:")
    lines.append("")
    lines.extend(_numbered([
        ("Check network connectivity:", "ping github.com"),
        ("Verify system prerequisites:", "pvsneslib_validate_host"),
        (
            "Try with different options:",
            "snesdev bootstrap --force-reinstall",
            "snesdev bootstrap --offline --sdk-path /path/to/pvsneslib.tar.gz",
        ),
        ("Resume from failure (completed steps are skipped):", "snesdev bootstrap --resume"),
    ]))
    return lines


def _status_symbol(step: StepRecord) -> str:
    if step.status == StepStatus.COMPLETED:
        return "✅"
    if step.status == StepStatus.SKIPPED:
        return "⏭️"
    if step.status == StepStatus.FAILED:
        return "❌" if step.required else "⚠️"
    return "⬜"


def render(report: RunReport, use_colors: bool = False) -> str:
    """
    Format a run report.

    Args:
        report: Report produced by the orchestrator
        use_colors: Whether to add ANSI styling

    Returns:
        The report text (no trailing newline)
    """
    def style(text: str, **kwargs) -> str:
        return click.style(text, **kwargs) if use_colors else text

    if report.success:
        status = style("✅ SUCCESS", fg="green", bold=True)
    else:
        status = style("❌ FAILED", fg="red", bold=True)

    lines = [
        style("🚀 PVSnesLib Bootstrap Report", bold=True),
        "=" * 50,
        "",
        f"Status: {status}",
        f"Duration: {report.elapsed_seconds:.1f} seconds",
        f"Progress: {report.completed_count}/{report.total_count} steps completed",
        f"Project: {report.project_name}",
        f"Install Path: {report.install_prefix}",
    ]
    if report.project_path:
        lines.append(f"Project Path: {report.project_path}")
    if report.environment_file:
        lines.append(f"Environment File: {report.environment_file}")
    lines.append("")

    lines.append("📋 Bootstrap Steps:")
    for step in report.steps:
        details = []
        if step.note:
            details.append(step.note)
        if step.error_message:
            details.append(style(step.error_message, fg="red" if step.required else "yellow"))
        if step.status == StepStatus.FAILED and not step.required:
            details.append("optional, non-fatal")
        info = f" ({'; '.join(details)})" if details else ""
        lines.append(f"   {_status_symbol(step)} {step.description}{info}")
    lines.append("")

    if report.success:
        lines.append(style("🎉 PVSnesLib Bootstrap Complete!", fg="green", bold=True))
        lines.append("")
        lines.extend(report.next_steps)
    else:
        lines.append(style("🔧 Bootstrap Failed - Troubleshooting Guide", fg="red", bold=True))
        lines.append("")
        lines.extend(report.troubleshooting)

    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines)
