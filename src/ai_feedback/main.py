"""CLI entrypoint for ai-feedback."""

import sys
from pathlib import Path

import rich_click as click

from ai_feedback import __version__
from ai_feedback.jobs.controllers import (
    FeedbackCliController,
    InspectJobCommand,
    ListFeedbackCommand,
    ListJobsCommand,
    ProcessCommand,
    SubmitCommand,
    WorkerCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = FeedbackCliController()
JOB_STATUS_CHOICES = ["pending", "running", "succeeded", "failed", "dead"]


@click.group()
@click.version_option(version=__version__, prog_name="ai-feedback")
def ai_feedback() -> None:
    """AI feedback job pipeline CLI."""


@ai_feedback.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--file",
    "code_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read code from this file. Reads stdin when omitted.",
)
@click.option("--language", default="unknown", show_default=True, help="Code language.")
@click.option("--group-key", default=None, help="Rate-limit bucket, for example a class id.")
@click.option("--subject-id", default=None, help="Explicit subject id (uuid by default).")
@click.option(
    "--enqueue/--no-enqueue",
    default=True,
    show_default=True,
    help="Request feedback right away.",
)
def submit(  # noqa: PLR0913
    db_path: Path | None,
    code_file: Path | None,
    language: str,
    group_key: str | None,
    subject_id: str | None,
    enqueue: bool,
) -> None:
    """Store a code subject and enqueue a feedback job for it."""

    code_text = (
        code_file.read_text("utf-8")
        if code_file is not None
        else sys.stdin.read()
    )
    _emit_lines(
        CONTROLLER.submit(
            SubmitCommand(
                db_path=db_path,
                code_text=code_text,
                language=language,
                group_key=group_key,
                subject_id=subject_id,
                enqueue=enqueue,
            ),
        ),
    )


@ai_feedback.group()
def jobs() -> None:
    """Feedback job queue commands."""


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice(JOB_STATUS_CHOICES, case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=100),
    default=20,
    show_default=True,
    help="Max jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List feedback jobs, newest first."""

    _emit_lines(
        CONTROLLER.list_jobs(
            ListJobsCommand(
                db_path=db_path,
                status=status,
                limit=limit,
            ),
        ),
    )


@jobs.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Inspect one job."""

    _emit_lines(CONTROLLER.inspect_job(InspectJobCommand(db_path=db_path, job_id=job_id)))


@ai_feedback.command("process")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--batch-size",
    type=click.IntRange(min=1),
    default=None,
    help="Jobs to claim in this batch. Defaults to AI_FEEDBACK_BATCH_SIZE.",
)
def process(db_path: Path | None, batch_size: int | None) -> None:
    """Claim and process one batch of feedback jobs."""

    _emit_lines(CONTROLLER.process(ProcessCommand(db_path=db_path, batch_size=batch_size)))


@ai_feedback.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=False,
    show_default=True,
    help="Run a single tick or keep ticking until interrupted.",
)
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for ticks in loop mode.",
)
def worker(db_path: Path | None, once: bool, max_ticks: int | None) -> None:
    """Run the feedback worker in the foreground."""

    _emit_lines(
        CONTROLLER.run_worker(
            WorkerCommand(
                db_path=db_path,
                once=once,
                max_ticks=max_ticks,
            ),
        ),
    )


@ai_feedback.group()
def feedback() -> None:
    """Stored feedback commands."""


@feedback.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--subject-id", required=True, help="Subject id.")
def feedback_list(db_path: Path | None, subject_id: str) -> None:
    """Show feedback status and stored items for a subject."""

    _emit_lines(
        CONTROLLER.list_feedback(ListFeedbackCommand(db_path=db_path, subject_id=subject_id)),
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    ai_feedback()
