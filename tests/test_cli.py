from __future__ import annotations

from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from ai_feedback.jobs.repository import FeedbackRepository
from ai_feedback.main import ai_feedback

pytestmark = [
    allure.epic("Feedback Jobs"),
    allure.feature("CLI Ops"),
]


def _invoke(runner: CliRunner, args: list[str], **kwargs: object):
    result = runner.invoke(ai_feedback, args, **kwargs)
    assert result.exit_code == 0, result.output
    return result


def _job_id(db_path: Path, subject_id: str) -> str:
    repository = FeedbackRepository(db_path)
    try:
        job = repository.get_job_by_subject(subject_id)
    finally:
        repository.close()
    assert job is not None
    return job.job_id


def test_submit_process_and_inspect_flow(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    code_file = tmp_path / "solution.py"
    code_file.write_text("def add(a, b):\n    return a + b\n", "utf-8")
    runner = CliRunner()

    submitted = _invoke(
        runner,
        [
            "submit",
            "--db-path",
            str(db_path),
            "--file",
            str(code_file),
            "--language",
            "python",
            "--group-key",
            "class-1",
            "--subject-id",
            "sub-1",
        ],
    )
    assert "Subject stored: subject_id=sub-1 group=class-1 language=python" in submitted.output
    assert "status=PENDING" in submitted.output

    listed = _invoke(runner, ["jobs", "list", "--db-path", str(db_path)])
    assert "Jobs: 1" in listed.output
    assert "subject=sub-1 status=PENDING attempts=0/3" in listed.output

    processed = _invoke(runner, ["process", "--db-path", str(db_path)])
    assert "processed=1 succeeded=1 failed=0 dead=0" in processed.output

    inspected = _invoke(
        runner,
        ["jobs", "inspect", "--db-path", str(db_path), "--job-id", _job_id(db_path, "sub-1")],
    )
    assert "Status: SUCCEEDED" in inspected.output
    assert "Feedback items: 1" in inspected.output

    feedback = _invoke(runner, ["feedback", "list", "--db-path", str(db_path), "--subject-id", "sub-1"])
    assert "Subject: sub-1 feedback=SUCCEEDED" in feedback.output
    assert "Items: 1" in feedback.output
    assert "tags=other" in feedback.output

    succeeded = _invoke(
        runner,
        ["jobs", "list", "--db-path", str(db_path), "--status", "succeeded"],
    )
    assert "Jobs: 1" in succeeded.output


def test_submit_reads_stdin_without_enqueue(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    submitted = _invoke(
        runner,
        ["submit", "--db-path", str(db_path), "--subject-id", "sub-2", "--no-enqueue"],
        input="",
    )
    assert "Subject stored: subject_id=sub-2" in submitted.output
    assert "Job enqueued" not in submitted.output

    feedback = _invoke(runner, ["feedback", "list", "--db-path", str(db_path), "--subject-id", "sub-2"])
    assert "feedback=NOT_REQUESTED" in feedback.output
    assert "Items: 0" in feedback.output


def test_worker_once_and_bounded_loop(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()
    _invoke(
        runner,
        ["submit", "--db-path", str(db_path), "--subject-id", "sub-3"],
        input="",
    )

    once = _invoke(runner, ["worker", "--db-path", str(db_path), "--once"])
    assert "Worker summary: processed=1 succeeded=1" in once.output

    loop = _invoke(runner, ["worker", "--db-path", str(db_path), "--loop", "--max-ticks", "1"])
    assert "Worker summary: processed=0" in loop.output


def test_inspect_unknown_job(tmp_path: Path) -> None:
    result = _invoke(
        CliRunner(),
        ["jobs", "inspect", "--db-path", str(tmp_path / "cli.db"), "--job-id", "nope"],
    )

    assert "Job not found: nope" in result.output


def test_invalid_configuration_fails_command(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("AI_FEEDBACK_PROVIDER", "openrouter")
    monkeypatch.setenv("AI_FEEDBACK_REAL_ENABLED", "true")

    result = CliRunner().invoke(ai_feedback, ["process", "--db-path", str(tmp_path / "cli.db")])

    assert result.exit_code != 0
    assert isinstance(result.exception, ValueError)
    assert "OPENROUTER_API_KEY" in str(result.exception)
