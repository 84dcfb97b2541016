"""Typer CLI entrypoint and command definitions for studycue."""

import datetime as dt
import logging
from pathlib import Path

import typer

app = typer.Typer()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    """Cluster study intervals into sessions and schedule pre-session reminders."""
    from studycue.core.logging import install_sanitizing_filter

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    install_sanitizing_filter(handler_level=True)


def _read_batch_file(file: str) -> tuple[str, str | None]:
    """Return ``(json_data, envelope_recipient)`` for a batch or envelope file."""
    from studycue.ingest.payload import parse_envelope

    path = Path(file)
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)

    text = path.read_text("utf-8").strip()
    envelope = parse_envelope(text)
    if envelope is not None:
        return envelope.data, envelope.recipient
    return text, None


def _analyse_file(file: str, gap_minutes: int):
    from studycue.ingest.payload import decode_batch
    from studycue.pipeline import analyse_batch

    data, _ = _read_batch_file(file)
    decoded = decode_batch(data)
    if not decoded.ok:
        typer.echo(f"Invalid batch: {decoded.error}", err=True)
        raise typer.Exit(code=1)
    return analyse_batch(decoded.subjects, gap_minutes=gap_minutes)


def _parse_now(now: str | None) -> dt.datetime:
    from studycue.core.time import parse_timestamp, utc_now

    if now is None:
        return utc_now()
    try:
        return parse_timestamp(now)
    except ValueError:
        typer.echo(f"Invalid --now timestamp: {now}", err=True)
        raise typer.Exit(code=1) from None


# -- sessions -----------------------------------------------------------------


@app.command("sessions")
def sessions_cmd(
    file: str = typer.Option(..., "--file", help="Path to a batch JSON (or EMAIL:...|DATA:... envelope) file"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """List the sessions detected in a batch."""
    from studycue.core.config import AppConfig

    cfg = AppConfig(data_dir)
    analysis = _analyse_file(file, cfg.session_gap_minutes)

    typer.echo(f"{len(analysis.intervals)} interval(s) -> {len(analysis.sessions)} session(s)")
    for session in analysis.sessions:
        typer.echo(
            f"  {session.session_id}  {session.start_time.isoformat()}  "
            f"{session.subject_name}  ({session.interval_count} interval(s))"
        )


# -- stats --------------------------------------------------------------------


@app.command("stats")
def stats_cmd(
    file: str = typer.Option(..., "--file", help="Path to a batch JSON (or envelope) file"),
    as_json: bool = typer.Option(False, "--json", help="Print the statistics as JSON"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Print batch-wide and per-subject study statistics."""
    from studycue.core.config import AppConfig

    cfg = AppConfig(data_dir)
    analysis = _analyse_file(file, cfg.session_gap_minutes)

    if as_json:
        typer.echo(analysis.stats.model_dump_json(indent=2))
        return

    overall = analysis.stats.overall
    typer.echo(
        f"Overall: {overall.interval_count} pomodoro(s), {overall.total_study_minutes} min study, "
        f"{overall.total_pause_minutes} min pause, avg {overall.avg_minutes}, "
        f"max {overall.max_minutes}, min {overall.min_minutes}"
    )
    for name, stats in analysis.stats.by_subject.items():
        typer.echo(
            f"  {name}: {stats.interval_count} pomodoro(s), {stats.total_study_minutes} min study, "
            f"{stats.total_pause_minutes} min pause"
        )


# -- plan ---------------------------------------------------------------------


@app.command("plan")
def plan_cmd(
    file: str = typer.Option(..., "--file", help="Path to a batch JSON (or envelope) file"),
    now: str = typer.Option(None, "--now", help="Pretend current time (ISO-8601); defaults to the real UTC time"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Show when each session's reminder would fire, without scheduling anything."""
    from studycue.core.config import AppConfig
    from studycue.notify.scheduler import compute_trigger_time, is_too_soon

    cfg = AppConfig(data_dir)
    analysis = _analyse_file(file, cfg.session_gap_minutes)
    current = _parse_now(now)
    lead = dt.timedelta(minutes=cfg.lead_minutes)
    guard = dt.timedelta(minutes=cfg.guard_minutes)

    typer.echo(f"Now: {current.isoformat()}")
    for session in analysis.sessions:
        fires_at = compute_trigger_time(session.start_time, lead)
        verdict = "dropped" if is_too_soon(fires_at, current, guard) else "armed"
        typer.echo(
            f"  session {session.start_time.isoformat()} -> reminder {fires_at.isoformat()} [{verdict}]"
        )


# -- run ----------------------------------------------------------------------


@app.command("run")
def run_cmd(
    file: str = typer.Option(..., "--file", help="Path to a batch JSON (or envelope) file"),
    recipient: str = typer.Option(None, "--recipient", help="Reminder recipient (defaults to the envelope's, then the configured default)"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Stay running until every armed reminder has fired"),
    timeout: float = typer.Option(None, "--timeout", help="Give up waiting after this many seconds"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Schedule reminders for a batch and deliver them through the log."""
    import time
    from functools import partial

    from studycue.core.config import AppConfig
    from studycue.notify.compose import compose_reminder
    from studycue.notify.delivery import LoggingDeliverer
    from studycue.notify.scheduler import DelayScheduler
    from studycue.pipeline import process_batch

    cfg = AppConfig(data_dir)
    data, envelope_recipient = _read_batch_file(file)
    target = recipient or envelope_recipient or cfg.default_recipient

    deliverer = LoggingDeliverer()
    with DelayScheduler(
        deliverer,
        pool_size=cfg.pool_size,
        lead_minutes=cfg.lead_minutes,
        guard_minutes=cfg.guard_minutes,
    ) as scheduler:
        outcome = process_batch(
            data, target, scheduler,
            composer=partial(compose_reminder, lead_minutes=cfg.lead_minutes),
            gap_minutes=cfg.session_gap_minutes,
        )
        if not outcome.ok:
            typer.echo(f"Batch abandoned: {outcome.error}", err=True)
            raise typer.Exit(code=1)

        typer.echo(
            f"{len(outcome.sessions)} session(s): {len(outcome.tasks)} reminder(s) armed, "
            f"{outcome.dropped} dropped"
        )
        if outcome.failed:
            typer.echo(f"{outcome.failed} reminder(s) could not be scheduled", err=True)
        for task in outcome.tasks:
            typer.echo(f"  {task.task_id} fires at {task.fires_at.isoformat()}")

        if wait and outcome.tasks:
            deadline = None if timeout is None else time.monotonic() + timeout
            while scheduler.report().pending or scheduler.report().running:
                if deadline is not None and time.monotonic() >= deadline:
                    typer.echo("Timed out waiting for reminders", err=True)
                    break
                scheduler.wait_idle(timeout=1.0)
                time.sleep(0.1)

    report = scheduler.report()
    typer.echo(f"Fired {report.fired} reminder(s), {report.failed} failed delivery")


# -- message ------------------------------------------------------------------


@app.command("message")
def message_cmd(
    file: str = typer.Option(..., "--file", help="Path to a raw bus message"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Process one raw bus message: envelope batches are scheduled, plain text is forwarded."""
    from functools import partial

    from studycue.core.config import AppConfig
    from studycue.notify.compose import compose_reminder
    from studycue.notify.delivery import LoggingDeliverer
    from studycue.notify.scheduler import DelayScheduler
    from studycue.pipeline import process_message

    path = Path(file)
    if not path.exists():
        typer.echo(f"File not found: {path}", err=True)
        raise typer.Exit(code=1)

    cfg = AppConfig(data_dir)
    deliverer = LoggingDeliverer()
    with DelayScheduler(
        deliverer,
        pool_size=cfg.pool_size,
        lead_minutes=cfg.lead_minutes,
        guard_minutes=cfg.guard_minutes,
    ) as scheduler:
        outcome = process_message(
            path.read_text("utf-8").strip(), scheduler, deliverer,
            default_recipient=cfg.default_recipient,
            composer=partial(compose_reminder, lead_minutes=cfg.lead_minutes),
            gap_minutes=cfg.session_gap_minutes,
        )

    if outcome.kind == "plain":
        typer.echo(f"Forwarded plain message to {cfg.default_recipient}")
        return

    batch = outcome.batch
    if batch is None or not batch.ok:
        typer.echo(f"Batch abandoned: {batch.error if batch else 'unknown error'}", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"{len(batch.sessions)} session(s): {len(batch.tasks)} reminder(s) armed, {batch.dropped} dropped "
        "(unfired reminders are discarded on exit)"
    )
    if batch.failed:
        typer.echo(f"{batch.failed} reminder(s) could not be scheduled", err=True)


# -- config -------------------------------------------------------------------
config_app = typer.Typer()
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show_cmd(
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Print the effective configuration."""
    import json

    from studycue.core.config import AppConfig

    cfg = AppConfig(data_dir)
    typer.echo(json.dumps(cfg.as_dict(), indent=2))


@config_app.command("set")
def config_set_cmd(
    key: str = typer.Argument(..., help="Setting name, e.g. pool_size"),
    value: str = typer.Argument(..., help="New value"),
    data_dir: str = typer.Option("data", help="Directory holding config.json"),
) -> None:
    """Change one configuration value and persist it."""
    from studycue.core.config import AppConfig

    cfg = AppConfig(data_dir)
    try:
        cfg.update({key: value})
    except ValueError as exc:
        typer.echo(f"Invalid value: {exc}", err=True)
        raise typer.Exit(code=1) from None
    typer.echo(f"{key} = {cfg.as_dict()[key]}")


if __name__ == "__main__":
    app()
