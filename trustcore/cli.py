import click
from flask import Flask

from trustcore.security import file_integrity, ip_block, risk, sessions
from trustcore.security.errors import NotFoundError
from trustcore.security.rate_limit import rate_limiter


def register_cli(app: Flask) -> None:
    @app.cli.group("security")
    def security():
        """Tareas de seguridad para cron / operadores."""

    @security.command("sweep")
    def sweep():
        blocks = ip_block.sweep_expired()
        expired_sessions = sessions.sweep_expired()
        idle = rate_limiter.collect_garbage()
        click.echo(f"blocked_ips={blocks} sessions={expired_sessions} ledger_keys={idle}")

    @security.command("baseline")
    def baseline():
        files = file_integrity.generate_baseline()
        click.echo(f"baseline generated: {len(files)} files")

    @security.command("scan")
    def scan():
        try:
            result = file_integrity.scan_for_changes()
        except NotFoundError as e:
            raise click.ClickException(e.message)

        for label, paths in (("new", result.new), ("modified", result.modified), ("deleted", result.deleted)):
            for p in paths:
                click.echo(f"{label}: {p}")
        click.echo(f"new={len(result.new)} modified={len(result.modified)} deleted={len(result.deleted)}")

    @security.command("check")
    @click.option("--https/--no-https", default=False)
    def check(https):
        status = risk.run_security_checks(is_https=https)
        for c in status["checks"]:
            click.echo(f"[{c['status']}] {c['name']}: {c['message']}")
        click.echo(f"risk_level={status['risk_level']}")
