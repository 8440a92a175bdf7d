from datetime import timedelta

from trustcore.extensions import db
from trustcore.models import BlockedIP
from trustcore.utils import utcnow


def test_sweep_command(app):
    db.session.add(BlockedIP(ip="1.1.1.1", reason="x", expires_at=utcnow() - timedelta(minutes=1)))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["security", "sweep"])

    assert result.exit_code == 0
    assert "blocked_ips=1" in result.output
    assert BlockedIP.query.count() == 0


def test_scan_without_baseline_fails(app, tmp_path):
    app.config["INTEGRITY_BASE_DIR"] = str(tmp_path)
    result = app.test_cli_runner().invoke(args=["security", "scan"])
    assert result.exit_code != 0
    assert "No baseline" in result.output


def test_baseline_then_scan(app, tmp_path):
    (tmp_path / "trustcore").mkdir()
    (tmp_path / "trustcore" / "m.py").write_text("a")
    app.config["INTEGRITY_BASE_DIR"] = str(tmp_path)
    app.config["INTEGRITY_MONITORED_PATHS"] = ("trustcore",)
    runner = app.test_cli_runner()

    assert "1 files" in runner.invoke(args=["security", "baseline"]).output

    (tmp_path / "trustcore" / "n.py").write_text("b")
    result = runner.invoke(args=["security", "scan"])
    assert "new: trustcore/n.py" in result.output


def test_check_command(app):
    result = app.test_cli_runner().invoke(args=["security", "check", "--https"])
    assert result.exit_code == 0
    assert "risk_level=" in result.output
