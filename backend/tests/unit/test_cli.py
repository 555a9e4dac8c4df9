"""
Unit tests for the zekka-migrate and zekka-fix-build command lines.
"""

from pathlib import Path

import pytest

from cli import fix_build as fix_build_cli
from cli import migrate as migrate_cli
from services.build_fix import NEW_INSTALL, OLD_INSTALL


def _db_args(tmp_path: Path) -> list[str]:
    return ["--database-url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"]


class TestMigrateCli:
    def test_empty_directory_prints_banners_only(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()

        code = migrate_cli.main(["--dir", str(migrations), *_db_args(tmp_path)])

        out = capsys.readouterr().out
        assert code == 0
        assert out.splitlines() == [
            "Running database migrations...",
            migrate_cli.BANNER,
            migrate_cli.BANNER,
            "Migration complete!",
        ]

    def test_failed_migration_exits_nonzero(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_ok.sql").write_text("CREATE TABLE ok (id INTEGER);")
        (migrations / "002_bad.sql").write_text("SELEKT 1;")

        code = migrate_cli.main(["run", "--dir", str(migrations), *_db_args(tmp_path)])

        out = capsys.readouterr().out
        assert code == 1
        assert "Applying: 001_ok.sql" in out
        assert "  ✓ Applied successfully" in out
        assert "Applying: 002_bad.sql" in out
        assert "Migration finished with errors" in out

    def test_direct_mode_reports_existing_objects(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_table.sql").write_text("CREATE TABLE thing (id INTEGER);")
        args = ["direct", "--dir", str(migrations), *_db_args(tmp_path)]

        assert migrate_cli.main(args) == 0
        capsys.readouterr()
        assert migrate_cli.main(args) == 0

        assert "already exist" in capsys.readouterr().out

    def test_status_after_run(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_table.sql").write_text("CREATE TABLE thing (id INTEGER);")
        (migrations / "002_other.sql").write_text("CREATE TABLE other (id INTEGER);")
        base = ["--dir", str(migrations), *_db_args(tmp_path)]
        migrate_cli.main(["run", *base])
        (migrations / "003_later.sql").write_text("CREATE TABLE later (id INTEGER);")
        capsys.readouterr()

        code = migrate_cli.main(["status", *base])

        out = capsys.readouterr().out
        assert code == 0
        assert "Total: 3 (2 applied, 1 pending)" in out

    def test_create_needs_no_database(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"

        code = migrate_cli.main(["create", "add tags", "--dir", str(migrations)])

        assert code == 0
        assert (migrations / "001_add_tags.sql").is_file()
        assert (migrations / "001_add_tags_rollback.sql").is_file()

    def test_missing_directory_fails_before_header(self, tmp_path: Path, capsys):
        code = migrate_cli.main(["direct", "--dir", str(tmp_path / "absent"), *_db_args(tmp_path)])

        captured = capsys.readouterr()
        assert code == 1
        assert captured.out == ""
        assert "Migrations directory not found" in captured.err

    def test_non_utf8_migration_fails_cleanly(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_latin1.sql").write_bytes("-- café\nSELECT 1;".encode("latin-1"))

        code = migrate_cli.main(["direct", "--dir", str(migrations), *_db_args(tmp_path)])

        captured = capsys.readouterr()
        assert code == 1
        assert "001_latin1.sql is not valid UTF-8" in captured.err

    def test_create_requires_name(self, tmp_path: Path):
        with pytest.raises(SystemExit):
            migrate_cli.main(["create", "--dir", str(tmp_path)])

    def test_rollback_without_file_fails(self, tmp_path: Path, capsys):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_table.sql").write_text("CREATE TABLE thing (id INTEGER);")
        base = ["--dir", str(migrations), *_db_args(tmp_path)]
        migrate_cli.main(["run", *base])

        code = migrate_cli.main(["rollback", *base])

        assert code == 1
        assert "No rollback file" in capsys.readouterr().err


class TestFixBuildCli:
    def test_skip_lockfile_patches_dockerfiles(self, tmp_path: Path, capsys):
        (tmp_path / "Dockerfile").write_text(f"RUN {OLD_INSTALL}\n")

        code = fix_build_cli.main([str(tmp_path), "--skip-lockfile"])

        out = capsys.readouterr().out
        assert code == 0
        assert (tmp_path / "Dockerfile").read_text() == f"RUN {NEW_INSTALL}\n"
        assert "✅ Updated Dockerfile" in out
        assert "- Dockerfile.arbitrator not found, skipped" in out
        assert "Generating package-lock.json" not in out

    def test_lockfile_failure_exits_nonzero(self, tmp_path: Path, capsys, monkeypatch):
        def fail(cmd, **kwargs):
            raise FileNotFoundError("npm")

        monkeypatch.setattr("services.build_fix.subprocess.run", fail)
        (tmp_path / "Dockerfile").write_text(f"RUN {OLD_INSTALL}\n")

        code = fix_build_cli.main([str(tmp_path)])

        assert code == 1
        assert "npm is not installed" in capsys.readouterr().err
        assert (tmp_path / "Dockerfile").read_text() == f"RUN {OLD_INSTALL}\n"
