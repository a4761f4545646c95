"""
End-to-end tests for the pull / push commands.
"""

import json

import pytest

from repocloak.cli import main
from repocloak.config import MAPPING_FILENAME
from repocloak.mapping import load_mapping

APP_SOURCE = "Cuviva app\nCUVIVA_KEY=1\nuse cuviva;\n"


@pytest.fixture
def project(tmp_path):
    source = tmp_path / "work"
    (source / "Cuviva").mkdir(parents=True)
    (source / "Cuviva" / "app.txt").write_text(APP_SOURCE, encoding="utf-8")
    (source / "notes.md").write_text("Notes for Cuviva\n", encoding="utf-8")
    (source / "extra.txt").write_text("extra cuviva\n", encoding="utf-8")
    (source / "image.png").write_bytes(b"\x00Cuviva\x00")
    return source


def pull(source, dest, *extra):
    return main(["-y", "-q", "pull", "-s", str(source), "-d", str(dest), *extra])


class TestPull:
    def test_extracts_and_anonymizes(self, project, tmp_path):
        dest = tmp_path / "share"

        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0

        app = dest / "Abccompany" / "app.txt"
        assert app.read_text(encoding="utf-8") == "Abccompany app\nABCCOMPANY_KEY=1\nuse abccompany;\n"
        assert (dest / "image.png").read_bytes() == b"\x00Cuviva\x00"
        assert (dest / MAPPING_FILENAME).exists()

        record = load_mapping(dest)
        assert record.encrypted
        assert record.stats.total_files == 4
        assert "Abccompany/app.txt" in [f.cloaked for f in record.files]
        assert "Cuviva" not in (dest / MAPPING_FILENAME).read_text(encoding="utf-8")

    def test_selected_files_only(self, project, tmp_path):
        dest = tmp_path / "share"

        assert pull(project, dest, "-r", "Cuviva=ABCCompany", "notes.md") == 0

        assert (dest / "notes.md").read_text(encoding="utf-8") == "Notes for Abccompany\n"
        assert not (dest / "Abccompany").exists()
        assert load_mapping(dest).stats.total_files == 1

    def test_no_encrypt(self, project, tmp_path):
        dest = tmp_path / "share"

        assert pull(project, dest, "--no-encrypt", "-r", "Cuviva=ABCCompany") == 0

        record = load_mapping(dest)
        assert not record.encrypted
        assert record.source.path == str(project.resolve())

    def test_incremental_pull(self, project, tmp_path):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany", "notes.md") == 0

        assert pull(project, dest, "notes.md", "extra.txt") == 0

        record = load_mapping(dest)
        assert record.stats.total_files == 2
        assert record.pull_history[-1].files_added == 1
        # existing replacements are reused
        assert (dest / "extra.txt").read_text(encoding="utf-8") == "extra abccompany\n"

    def test_incremental_pull_adds_replacements(self, project, tmp_path):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany", "notes.md") == 0

        assert pull(project, dest, "-r", "extra=more", "extra.txt") == 0

        record = load_mapping(dest)
        assert record.stats.replacements_count == 2
        assert (dest / "more.txt").read_text(encoding="utf-8") == "more abccompany\n"

    def test_dry_run_writes_nothing(self, project, tmp_path):
        dest = tmp_path / "share"
        assert main(["-n", "-q", "pull", "-s", str(project), "-d", str(dest)]) == 0
        assert not dest.exists()

    def test_missing_destination(self, project, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert main(["-y", "-q", "pull", "-s", str(project)]) == 1

    def test_bad_replacement(self, project, tmp_path):
        assert pull(project, tmp_path / "share", "-r", "novalue") == 1

    @pytest.mark.parametrize("value", ["Cuviva=", "Cuviva=  "])
    def test_empty_replacement_is_rejected(self, project, tmp_path, value):
        dest = tmp_path / "share"
        assert pull(project, dest, "--no-encrypt", "-r", value) == 1
        assert not dest.exists()


class TestPush:
    def test_restores_content_and_names(self, project, tmp_path):
        dest = tmp_path / "share"
        restored = tmp_path / "restored"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0

        assert main(["-y", "-q", "push", "-s", str(dest), "-d", str(restored)]) == 0

        assert (restored / "Cuviva" / "app.txt").read_text(encoding="utf-8") == APP_SOURCE
        assert (restored / "notes.md").read_text(encoding="utf-8") == "Notes for Cuviva\n"
        assert (restored / "image.png").read_bytes() == b"\x00Cuviva\x00"
        assert not (restored / MAPPING_FILENAME).exists()

    def test_restores_to_original_location(self, project, tmp_path):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0
        (project / "Cuviva" / "app.txt").write_text("changed", encoding="utf-8")

        assert main(["-y", "-q", "push", "-s", str(dest)]) == 0

        assert (project / "Cuviva" / "app.txt").read_text(encoding="utf-8") == APP_SOURCE

    def test_manual_recovery_without_secret(self, project, tmp_path, monkeypatch):
        dest = tmp_path / "share"
        restored = tmp_path / "restored"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0

        # a different machine: no secret
        monkeypatch.setenv("REPOCLOAK_HOME", str(tmp_path / "elsewhere"))

        code = main([
            "-y", "-q", "push", "-s", str(dest), "-d", str(restored), "-k", "ABCCompany=Cuviva",
        ])

        assert code == 0
        assert (restored / "Cuviva" / "app.txt").read_text(encoding="utf-8") == APP_SOURCE

    def test_manual_recovery_prompts(self, project, tmp_path, monkeypatch):
        dest = tmp_path / "share"
        restored = tmp_path / "restored"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0
        monkeypatch.setenv("REPOCLOAK_HOME", str(tmp_path / "elsewhere"))

        answers = iter(["Cuviva", "y"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

        code = main(["-q", "push", "-s", str(dest), "-d", str(restored)])

        assert code == 0
        assert (restored / "notes.md").read_text(encoding="utf-8") == "Notes for Cuviva\n"

    def test_not_a_cloaked_directory(self, tmp_path):
        assert main(["-y", "-q", "push", "-s", str(tmp_path), "-d", str(tmp_path / "out")]) == 1


class TestStatus:
    def test_json(self, project, tmp_path, capsys):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0
        capsys.readouterr()

        assert main(["status", str(dest), "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["totalFiles"] == 4
        assert data["encrypted"] is True
        assert "files" not in data

    def test_replacements_listing(self, project, tmp_path, capsys):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0
        capsys.readouterr()

        assert main(["replacements", str(dest)]) == 0
        assert '"Cuviva" → "ABCCompany"' in capsys.readouterr().out

    def test_replacements_with_wrong_secret(self, project, tmp_path, capsys, monkeypatch):
        dest = tmp_path / "share"
        assert pull(project, dest, "-r", "Cuviva=ABCCompany") == 0
        other = tmp_path / "elsewhere"
        other.mkdir()
        (other / "secret.key").write_text("00" * 32, encoding="utf-8")
        monkeypatch.setenv("REPOCLOAK_HOME", str(other))
        capsys.readouterr()

        assert main(["replacements", str(dest)]) == 0
        assert "[encrypted]" in capsys.readouterr().out


def test_help(capsys):
    assert main([]) == 0
    assert "pull" in capsys.readouterr().out
