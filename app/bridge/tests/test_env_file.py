"""Tests for the EnvFile parser."""

from __future__ import annotations

from pathlib import Path

from app.bridge.util.env_file import EnvFile


class TestEnvFile:
    def test_reads_keys(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_text("AI_API_URL=http://ai:40000\nAPI_PORT=40001\n")
        env = EnvFile(path)
        assert env.read("AI_API_URL") == "http://ai:40000"
        assert env.read("API_PORT") == "40001"
        assert env.read("ADMIN_SECRET") == ""

    def test_quoted_values(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_text("REACTION_ERROR=\"not ok\"\nSINGLE='quoted'\nODD=\"half\n")
        assert EnvFile(path).read_all() == {
            "REACTION_ERROR": "not ok",
            "SINGLE": "quoted",
            "ODD": '"half',
        }

    def test_skips_comments_and_junk(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_text("# settings\n\nno equals sign\nKEY = val \n")
        assert EnvFile(path).read_all() == {"KEY": "val"}

    def test_value_may_contain_equals(self, tmp_path: Path) -> None:
        path = tmp_path / ".env"
        path.write_text("TRANSPORT_FACTORY=pkg.mod:make?x=1\n")
        assert EnvFile(path).read("TRANSPORT_FACTORY") == "pkg.mod:make?x=1"

    def test_missing_file(self, tmp_path: Path) -> None:
        env = EnvFile(tmp_path / "absent" / ".env")
        assert env.read_all() == {}
        assert env.read("K") == ""
