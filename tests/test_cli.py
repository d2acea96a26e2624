from __future__ import annotations

import json
from pathlib import Path

from conftest import skip_unless_posix, write_fake_java
from hytale_runner.artifacts.resolver import cache_key
from hytale_runner.cli.main import main

URL = "https://example.test/server.jar"


def test_cache_path_prints_sha256_location_without_network(tmp_path: Path, capsys) -> None:
    code = main(["cache-path", "--project-root", str(tmp_path), "--jar-url", URL])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["cache_key"] == cache_key(URL)
    assert payload["path"] == str(tmp_path.resolve() / "build" / "hytale-cache" / f"{cache_key(URL)}.jar")
    assert payload["cached"] is False


def test_cache_path_rejects_local_source(tmp_path: Path, capsys) -> None:
    code = main(["cache-path", "--project-root", str(tmp_path), "--jar-url", "libs/a.jar"])

    assert code == 2
    err = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert err["issues"][0]["code"] == "CACHE_NOT_APPLICABLE"


def test_resolve_local_prints_path(tmp_path: Path, capsys) -> None:
    jar = tmp_path / "libs" / "HytaleServer.jar"
    jar.parent.mkdir()
    jar.write_bytes(b"jar")

    code = main(["resolve", "--project-root", str(tmp_path)])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["kind"] == "local"
    assert payload["path"] == str(jar.resolve())
    assert payload["cache_key"] is None


def test_run_with_missing_source_reports_issue_and_skips_spawn(tmp_path: Path, capsys) -> None:
    code = main(["run", "--project-root", str(tmp_path), "--jar-url", "does/not/exist.jar"])

    assert code == 3
    err_lines = capsys.readouterr().err.strip().splitlines()
    issue = json.loads(err_lines[-1])["issues"][0]
    assert issue["code"] == "SOURCE_NOT_FOUND"
    assert issue["details"]["path"].endswith("does/not/exist.jar")
    assert not (tmp_path / "run").exists()


def test_invalid_overlay_returns_config_error(tmp_path: Path, capsys) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("launch:\n  unknown_flag: 1\n", encoding="utf-8")

    code = main(["resolve", "--project-root", str(tmp_path), "--config", str(bad)])

    assert code == 2
    issue = json.loads(capsys.readouterr().err.strip().splitlines()[-1])["issues"][0]
    assert issue["code"] == "CONFIG_INVALID"


def test_unparseable_overlay_returns_config_error(tmp_path: Path, capsys) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("launch: [unclosed\n", encoding="utf-8")

    code = main(["resolve", "--project-root", str(tmp_path), "--config", str(bad)])

    assert code == 2
    issue = json.loads(capsys.readouterr().err.strip().splitlines()[-1])["issues"][0]
    assert issue["code"] == "CONFIG_INVALID"
    assert "bad.yaml" in issue["details"]["reason"]


def test_unparseable_project_overlay_returns_config_error(tmp_path: Path, capsys) -> None:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "runner.yaml").write_text("jar_url: \"unterminated\n", encoding="utf-8")

    assert main(["cache-path", "--project-root", str(tmp_path)]) == 2
    issue = json.loads(capsys.readouterr().err.strip().splitlines()[-1])["issues"][0]
    assert issue["code"] == "CONFIG_INVALID"


def test_run_prints_exit_code_and_returns_it(tmp_path: Path, capsys) -> None:
    skip_unless_posix()
    java = write_fake_java(tmp_path / "java", 'echo "args=$*"\nexit 5')
    jar = tmp_path / "libs" / "HytaleServer.jar"
    jar.parent.mkdir()
    jar.write_bytes(b"jar")
    overlay = tmp_path / "runner.yaml"
    overlay.write_text(f'launch:\n  java_executable: "{java}"\n', encoding="utf-8")

    code = main(["run", "--project-root", str(tmp_path), "--config", str(overlay), "--debug", "--", "-Xmx1G"])

    assert code == 5
    out = capsys.readouterr().out
    assert "args=-agentlib:jdwp=transport=dt_socket,server=y,suspend=n,address=5005 -Xmx1G -jar server.jar" in out
    assert out.strip().splitlines()[-1] == "Server exited with code 5"


def test_argparse_errors_map_to_exit_code_2(capsys) -> None:
    assert main(["no-such-command"]) == 2
    assert main(["--help"]) == 0
