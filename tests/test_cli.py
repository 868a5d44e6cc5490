"""Tests for the ``blogforge`` command line.

Each test works inside a scratch project under ``tmp_path`` (the working
directory is switched there so output cleaning stays inside the project) and
drives ``blogforge.cli.main`` with an explicit argument list.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from blogforge.cli import build_site, init_project, main
from blogforge.config import load_site_config


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    init_project(tmp_path, today="2024-05-01")
    return tmp_path


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_init_scaffolds_project(project: Path) -> None:
    config = json.loads((project / "config.json").read_text(encoding="utf-8"))
    assert config["content"]["postsPerPage"] == 10
    post = (project / "content" / "posts" / "hello-world.md").read_text(encoding="utf-8")
    assert post.startswith("---\ntitle: Hello World\ndate: 2024-05-01\n")
    assert (project / "content" / "about.md").exists()


def test_init_keeps_existing_files(project: Path) -> None:
    write(project / "config.json", "{}")
    assert init_project(project) == []
    assert (project / "config.json").read_text(encoding="utf-8") == "{}"


def test_build_writes_site(project: Path) -> None:
    write(project / "static" / "css" / "style.css", "body {}")
    assert main(["build"]) == 0
    dist = project / "dist"
    home = BeautifulSoup((dist / "index.html").read_text(encoding="utf-8"), "html.parser")
    assert [a.get_text() for a in home.select(".post-card .post-title a")] == ["Hello World"]
    assert (dist / "posts" / "hello-world" / "index.html").exists()
    assert (dist / "tags" / "welcome" / "index.html").exists()
    assert (dist / "about" / "index.html").exists()
    assert (dist / "404.html").exists()
    assert (dist / "sitemap.xml").exists()
    assert (dist / "posts" / "index.json").exists()
    assert (dist / "css" / "style.css").read_text(encoding="utf-8") == "body {}"
    assert not (dist / "rss.xml").exists()


def test_build_cleans_stale_files(project: Path) -> None:
    write(project / "dist" / "stale.html", "old")
    assert main(["build"]) == 0
    assert not (project / "dist" / "stale.html").exists()
    write(project / "dist" / "stale.html", "old")
    assert main(["build", "--no-clean"]) == 0
    assert (project / "dist" / "stale.html").exists()


def test_build_flags_override_config(project: Path) -> None:
    write(project / "content" / "posts" / "second.md", "---\ntitle: Second\ndate: 2024-06-01\n---\nMore")
    assert main(["build", "--posts-per-page", "1", "--output", "public", "--workers", "2"]) == 0
    assert (project / "public" / "page" / "2" / "index.html").exists()


def test_validate_writes_nothing(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["validate"]) == 0
    assert not (project / "dist").exists()
    assert "INFO: Validated 1 posts, 1 tags" in capsys.readouterr().err


def test_warnings_are_labelled(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write(project / "content" / "posts" / "undated.md", "---\ntitle: Undated\n---\nBody")
    assert main(["--quiet", "validate"]) == 0
    err = capsys.readouterr().err
    assert "WARNING: undated.md: missing date, using file modification time" in err
    assert "INFO:" not in err


def test_slug_collision_fails_before_writing(
    project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    write(project / "content" / "posts" / "Hello_World.md", "---\ntitle: Again\ndate: 2024-01-01\n---\nX")
    assert main(["build"]) == 1
    assert not (project / "dist").exists()
    err = capsys.readouterr().err
    assert "ERROR: output path /posts/hello-world/ is produced by both" in err
    assert main(["validate"]) == 1


def test_dot_tag_stays_inside_output(project: Path) -> None:
    write(project / "content" / "posts" / "dots.md", '---\ntitle: Dots\ndate: 2024-02-01\ntags: [".."]\n---\nX')
    assert main(["validate"]) == 0
    assert main(["build"]) == 0
    assert (project / "dist" / "tags" / "%2E%2E" / "index.html").exists()
    assert not (project / "index.html").exists()


def test_render_failure_aborts_build(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write(project / "theme" / "pages" / "post.html", '{% extends "missing-layout" %}')
    config = json.loads((project / "config.json").read_text(encoding="utf-8"))
    config["paths"] = {"templates": "theme"}
    write(project / "config.json", json.dumps(config))

    assert main(["build"]) == 1
    assert not (project / "dist").exists()
    err = capsys.readouterr().err
    assert "ERROR: Failed to render /posts/hello-world/ (template pages/post)" in err
    assert "nothing written" in err


def test_invalid_config_exits_non_zero(project: Path, capsys: pytest.CaptureFixture[str]) -> None:
    write(project / "config.json", '{"content": {"postsPerPage": 0}}')
    assert main(["build"]) == 1
    assert "ERROR: config.json: content.postsPerPage must be at least 1" in capsys.readouterr().err


def test_missing_subcommand_is_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2


def test_build_site_returns_rendered_output(project: Path) -> None:
    config = load_site_config(project / "config.json")
    output = build_site(config, project / "out", project_root=project)
    assert output.ok
    assert (project / "out" / "index.html").read_text(encoding="utf-8") == output["/"].content


def test_build_script_delegates_to_cli() -> None:
    script = Path(__file__).resolve().parents[1] / "build.py"
    assert "from blogforge.cli import main" in script.read_text(encoding="utf-8")
