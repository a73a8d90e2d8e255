import dataclasses
import logging
import os
import stat
import threading
import time
from pathlib import Path

from zest.build import Builder, CycleResult, build_site
from zest.config import load_config
from zest.errors import BuildError, HeaderParseError, MalformedMacroError
from zest.renderers import RendererRegistry


def make_config(root: Path, **overrides):
    config = load_config(root, environ={"PATH": os.environ.get("PATH", "")}, tool="zest")
    return dataclasses.replace(config, **overrides) if overrides else config


def create_project(root: Path) -> Path:
    files = {
        ".zest/layout.html": "<title>{{title}}</title>{{content}}",
        ".zest/config.yaml": "interval: 0.5\n",
        "index.md": "title: Home\n---\n# Welcome\n",
        "about/team.jinja": "<p>{{ title }}</p>",
        "css/site.scss": "$c: #333;\nbody { color: $c; }\n",
        "img/logo.bin": "binary",
        "empty/.keep": "",
        ".hidden/secret.txt": "nope",
        ".env": "SECRET=1",
    }
    for name, text in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


class SpyRenderer:
    kind = "spy"

    def __init__(self):
        self.calls = []

    def can_render(self, path):
        return True

    def render(self, path, out=None):
        self.calls.append(path.as_posix())


def test_run_cycle_builds_the_whole_tree(tmp_path):
    project = create_project(tmp_path)
    config = make_config(project)

    result = Builder(config).run_cycle()

    pub = project / ".pub"
    assert result.modified_any
    assert result.errors == []
    assert sorted(result.built) == [
        "about/team.jinja",
        "css/site.scss",
        "img/logo.bin",
        "index.md",
    ]
    assert (pub / "index.html").read_text(encoding="utf-8") == (
        "<title>Home</title><h1>Welcome</h1>\n"
    )
    assert (pub / "about" / "team.html").read_text(encoding="utf-8") == "<p>about team</p>"
    assert "color: #333" in (pub / "css" / "site.css").read_text(encoding="utf-8")
    assert (pub / "img" / "logo.bin").read_text(encoding="utf-8") == "binary"
    assert (pub / "empty").is_dir()
    assert not (pub / ".hidden").exists()
    assert not (pub / ".env").exists()
    assert not (pub / ".zest").exists()


def test_files_older_than_watermark_are_not_dispatched(tmp_path):
    project = create_project(tmp_path)
    spy = SpyRenderer()
    builder = Builder(make_config(project), registry=RendererRegistry([spy]))
    builder.last_modified = time.time() + 3600

    result = builder.run_cycle()

    assert spy.calls == []
    assert result.modified_any is False
    assert result.built == []
    # Directories are still mirrored.
    assert (project / ".pub" / "about").is_dir()


def test_only_changed_files_are_rebuilt(tmp_path):
    project = create_project(tmp_path)
    spy = SpyRenderer()
    builder = Builder(make_config(project), registry=RendererRegistry([spy]))

    first = builder.run_cycle()
    assert len(spy.calls) == 4
    assert first.modified_any
    assert builder.last_modified > 0

    spy.calls.clear()
    second = builder.run_cycle()
    assert spy.calls == []
    assert not second.modified_any

    future = time.time() + 60
    os.utime(project / "index.md", (future, future))
    third = builder.run_cycle()
    assert spy.calls == ["index.md"]
    assert third.modified_any


def test_per_file_errors_do_not_abort_the_walk(tmp_path, caplog):
    project = create_project(tmp_path)
    (project / "a_bad_macro.md").write_text("oops {{title", encoding="utf-8")
    (project / "b_bad_header.md").write_text("title: [x\n---\nbody", encoding="utf-8")
    (project / "z_last.txt").write_text("still copied", encoding="utf-8")

    with caplog.at_level(logging.ERROR, logger="zest.build"):
        result = Builder(make_config(project)).run_cycle()

    failed = dict(result.errors)
    assert isinstance(failed["a_bad_macro.md"], MalformedMacroError)
    assert isinstance(failed["b_bad_header.md"], HeaderParseError)
    assert "a_bad_macro.md" in caplog.text
    assert (project / ".pub" / "z_last.txt").read_text(encoding="utf-8") == "still copied"
    assert (project / ".pub" / "index.html").exists()


def test_walk_errors_are_logged_and_skipped(tmp_path, caplog):
    project = create_project(tmp_path)
    (project / "dangling").symlink_to(project / "does-not-exist")

    with caplog.at_level(logging.ERROR, logger="zest.build"):
        result = Builder(make_config(project)).run_cycle()

    assert "walk:" in caplog.text
    assert "dangling" not in result.built
    assert (project / ".pub" / "index.html").exists()


def test_custom_publish_dir_is_never_walked(tmp_path):
    project = create_project(tmp_path)
    (project / ".zest" / "config.yaml").write_text("publish_dir: public\n", encoding="utf-8")
    config = load_config(project, environ={"PATH": os.environ.get("PATH", "")})
    assert config.publish_dir == project / "public"

    builder = Builder(config)
    builder.run_cycle()
    future = time.time() + 60
    os.utime(project / "index.md", (future, future))
    result = builder.run_cycle()

    assert result.built == ["index.md"]
    assert all(rel.parts[0] != "public" for rel, _ in builder.walk())
    assert not (project / "public" / "public").exists()


def test_run_single_mode_runs_one_cycle(tmp_path):
    builder = Builder(make_config(tmp_path), registry=RendererRegistry([SpyRenderer()]))
    cycles = []
    builder.run_cycle = lambda: cycles.append(1) or CycleResult()

    builder.run()

    assert cycles == [1]


def test_run_watch_mode_repeats_until_stopped(tmp_path):
    config = make_config(tmp_path, interval=0.0)
    builder = Builder(config, registry=RendererRegistry([SpyRenderer()]))
    stop = threading.Event()
    cycles = []

    def cycle():
        cycles.append(1)
        if len(cycles) == 3:
            stop.set()
        return CycleResult()

    builder.run_cycle = cycle
    builder.run(watch=True, stop=stop)

    assert len(cycles) == 3


def test_build_site_and_config_file(tmp_path):
    project = create_project(tmp_path)
    config = make_config(project)
    assert config.interval == 0.5

    result = build_site(config)

    assert "index.md" in result.built
    assert (project / ".pub" / "index.html").exists()


def test_build_file_to_sink(tmp_path):
    import io

    project = create_project(tmp_path)
    out = io.BytesIO()

    Builder(make_config(project)).build_file("index.md", out)

    assert out.getvalue() == b"<title>Home</title><h1>Welcome</h1>\n"
    assert not (project / ".pub").exists()


def write_plugin(root: Path, name: str, script: str) -> None:
    path = root / ".zest" / name
    path.write_text("#!/bin/sh\n" + script, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)


def test_misbehaving_plugins_only_drop_their_macro(tmp_path):
    project = create_project(tmp_path)
    write_plugin(project, "bad", "printf '\\377\\376'\n")
    (project / "a_bytes.md").write_text("Hi {{bad}} there\n", encoding="utf-8")
    (project / "b_env.md").write_text("a=b: 1\n---\nHi {{echo x}} there\n", encoding="utf-8")
    (project / "z_last.txt").write_text("still copied", encoding="utf-8")

    result = Builder(make_config(project)).run_cycle()

    assert result.errors == []
    pub = project / ".pub"
    assert "Hi \ufffd\ufffd there" in (pub / "a_bytes.html").read_text(encoding="utf-8")
    assert "<p>Hi  there</p>" in (pub / "b_env.html").read_text(encoding="utf-8")
    assert (pub / "z_last.txt").read_text(encoding="utf-8") == "still copied"


class ExplodingRenderer(SpyRenderer):
    def render(self, path, out=None):
        if path.name == "index.md":
            raise ValueError("boom")
        super().render(path, out)


def test_unexpected_errors_are_wrapped_and_the_walk_continues(tmp_path):
    project = create_project(tmp_path)
    spy = ExplodingRenderer()

    result = Builder(make_config(project), registry=RendererRegistry([spy])).run_cycle()

    failed = dict(result.errors)
    assert isinstance(failed["index.md"], BuildError)
    assert failed["index.md"].message == "ValueError: boom"
    assert isinstance(failed["index.md"].original_error, ValueError)
    assert "img/logo.bin" in spy.calls
    assert result.succeeded == len(result.built) - 1 == 3
