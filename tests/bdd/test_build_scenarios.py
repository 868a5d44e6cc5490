"""Behaviour tests for the end-to-end build scenarios.

The scenarios in ``tests/features/build.feature`` cover a single tagged post,
home page pagination, layout inheritance in the template engine and slug
collisions. Each scenario builds a throwaway project under ``tmp_path`` and
calls the same ``load_content``/``build_site`` functions the CLI uses.

Usage
-----
Run ``pytest tests/bdd/test_build_scenarios.py -v`` after installing the test
extra (``pip install -e .[test]``).
"""

from __future__ import annotations

import typing as typ
from pathlib import Path

import pytest
from bs4 import BeautifulSoup
from pytest_bdd import given, parsers, scenarios, then, when

from blogforge.cli import build_site, load_content
from blogforge.config import merge_with_defaults
from blogforge.errors import OutputCollisionError
from blogforge.pagination import paginate
from blogforge.template import DictLoader, TemplateEngine

FEATURE_FILE = Path(__file__).resolve().parents[1] / "features" / "build.feature"
scenarios(FEATURE_FILE)

ScenarioState = dict[str, typ.Any]


@pytest.fixture
def scenario_state(tmp_path: Path) -> ScenarioState:
    """Share the project directory and results between steps."""
    posts = tmp_path / "content" / "posts"
    posts.mkdir(parents=True)
    return {"root": tmp_path, "posts": posts, "content": {}, "templates": {}}


def _config(state: ScenarioState) -> typ.Any:
    data = {"content": state["content"], "paths": {"content": "content", "output": "dist"}}
    return merge_with_defaults(data, base_dir=state["root"])


@given(parsers.parse("a posts per page setting of {size:d}"))
def given_page_size(scenario_state: ScenarioState, size: int) -> None:
    """Override ``content.postsPerPage``."""
    scenario_state["content"]["postsPerPage"] = size


@given(
    parsers.parse(
        'a post "{name}" titled "{title}" dated "{date}" with tags "{tags}" and body "{body}"'
    )
)
def given_post(
    scenario_state: ScenarioState, name: str, title: str, date: str, tags: str, body: str
) -> None:
    """Write a Markdown post with a frontmatter block."""
    tag_list = ", ".join(f'"{tag.strip()}"' for tag in tags.split(","))
    text = (
        f'---\ntitle: "{title}"\ndate: "{date}"\ntags: [{tag_list}]\n---\n'
        + body.replace("\\n", "\n")
    )
    (scenario_state["posts"] / name).write_text(text, encoding="utf-8")


@given("a base template with an empty content block")
def given_base_template(scenario_state: ScenarioState) -> None:
    scenario_state["templates"]["base"] = "<html>{% block content %}{% endblock %}</html>"


@given(parsers.parse('a child template that fills the content block with "{text}"'))
def given_child_template(scenario_state: ScenarioState, text: str) -> None:
    scenario_state["templates"]["child"] = (
        '{% extends "base" %}{% block content %}' + text + "{% endblock %}"
    )


@when("the site is built")
def when_site_built(scenario_state: ScenarioState) -> None:
    """Run the full build and keep the loaded content for later checks."""
    config = _config(scenario_state)
    scenario_state["site"] = load_content(config)
    scenario_state["output"] = build_site(config, project_root=scenario_state["root"])
    scenario_state["config"] = config


@when("the site build is attempted")
def when_site_build_attempted(scenario_state: ScenarioState) -> None:
    config = _config(scenario_state)
    try:
        build_site(config, project_root=scenario_state["root"])
    except OutputCollisionError as exc:
        scenario_state["error"] = exc
    else:
        scenario_state["error"] = None


@when("the child template is rendered")
def when_child_rendered(scenario_state: ScenarioState) -> None:
    engine = TemplateEngine(DictLoader(scenario_state["templates"]))
    scenario_state["rendered"] = engine.render("child", {})


@then(parsers.parse('the page "{path}" contains the paragraph "{text}"'))
def then_page_has_paragraph(scenario_state: ScenarioState, path: str, text: str) -> None:
    soup = BeautifulSoup(scenario_state["output"][path].content, "html.parser")
    assert text in [p.get_text() for p in soup.select(".post-body p")]
    written = scenario_state["root"] / "dist" / path.strip("/") / "index.html"
    assert written.read_text(encoding="utf-8") == scenario_state["output"][path].content


@then(parsers.parse('the tag "{tag}" lists only "{slug}"'))
def then_tag_lists(scenario_state: ScenarioState, tag: str, slug: str) -> None:
    assert [doc.slug for doc in scenario_state["site"].tag_index[tag]] == [slug]
    assert f"/tags/{tag}/" in scenario_state["output"]


@then(parsers.parse("the home page lists exactly {count:d} post"))
def then_home_count(scenario_state: ScenarioState, count: int) -> None:
    soup = BeautifulSoup(scenario_state["output"]["/"].content, "html.parser")
    assert len(soup.select(".post-card")) == count


@then(parsers.parse("the home collection has {count:d} pages"))
def then_home_pages(scenario_state: ScenarioState, count: int) -> None:
    config = scenario_state["config"]
    pages = paginate(scenario_state["site"].documents, config.content.posts_per_page)
    scenario_state["pages"] = pages
    assert len(pages) == count
    assert "/page/3/" in scenario_state["output"]
    assert f"/page/{count + 1}/" not in scenario_state["output"]


@then(
    parsers.parse(
        'home page {number:d} holds "{title}" with previous {previous} and next {following}'
    )
)
def then_home_page_holds(
    scenario_state: ScenarioState, number: int, title: str, previous: str, following: str
) -> None:
    page = scenario_state["pages"][number - 1]
    assert [doc.title for doc in page.items] == [title]
    assert page.has_previous is (previous == "true")
    assert page.has_next is (following == "true")
    path = "/" if number == 1 else f"/page/{number}/"
    soup = BeautifulSoup(scenario_state["output"][path].content, "html.parser")
    assert [a.get_text() for a in soup.select(".post-card .post-title a")] == [title]


@then(parsers.parse('the rendered output is "{expected}"'))
def then_rendered_output(scenario_state: ScenarioState, expected: str) -> None:
    assert scenario_state["rendered"] == expected


@then(parsers.parse('the build fails with an output collision on "{path}"'))
def then_collision(scenario_state: ScenarioState, path: str) -> None:
    error = scenario_state["error"]
    assert isinstance(error, OutputCollisionError)
    assert error.path == path
    assert {error.first, error.second} == {"Hello-World.md", "hello_world.md"}


@then("no output directory was written")
def then_nothing_written(scenario_state: ScenarioState) -> None:
    assert not (scenario_state["root"] / "dist").exists()
