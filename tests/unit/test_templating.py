"""Tests for placeholder substitution."""

from modelchain.contracts import GenericHttpStep, HostedModelStep, KeyValue, ResultField
from modelchain.templating import expand_input, resolve_step, resolve_template, resolve_value


def test_known_names_are_replaced_and_unknown_left_alone():
    table = {"tone": "dry", "step_a_output": "hello"}
    text = "Be {{tone}} about {{step_a_output}} and {{missing}}"
    assert resolve_template(text, table) == "Be dry about hello and {{missing}}"


def test_input_is_never_taken_from_the_table():
    table = {"input": "should not appear"}
    assert resolve_template("Summarize: {{input}}", table) == "Summarize: {{input}}"


def test_resolution_is_idempotent():
    table = {"a": "alpha", "b": "beta"}
    once = resolve_template("{{b}} / {{a}} / {{input}} / {{later}}", table)
    assert once == "beta / alpha / {{input}} / {{later}}"
    assert resolve_template(once, table) == once


def test_resolve_value_recurses_and_keeps_scalars():
    table = {"x": "1", "name": "fox"}
    value = {
        "prompt": "draw a {{name}}",
        "image_urls": ["{{x}}", "{{input}}"],
        "nested": {"k": "{{name}}"},
        "steps": 30,
        "enabled": True,
        "none": None,
    }
    assert resolve_value(value, table) == {
        "prompt": "draw a fox",
        "image_urls": ["1", "{{input}}"],
        "nested": {"k": "fox"},
        "steps": 30,
        "enabled": True,
        "none": None,
    }


def test_expand_input_binds_live_text():
    assert expand_input(["{{input}}!", 3], "hi") == ["hi!", 3]
    assert expand_input({"q": "about {{input}}"}, "cats") == {"q": "about cats"}


def test_resolve_step_covers_http_fields():
    step = GenericHttpStep(
        id="api",
        url="https://api.example.com/{{path}}",
        headers=[KeyValue(key="Authorization", value="Bearer {{token}}")],
        query_params=[KeyValue(key="q", value="{{input}}")],
        result_fields=[ResultField(key="{{field}}.url", type="image")],
    )
    table = {"path": "v1/run", "token": "abc", "field": "data"}

    resolved = resolve_step(step, table)

    assert resolved.url == "https://api.example.com/v1/run"
    assert resolved.headers[0].value == "Bearer abc"
    assert resolved.query_params[0].value == "{{input}}"
    assert resolved.result_fields[0].key == "data.url"
    assert step.url == "https://api.example.com/{{path}}"


def test_resolve_step_hosted_prompt_and_params():
    step = HostedModelStep(
        id="llm",
        model="gpt-4o",
        prompt="Use a {{tone}} voice: {{input}}",
        params={"temperature": 0.2, "stop": ["{{stop}}"]},
    )
    resolved = resolve_step(step, {"tone": "calm", "stop": "END"})
    assert resolved.prompt == "Use a calm voice: {{input}}"
    assert resolved.params == {"temperature": 0.2, "stop": ["END"]}
