from __future__ import annotations

import json
import os

import pytest

from deepresearch.services.prompt_store import PromptStore, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "decomposer.decompose",
        query="solid-state batteries",
        context_line="CONTEXT: automotive",
        sub_query_count=5,
    )
    assert '"solid-state batteries"' in prompt
    assert "CONTEXT: automotive" in prompt
    assert "exactly 5 sub-queries" in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="max_words"):
        render_prompt("synthesizer.summary", key_points="- a")


def test_prompt_store_reloads_when_file_changes(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"greeting": "hello $name"}), encoding="utf-8")
    store = PromptStore(path)
    assert store.render("greeting", name="ada") == "hello ada"

    path.write_text(json.dumps({"greeting": ["hi $name", "bye"]}), encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

    assert store.render("greeting", name="ada") == "hi ada\nbye"


def test_prompt_store_rejects_non_string_nodes(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"section": {"nested": 3}}), encoding="utf-8")
    with pytest.raises(TypeError):
        PromptStore(path).render("section.nested")
