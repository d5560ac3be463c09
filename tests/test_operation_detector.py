from pathlib import Path

import pytest

from mcpgov.classify.detector import classify, parse_tool_name, resolve_service
from mcpgov.classify.keywords import DEFAULT_KEYWORDS, OPERATION_ORDER, Operation, load_keywords
from mcpgov.errors import ConfigError


@pytest.mark.parametrize(
    "tool, expected",
    [
        ("sudo_shell", Operation.ADMIN),
        ("github_delete_repo", Operation.DELETE),
        ("purge_cache", Operation.DELETE),
        ("execute_query", Operation.EXECUTE),
        ("invoke_lambda", Operation.EXECUTE),
        ("create_issue", Operation.WRITE),
        ("write_file", Operation.WRITE),
        ("list_directory", Operation.READ),
        ("github_list_repos", Operation.READ),
        ("search_files", Operation.READ),
    ],
)
def test_single_category_keywords(tool, expected):
    assert classify(tool) is expected


@pytest.mark.parametrize(
    "tool, expected",
    [
        ("archive_and_delete", Operation.DELETE),
        ("delete_user_role", Operation.ADMIN),
        ("run_cleanup", Operation.DELETE),
        ("send_update", Operation.EXECUTE),
        ("update_then_get", Operation.WRITE),
        ("get_config", Operation.ADMIN),
    ],
)
def test_higher_priority_category_wins(tool, expected):
    assert classify(tool) is expected


def test_unmatched_identifier_defaults_to_write():
    assert classify("xyzzy") is Operation.WRITE
    assert classify("") is Operation.WRITE
    assert classify(None) is Operation.WRITE


def test_classification_is_case_insensitive():
    assert classify("GitHub_DELETE_Repo") is Operation.DELETE
    assert classify("ListDirectory") is Operation.READ


def test_resolve_service_prefers_explicit_name():
    assert resolve_service("filesystem", "list_directory") == "filesystem"
    assert resolve_service("filesystem", "github_delete_repo") == "filesystem"


def test_resolve_service_prefix_fallback():
    assert resolve_service("", "github_delete_repo") == "github"
    assert resolve_service(None, "slack_post_message") == "slack"


def test_resolve_service_unknown_when_prefix_is_a_verb():
    assert resolve_service("", "list_directory") == "unknown"
    assert resolve_service("", "get_weather") == "unknown"
    assert resolve_service("", "Delete_repo") == "unknown"


def test_resolve_service_unknown_without_separator():
    assert resolve_service("", "listdirectory") == "unknown"
    assert resolve_service("", "_leading") == "unknown"
    assert resolve_service("", None) == "unknown"


def test_parse_tool_name_pairs_service_and_operation():
    assert parse_tool_name("github_delete_repo") == ("github", Operation.DELETE)


def test_default_lexicon_is_large_and_lowercase():
    assert DEFAULT_KEYWORDS.total() >= 150
    for op in OPERATION_ORDER:
        keywords = DEFAULT_KEYWORDS.keywords_for(op)
        assert keywords
        assert all(k == k.lower() for k in keywords)


def test_injected_table_changes_classification(tmp_path: Path):
    override = tmp_path / "keywords.yaml"
    override.write_text(
        """
version: test-1
keywords:
  read: [frobnicate]
""".strip(),
        encoding="utf-8",
    )
    table = load_keywords(override)
    assert table.version == "test-1"
    assert classify("frobnicate_widgets", table) is Operation.READ
    assert classify("frobnicate_widgets") is Operation.WRITE
    assert table.keywords_for(Operation.DELETE) == DEFAULT_KEYWORDS.keywords_for(Operation.DELETE)


def test_keyword_file_rejects_unknown_category(tmp_path: Path):
    override = tmp_path / "keywords.json"
    override.write_text('{"keywords": {"danger": ["boom"]}}', encoding="utf-8")
    with pytest.raises(ConfigError):
        load_keywords(override)


def test_tab_indented_json_keyword_file(tmp_path: Path):
    override = tmp_path / "keywords.json"
    override.write_text('{\n\t"version": "tabs",\n\t"keywords": {\n\t\t"read": ["frobnicate"]\n\t}\n}\n', encoding="utf-8")
    table = load_keywords(override)
    assert table.version == "tabs"
    assert classify("frobnicate_widgets", table) is Operation.READ
