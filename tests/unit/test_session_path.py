"""Unit tests for dot-path addressing of session data."""

import pytest

from tickerdesk.state.session_path import DataPath, InvalidPathError, as_path, get_path, has_path, set_path


def test_parse_splits_segments():
    path = DataPath.parse("news.articles")
    assert path.segments == ("news", "articles")
    assert path.root == "news"
    assert str(path) == "news.articles"


@pytest.mark.parametrize("raw", ["", "   ", "news..articles", "news.", ".news", "news.1st", "news.a-b"])
def test_parse_rejects_malformed_paths(raw):
    with pytest.raises(InvalidPathError):
        DataPath.parse(raw)


def test_parse_rejects_unknown_namespace():
    with pytest.raises(InvalidPathError, match="Unknown namespace"):
        DataPath.parse("newz.articles")


def test_parse_accepts_custom_namespaces():
    assert DataPath.parse("widgets.grid", namespaces=["widgets"]).root == "widgets"


def test_invalid_path_error_is_value_error():
    with pytest.raises(ValueError):
        as_path("")


def test_as_path_passes_datapath_through():
    path = DataPath(("chat", "messages"))
    assert as_path(path) is path


def test_get_path_reads_nested_value():
    tree = {"chat": {"isChatOpen": False, "messages": []}}
    assert get_path(tree, "chat.messages") == []
    # Falsy values come back as stored, not as None
    assert get_path(tree, "chat.isChatOpen") is False


def test_get_path_missing_segment_returns_none():
    tree = {"chat": {"messages": []}}
    assert get_path(tree, "chat.draft") is None
    assert get_path(tree, "news.articles") is None


def test_get_path_through_scalar_returns_none():
    tree = {"charts": {"selectedTimeframe": "1Y"}}
    assert get_path(tree, "charts.selectedTimeframe.length") is None


def test_has_path_distinguishes_missing_from_none():
    tree = {"news": {"lastFetched": None}}
    assert has_path(tree, "news.lastFetched") is True
    assert has_path(tree, "news.articles") is False


def test_set_path_does_not_mutate_input():
    tree = {"chat": {"messages": ["hi"]}, "news": {"articles": []}}
    updated = set_path(tree, "chat.isChatOpen", True)

    assert tree == {"chat": {"messages": ["hi"]}, "news": {"articles": []}}
    assert updated["chat"] == {"messages": ["hi"], "isChatOpen": True}
    # Untouched branches are shared
    assert updated["news"] is tree["news"]


def test_set_path_creates_missing_intermediates():
    updated = set_path({}, "private.upload.fileName", "q3.pdf")
    assert updated == {"private": {"upload": {"fileName": "q3.pdf"}}}


def test_set_path_replaces_scalar_intermediate():
    updated = set_path({"equity": {"selectedTab": "overview"}}, "equity.selectedTab.sub", 1)
    assert updated == {"equity": {"selectedTab": {"sub": 1}}}
