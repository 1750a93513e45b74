from kbforge.indexer.tokenizer import (
    FenceTracker,
    Zone,
    body_sentences,
    match_heading,
    normalize_phrase,
    strip_markdown,
    tokenize,
    tokenize_with_zones,
)


def test_tokenize_strips_markdown_and_lowercases():
    """Markup is removed and words are lower-cased."""
    text = "# Hello *World* `code` [link](http://x.com/abc)"
    assert tokenize(text) == ["hello", "world", "code", "link"]


def test_tokenize_drops_single_characters():
    assert tokenize("a b cd E") == ["cd"]


def test_tokenize_splits_on_punctuation():
    assert tokenize("useEffect() vs. use-memo, snake_case") == ["useeffect", "vs", "use", "memo", "snake", "case"]


def test_tokenize_keeps_unicode_letters():
    assert tokenize("Café über") == ["café", "über"]


def test_strip_markdown_keeps_image_alt_text():
    assert "diagram" in strip_markdown("![diagram](img/a.png)")


def test_normalize_phrase_keeps_short_words():
    assert normalize_phrase("Guide **B**") == "guide b"


class TestMatchHeading:
    def test_levels(self):
        assert match_heading("# Title") == (1, "Title")
        assert match_heading("###### Deep") == (6, "Deep")

    def test_closing_hashes_removed(self):
        assert match_heading("## Section ##") == (2, "Section")

    def test_not_a_heading(self):
        assert match_heading("#NoSpace") is None
        assert match_heading("####### seven") is None
        assert match_heading("    # indented code") is None

    def test_empty_heading(self):
        assert match_heading("#") == (1, "")


class TestFenceTracker:
    def test_longer_fence_contains_shorter(self):
        fence = FenceTracker()
        lines = ["````", "```", "# inside", "```", "````", "# after"]
        flags = [fence.feed(line, i) for i, line in enumerate(lines)]
        assert flags == [True, True, True, True, True, False]
        assert not fence.inside

    def test_tilde_fence_not_closed_by_backticks(self):
        fence = FenceTracker()
        fence.feed("~~~", 1)
        fence.feed("```", 2)
        assert fence.inside
        assert fence.opened_at == 1

    def test_inline_backticks_do_not_open(self):
        fence = FenceTracker()
        assert fence.feed("```js` not a fence") is False
        assert not fence.inside


def test_tokenize_with_zones():
    content = "# Title Word\n\n## Section\n\nbody word\n"
    tokens = tokenize_with_zones(content, title_line=0)
    assert tokens == [
        ("title", Zone.TITLE),
        ("word", Zone.TITLE),
        ("section", Zone.HEADING),
        ("body", Zone.BODY),
        ("word", Zone.BODY),
    ]


def test_tokenize_with_zones_code_is_body():
    content = "```\n# comment in code\n```\n"
    tokens = tokenize_with_zones(content)
    assert tokens == [("comment", Zone.BODY), ("in", Zone.BODY), ("code", Zone.BODY)]


class TestBodySentences:
    def test_splits_sentences_and_skips_headings(self):
        content = "# Title\n\nFirst sentence here. Second mentions hooks.\n\n## Next\n\nThird one!\n"
        assert body_sentences(content) == ["First sentence here.", "Second mentions hooks.", "Third one!"]

    def test_list_items_are_separate(self):
        content = "- one item\n- two item\n"
        assert body_sentences(content) == ["one item", "two item"]

    def test_code_is_skipped(self):
        content = "Intro.\n\n```\nx = 1. y = 2.\n```\n"
        assert body_sentences(content) == ["Intro."]

    def test_limit(self):
        content = "One. Two. Three. Four."
        assert body_sentences(content, limit=2) == ["One.", "Two."]
