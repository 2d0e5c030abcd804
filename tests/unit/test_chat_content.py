"""
Tests for chat-content floor selection, range validation and the regex
script chain.
"""

import pytest

from schemas import ChatContentItem, ChatMessage, RangeConfig, RegexConfig, RegexScript
from utils.chat_content import (
    ChatContentProcessor,
    calculate_floors,
    compile_script_regex,
    convert_replacement,
    format_floor_range,
    format_preview,
    run_script,
    validate_range,
)


class StaticScripts:
    """RegexScriptSource returning fixed tiers."""

    def __init__(self, **tiers):
        self.tiers = tiers

    def load_scripts(self):
        return self.tiers


def script(key: str, find: str, replace: str = "", **kwargs) -> RegexScript:
    return RegexScript(id=key, script_name=key, find_regex=find, replace_string=replace, **kwargs)


class TestCalculateFloors:
    @pytest.mark.parametrize(
        "config,expected",
        [
            (RangeConfig(type="fixed", start=2, end=4), [2, 3, 4]),
            (RangeConfig(type="fixed", start=8, end=50), [8, 9, 10]),
            (RangeConfig(type="latest", count=3), [8, 9, 10]),
            (RangeConfig(type="latest", count=50), list(range(1, 11))),
            (RangeConfig(type="relative", skip=2, count=3), [6, 7, 8]),
            (RangeConfig(type="relative", skip=10, count=3), []),
            (RangeConfig(type="interval", start=1, step=3), [1, 4, 7, 10]),
            (RangeConfig(type="percentage", percent=30, position="end"), [8, 9, 10]),
            (RangeConfig(type="percentage", percent=20, position="start"), [1, 2]),
            (RangeConfig(type="exclude", exclude_start=3, exclude_end=8), [1, 2, 9, 10]),
        ],
    )
    def test_range_types(self, config, expected):
        assert calculate_floors(config, 10) == expected

    def test_latest_defaults_to_twenty(self):
        assert calculate_floors(RangeConfig(type="latest"), 30) == list(range(11, 31))

    def test_empty_chat(self):
        assert calculate_floors(RangeConfig(type="latest", count=5), 0) == []

    def test_exclude_user(self):
        """User floors are dropped when asked."""
        messages = [ChatMessage(text=f"msg {i}", is_user=(i % 2 == 1)) for i in range(1, 7)]

        floors = calculate_floors(RangeConfig(type="latest", count=6), 6, exclude_user=True, messages=messages)

        assert floors == [2, 4, 6]


class TestValidateRange:
    @pytest.mark.parametrize(
        "config",
        [
            RangeConfig(type="fixed", start=1, end=5),
            RangeConfig(type="latest", count=3),
            RangeConfig(type="relative", skip=2, count=3),
            RangeConfig(type="interval", start=2, step=2),
            RangeConfig(type="percentage", percent=50),
            RangeConfig(type="exclude", exclude_start=2, exclude_end=3),
        ],
    )
    def test_valid(self, config):
        assert validate_range(config, 10).valid

    @pytest.mark.parametrize(
        "config",
        [
            RangeConfig(type="fixed", start=5, end=2),
            RangeConfig(type="fixed", start=1, end=20),
            RangeConfig(type="latest", count=0),
            RangeConfig(type="relative", skip=10),
            RangeConfig(type="interval", start=20),
            RangeConfig(type="interval", start=1, step=0),
            RangeConfig(type="percentage", percent=0),
            RangeConfig(type="percentage", percent=150),
            RangeConfig(type="exclude", exclude_start=1, exclude_end=10),
            RangeConfig(type="exclude", exclude_start=5, exclude_end=2),
        ],
    )
    def test_invalid(self, config):
        result = validate_range(config, 10)

        assert not result.valid
        assert result.error

    def test_empty_chat_invalid(self):
        assert not validate_range(RangeConfig(), 0).valid


class TestFormatting:
    def test_floor_range(self):
        assert format_floor_range([3, 5, 9]) == "3-9"
        assert format_floor_range([4]) == "4"

    def test_preview(self):
        assert format_preview([]) == "(no floors selected)"
        assert format_preview([1, 3]) == "Floors 1, 3"
        assert format_preview(list(range(1, 21))) == "Floors 1-20 (20 total)"
        assert format_preview(list(range(1, 40, 3))) == "13 floors within 1-37"


class TestRegexScripts:
    def test_slash_pattern_flags(self):
        pattern, replace_all = compile_script_regex("/abc/gi")

        assert replace_all
        assert pattern.search("xABCx")

    def test_slash_pattern_without_g_replaces_once(self):
        assert run_script(script("s", "/a/", "b"), "aaa") == "baa"

    def test_bare_pattern_replaces_all(self):
        assert run_script(script("s", "a", "b"), "aaa") == "bbb"

    def test_invalid_pattern_leaves_text(self):
        assert run_script(script("s", "/(unclosed/g", "x"), "text") == "text"

    @pytest.mark.parametrize(
        "replacement,expected",
        [
            ("[$1]", "[b]"),
            ("<$&>", "<ab>"),
            ("$$", "$"),
            (r"a\b", r"a\b"),
        ],
    )
    def test_replacement_syntax(self, replacement, expected):
        assert run_script(script("s", "/a(b)/", replacement), "ab") == expected

    def test_convert_replacement(self):
        assert convert_replacement("$1-$2") == r"\g<1>-\g<2>"

    def test_trim_strings(self):
        assert run_script(script("s", "/x/g", "", trim_strings=["<br>"]), "x<br>y") == "y"


class TestChatContentProcessor:
    @pytest.fixture
    def messages(self):
        return [
            ChatMessage(text="hello <think>secret</think>", is_user=True),
            ChatMessage(text="<think>hmm</think>hi", name="Mira"),
            ChatMessage(text="", name="Mira"),
            ChatMessage(text="bye", is_user=True),
        ]

    def test_host_tiers_in_order(self):
        """Custom scripts run first, then global, preset and scoped."""
        source = StaticScripts(
            **{
                "global": [script("g", "/1/g", "2")],
                "preset": [script("p", "/2/g", "3")],
                "scoped": [script("s", "/3/g", "4")],
            }
        )
        processor = ChatContentProcessor(source)
        config = RegexConfig(custom_scripts=[script("c", "/0/g", "1")])

        assert processor.apply_regex("0", config) == "4"
        assert [s.key for s in processor.ordered_scripts(config)] == ["c", "g", "p", "s"]

    def test_script_order_and_filters(self):
        source = StaticScripts(**{"global": [script("g1", "/a/g", "b"), script("g2", "/b/g", "c")]})
        processor = ChatContentProcessor(source)

        reordered = RegexConfig(script_order=["g2", "g1"])
        assert processor.apply_regex("a", reordered) == "b"

        disabled = RegexConfig(disabled_scripts=["g2"])
        assert processor.apply_regex("a", disabled) == "b"

        only = RegexConfig(enabled_scripts=["g2"])
        assert processor.apply_regex("a", only) == "a"

    def test_host_scripts_filtered(self):
        """Disabled host scripts and scripts not marked for prompts are skipped."""
        source = StaticScripts(
            **{
                "global": [
                    script("off", "/a/g", "x", disabled=True),
                    script("display", "/a/g", "y", only_format_prompt=False),
                ]
            }
        )

        assert ChatContentProcessor(source).apply_regex("a", RegexConfig()) == "a"

    def test_regex_disabled_by_config(self):
        config = RegexConfig(use_prompt_only=False, custom_scripts=[script("c", "/a/g", "b")])

        assert ChatContentProcessor().apply_regex("a", config) == "a"

    def test_fetch_content(self, messages):
        """Floors are rendered after the regex chain; floors left blank are dropped."""
        config = RegexConfig(custom_scripts=[script("think", r"/<think>[\s\S]*?<\/think>/g", "")])
        processor = ChatContentProcessor()

        text, used = processor.fetch_content([1, 2, 3, 4], messages, config)

        assert text == "[#1] User: hello \n\n[#2] Mira: hi\n\n[#4] User: bye"
        assert used == [1, 2, 4]

    def test_item_content(self, messages):
        """Covered floors include selected floors that rendered blank."""
        item = ChatContentItem(id="item_1", range_config=RangeConfig(type="fixed", start=3, end=4))

        text, used = ChatContentProcessor().get_item_content(item, messages)

        assert text == "[#4] User: bye"
        assert used == [3, 4]

    def test_item_content_all_blank(self, messages):
        config = RegexConfig(custom_scripts=[script("drop", "/^bye$/g", "")])
        item = ChatContentItem(id="item_1", range_config=RangeConfig(type="fixed", start=3, end=4), regex_config=config)

        assert ChatContentProcessor().get_item_content(item, messages) == ("", [])

    def test_item_content_empty_chat(self):
        item = ChatContentItem(id="item_1")

        assert ChatContentProcessor().get_item_content(item, []) == ("", [])
