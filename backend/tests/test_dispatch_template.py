"""
Tests for dispatch_template.py - template grammar and condition evaluation.
2025-01-20 is a Monday; dates below are picked relative to it.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dispatch_template import matches_condition, parse_template
from calendar_math import parse_calendar_day
from models import TemplateTask

WEDNESDAY = "2025-01-22"
THURSDAY = "2025-01-23"
SATURDAY = "2025-01-25"
SUNDAY = "2025-01-26"

EXAMPLE = """{{if:day=mon,wed,fri}}
- [ ] Standup prep
{{endif}}
- [ ] Water plants >{{date:YYYY-MM-DD}}
"""


class TestTemplateExample:
    """The canonical mixed block/placeholder template."""

    def test_wednesday(self):
        assert parse_template(EXAMPLE, WEDNESDAY) == [
            TemplateTask(title="Standup prep", due_date=None),
            TemplateTask(title="Water plants", due_date=WEDNESDAY),
        ]

    def test_sunday(self):
        assert parse_template(EXAMPLE, SUNDAY) == [
            TemplateTask(title="Water plants", due_date=SUNDAY),
        ]

    def test_parsing_is_repeatable(self):
        """Same input, same output."""
        assert parse_template(EXAMPLE, WEDNESDAY) == parse_template(EXAMPLE, WEDNESDAY)


class TestTaskLines:
    """Tests for checklist line recognition."""

    def test_dash_and_star_bullets(self):
        content = "- [ ] Dash\n* [ ] Star\n  - [ ] Indented"
        titles = [t.title for t in parse_template(content, WEDNESDAY)]
        assert titles == ["Dash", "Star", "Indented"]

    def test_non_task_lines_ignored(self):
        content = "# Morning\n\nSome prose\n- [x] Already done\n- plain bullet\n- [ ] Real task"
        titles = [t.title for t in parse_template(content, WEDNESDAY)]
        assert titles == ["Real task"]

    def test_empty_checkbox_produces_nothing(self):
        assert parse_template("- [ ]    \n- [ ]\t", WEDNESDAY) == []

    def test_crlf_line_endings(self):
        content = "- [ ] One\r\n- [ ] Two\r\n"
        titles = [t.title for t in parse_template(content, WEDNESDAY)]
        assert titles == ["One", "Two"]

    def test_date_placeholder_in_title(self):
        tasks = parse_template("- [ ] Journal {{date:DD/MM/YYYY}}", WEDNESDAY)
        assert tasks == [TemplateTask(title="Journal 22/01/2025", due_date=None)]

    def test_literal_due_suffix(self):
        tasks = parse_template("- [ ] File taxes >2025-04-15", WEDNESDAY)
        assert tasks == [TemplateTask(title="File taxes", due_date="2025-04-15")]

    def test_due_suffix_must_be_at_end(self):
        tasks = parse_template("- [ ] Compare >2025-04-15 and later", WEDNESDAY)
        assert tasks == [TemplateTask(title="Compare >2025-04-15 and later", due_date=None)]

    def test_impossible_due_date_stays_in_title(self):
        tasks = parse_template("- [ ] Pay >2024-02-30", WEDNESDAY)
        assert tasks == [TemplateTask(title="Pay >2024-02-30", due_date=None)]

    def test_non_ascii_due_date_stays_in_title(self):
        tasks = parse_template("- [ ] Pay >\uff12\uff10\uff12\uff15-\uff10\uff14-\uff11\uff15", WEDNESDAY)
        assert tasks == [TemplateTask(title="Pay >\uff12\uff10\uff12\uff15-\uff10\uff14-\uff11\uff15", due_date=None)]

    def test_invalid_target_date(self):
        assert parse_template(EXAMPLE, "2025-02-30") == []
        assert parse_template(EXAMPLE, "not a date") == []

    def test_empty_content(self):
        assert parse_template("", WEDNESDAY) == []


class TestBlockConditionals:
    """Tests for {{if:...}} / {{endif}} scopes."""

    def test_unmatched_endif_is_ignored(self):
        content = "{{endif}}\n- [ ] Still here\n{{endif}}\n- [ ] Also here"
        titles = [t.title for t in parse_template(content, SUNDAY)]
        assert titles == ["Still here", "Also here"]

    def test_unknown_day_token_is_false(self):
        content = "{{if:day=bogus}}\n- [ ] Never\n{{endif}}\n- [ ] Always"
        for target in (WEDNESDAY, THURSDAY, SATURDAY, SUNDAY):
            titles = [t.title for t in parse_template(content, target)]
            assert titles == ["Always"]

    def test_nested_scopes_require_all(self):
        content = """{{if:day=weekday}}
- [ ] Workday
{{if:dom=22}}
- [ ] Workday the 22nd
{{endif}}
- [ ] Workday again
{{endif}}
- [ ] Every day"""
        assert [t.title for t in parse_template(content, WEDNESDAY)] == [
            "Workday", "Workday the 22nd", "Workday again", "Every day",
        ]
        assert [t.title for t in parse_template(content, THURSDAY)] == [
            "Workday", "Workday again", "Every day",
        ]
        assert [t.title for t in parse_template(content, SATURDAY)] == ["Every day"]

    def test_unclosed_scope_stays_open(self):
        content = "{{if:day=sat}}\n- [ ] Saturday only\n- [ ] Also Saturday only"
        assert parse_template(content, WEDNESDAY) == []
        assert len(parse_template(content, SATURDAY)) == 2

    def test_directives_are_case_insensitive(self):
        content = "{{IF:DAY=WED}}\n- [ ] Upper\n{{ENDIF}}\n- [ ] After"
        assert [t.title for t in parse_template(content, WEDNESDAY)] == ["Upper", "After"]
        assert [t.title for t in parse_template(content, THURSDAY)] == ["After"]

    def test_directive_with_surrounding_whitespace(self):
        content = "   {{if:day=wed}}  \n- [ ] Indented scope\n  {{endif}}"
        assert [t.title for t in parse_template(content, WEDNESDAY)] == ["Indented scope"]
        assert parse_template(content, THURSDAY) == []


class TestInlineConditionals:
    """Tests for {{if:...}}- [ ] task on a single line."""

    def test_inline_true(self):
        tasks = parse_template("{{if:day=wed}}- [ ] Inline task", WEDNESDAY)
        assert tasks == [TemplateTask(title="Inline task", due_date=None)]

    def test_inline_false(self):
        assert parse_template("{{if:day=wed}}- [ ] Inline task", THURSDAY) == []

    def test_inline_does_not_open_scope(self):
        content = "{{if:day=sat}}- [ ] Saturday\n- [ ] Every day"
        assert [t.title for t in parse_template(content, WEDNESDAY)] == ["Every day"]

    def test_inline_respects_enclosing_scope(self):
        content = "{{if:day=sat}}\n{{if:day=wed}}- [ ] Nested inline\n{{endif}}"
        assert parse_template(content, WEDNESDAY) == []

    def test_inline_with_placeholder_and_due(self):
        tasks = parse_template("{{if:dom=22}}- [ ] Invoice >{{date:YYYY-MM-DD}}", WEDNESDAY)
        assert tasks == [TemplateTask(title="Invoice", due_date=WEDNESDAY)]

    def test_inline_non_task_remainder(self):
        assert parse_template("{{if:day=wed}} just a note", WEDNESDAY) == []


class TestConditions:
    """Tests for condition expressions."""

    @pytest.fixture
    def wednesday(self):
        return parse_calendar_day(WEDNESDAY)

    def test_day_names(self, wednesday):
        assert matches_condition("day=wed", wednesday)
        assert matches_condition("day=Wednesday", wednesday)
        assert matches_condition("day=mon, WED ,fri", wednesday)
        assert not matches_condition("day=thu", wednesday)

    def test_weekday_and_weekend(self, wednesday):
        assert matches_condition("day=weekday", wednesday)
        assert not matches_condition("day=weekend", wednesday)
        assert matches_condition("day=weekend", parse_calendar_day(SUNDAY))
        assert matches_condition("day=weekend", parse_calendar_day(SATURDAY))

    def test_day_of_month(self, wednesday):
        assert matches_condition("dom=1,22", wednesday)
        assert not matches_condition("dom=1,15", wednesday)
        assert not matches_condition("dom=x", wednesday)

    def test_month(self, wednesday):
        assert matches_condition("month=jan", wednesday)
        assert matches_condition("month=January,jul", wednesday)
        assert not matches_condition("month=feb", wednesday)

    def test_and_clauses(self, wednesday):
        assert matches_condition("day=wed&month=jan", wednesday)
        assert matches_condition("day=wed & dom=22 & month=jan", wednesday)
        assert not matches_condition("day=wed&month=feb", wednesday)

    def test_fail_closed(self, wednesday):
        """Unknown keys and malformed clauses make the whole expression false."""
        assert not matches_condition("week=3", wednesday)
        assert not matches_condition("day=wed&week=3", wednesday)
        assert not matches_condition("day", wednesday)
        assert not matches_condition("day=", wednesday)
        assert not matches_condition("=wed", wednesday)
        assert not matches_condition("", wednesday)
        assert not matches_condition("&", wednesday)
