"""Tests for the command-line output formatting."""

from src.cli import format_page
from src.page import Page


class TestFormatPage:
    def test_lists_every_slot(self):
        page = Page()
        page.slot("total-projects").render(6)
        page.slot("endstone-plugins").render([{"name": "a"}, {"name": "b"}])
        page.slot("donators").show_error("Unable to load donators at this time.")

        lines = format_page(page).splitlines()

        assert len(lines) == 3
        assert lines[0].startswith("donators")
        assert "(Unable to load donators at this time.)" in lines[0]
        assert "2 item(s)" in lines[1]
        assert lines[2].rstrip().endswith("6")

    def test_empty_page(self):
        assert format_page(Page()) == ""
