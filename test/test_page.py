"""Tests for page slots."""

from src.page import Page, SlotState


class TestSlot:
    def test_new_slot_is_loading(self):
        page = Page()
        slot = page.slot("stats")
        assert slot.state == SlotState.loading
        assert slot.renders == 0
        assert "stats" in page

    def test_slot_is_reused(self):
        page = Page()
        assert page.slot("a") is page.slot("a")

    def test_latest_render_wins(self):
        slot = Page().slot("a")
        slot.render([1])
        slot.show_error("down", content=[1])
        slot.render([2], message="ok")
        assert slot.state == SlotState.ready
        assert slot.content == [2]
        assert slot.message == "ok"
        assert slot.renders == 3

    def test_hide_clears_content(self):
        slot = Page().slot("a")
        slot.render("x")
        slot.hide()
        assert slot.state == SlotState.hidden
        assert slot.content is None


class TestPage:
    def test_get_missing(self):
        assert Page().get("nope") is None

    def test_snapshot_is_sorted_and_plain(self):
        page = Page()
        page.slot("b").render(2)
        page.slot("a").show_empty("nothing")
        snapshot = page.snapshot()
        assert list(snapshot) == ["a", "b"]
        assert snapshot["a"] == {"state": "empty", "content": None, "message": "nothing"}
        assert snapshot["b"]["state"] == "ready"
