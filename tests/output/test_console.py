"""Tests for the Rich console factory and theme."""

from rich.text import Text

from deferq.output.console import DEFERQ_THEME, create_console, get_output, style_for_state


class TestCreateConsole:
    def test_renders_to_buffer(self) -> None:
        console = create_console()
        console.print("hello")
        assert get_output(console) == "hello\n"

    def test_width_override(self) -> None:
        assert create_console(width=40).width == 40

    def test_theme_styles_resolve(self) -> None:
        console = create_console(no_color=True)
        console.print(Text("styled", style="dq.id"))
        assert "styled" in get_output(console)

    def test_no_ansi_when_not_a_terminal(self) -> None:
        console = create_console()
        console.print(Text("plain", style="dq.error"))
        assert "\x1b[" not in get_output(console)


class TestStyleForState:
    def test_states(self) -> None:
        assert style_for_state(True) == "dq.executed"
        assert style_for_state(False) == "dq.pending"
        assert "dq.executed" in DEFERQ_THEME.styles
        assert "dq.pending" in DEFERQ_THEME.styles
