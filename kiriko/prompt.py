from dataclasses import dataclass
from typing import List, Optional

from prompt_toolkit.application import Application
from prompt_toolkit.filters import IsDone
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.layout.containers import ConditionalContainer, HSplit, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension
from prompt_toolkit.layout.layout import Layout


@dataclass
class Option:
    key: str
    label: Optional[str] = None


class SelectControl(FormattedTextControl):
    def __init__(self, options: List[Option]):
        self.options = options
        self.selected_index = 0
        super().__init__(key_bindings=self._create_key_bindings())

    @property
    def selected_option(self) -> Option:
        return self.options[self.selected_index]

    def _create_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()
        count = len(self.options)

        @kb.add('down', eager=True)
        def move_cursor_down(event):
            self.selected_index = (self.selected_index + 1) % count

        @kb.add('up', eager=True)
        def move_cursor_up(event):
            self.selected_index = (self.selected_index - 1) % count

        @kb.add('enter', eager=True)
        def set_selected(event):
            event.app.exit(result=self.selected_option)

        @kb.add('c-q', eager=True)
        @kb.add('c-c', eager=True)
        def _(event):
            raise KeyboardInterrupt()

        return kb

    def select_option_text(self, mark: str) -> List[tuple]:
        text = []
        for idx, op in enumerate(self.options):
            prefix = mark if idx == self.selected_index else ' ' * len(mark)
            text.append(('', f'{prefix} {op.label or op.key}\n'))  # style, string
        return text


def select_prompt(message: str, options: List[Option], mark: str = '>') -> Option:
    control = SelectControl(options)

    def get_formatted_text() -> List[tuple]:
        return control.select_option_text(mark)

    layout = Layout(
        HSplit(
            [
                Window(
                    height=Dimension.exact(1),
                    content=FormattedTextControl(
                        lambda: message + '\n',
                        show_cursor=False,
                    ),
                ),
                Window(
                    height=Dimension.exact(len(control.options)),
                    content=FormattedTextControl(get_formatted_text),
                ),
                ConditionalContainer(
                    Window(control),
                    filter=~IsDone(),
                ),
            ]
        )
    )

    app = Application(
        layout=layout,
        key_bindings=control.key_bindings,
        full_screen=False,
    )
    return app.run()
