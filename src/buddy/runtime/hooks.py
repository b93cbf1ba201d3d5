from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List


@dataclass
class RuntimeHooks:
    on_path_edited: List[Callable[[Path], None]] = field(default_factory=list)
    on_assistant_message: List[Callable[[str], None]] = field(default_factory=list)
    on_action_result: List[Callable[[str, str], None]] = field(default_factory=list)
    on_turn_end: List[Callable[[], None]] = field(default_factory=list)

    def fire_path_edited(self, path: Path) -> None:
        for hook in list(self.on_path_edited):
            hook(path)

    def fire_assistant_message(self, content: str) -> None:
        for hook in list(self.on_assistant_message):
            hook(content)

    def fire_action_result(self, action_name: str, result_text: str) -> None:
        for hook in list(self.on_action_result):
            hook(action_name, result_text)

    def fire_turn_end(self) -> None:
        for hook in list(self.on_turn_end):
            hook()
