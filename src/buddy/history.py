from typing import List

from buddy.models import ChatMessage, MessageMetrics, Role


class MessageHistory:
    def __init__(self):
        self.messages: List[ChatMessage] = []

    def __len__(self) -> int:
        return len(self.messages)

    def add_user_message(self, content: str) -> ChatMessage:
        return self._append(ChatMessage(role=Role.USER, content=content))

    def add_assistant_message(self, content: str = "") -> ChatMessage:
        return self._append(
            ChatMessage(role=Role.ASSISTANT, content=content, metrics=MessageMetrics())
        )

    def add_action_result(self, result_text: str) -> ChatMessage:
        return self._append(ChatMessage(role=Role.USER, content=result_text, synthetic=True))

    def _append(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def snapshot(self) -> List[ChatMessage]:
        return list(self.messages)

    def visible_messages(self) -> List[ChatMessage]:
        return [message for message in self.messages if not message.synthetic]

    def clear(self):
        self.messages = []
