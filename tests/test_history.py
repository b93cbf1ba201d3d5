from buddy.history import MessageHistory
from buddy.metrics import tokens_per_second
from buddy.models import Role


class TestMessageHistory:
    def test_messages_in_order(self):
        history = MessageHistory()
        history.add_user_message("hi")
        history.add_assistant_message("hello")
        history.add_action_result("ACTION_RESULT: LIST_DIR(path='.')")

        assert [m.role for m in history.messages] == [Role.USER, Role.ASSISTANT, Role.USER]
        assert len(history) == 3

    def test_action_results_hidden_from_display(self):
        history = MessageHistory()
        history.add_user_message("hi")
        history.add_action_result("ACTION_RESULT: LIST_DIR(path='.')")

        assert [m.content for m in history.visible_messages()] == ["hi"]

    def test_snapshot_is_a_copy(self):
        history = MessageHistory()
        snapshot = history.snapshot()
        history.add_user_message("later")

        assert snapshot == []

    def test_assistant_messages_have_metrics(self):
        message = MessageHistory().add_assistant_message()

        assert message.content == ""
        assert message.metrics is not None

    def test_ids_are_unique(self):
        history = MessageHistory()

        assert history.add_user_message("a").id != history.add_user_message("a").id


class TestTokensPerSecond:
    def test_rate(self):
        assert tokens_per_second(20, 2.0) == 10.0

    def test_short_duration_omitted(self):
        assert tokens_per_second(20, 0.01) is None
        assert tokens_per_second(20, 0.0) is None

    def test_missing_inputs(self):
        assert tokens_per_second(None, 1.0) is None
        assert tokens_per_second(0, 1.0) is None
        assert tokens_per_second(5, None) is None
