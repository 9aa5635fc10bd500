"""Tests for the custom-prompt conversation."""
import asyncio
import uuid

from conftest import (
    EDITOR,
    EDITORS_GROUP,
    NEWS_CHANNEL,
    OTHER_EDITOR,
    FakeSummarizer,
    RaisingSummarizer,
    callback_update,
    keyboard_messages,
    make_services,
    message_update,
)
from newsdesk.conversations import ASK_PROMPT_TEXT
from newsdesk.keyboards import cancel_prompt_keyboard
from newsdesk.models import Stage

KEY = (EDITORS_GROUP, EDITOR)


async def post_item(services, text="Original item text"):
    token = await services.desk.post_for_review(text)
    return token, keyboard_messages(services.api)[-1]["message_id"]


async def click(services, data, message_id, user_id=EDITOR):
    await services.bot.handle_update(callback_update(data, message_id, user_id=user_id))


async def say(services, text, user_id=EDITOR):
    await services.bot.handle_update(message_update(text, user_id=user_id))


def sent_texts(api):
    return [c["text"] for c in api.of("sendMessage")]


class TestStart:
    def test_new_prompt_asks_and_waits(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            await click(services, f"prm:{token}", message_id)
            # the parked conversation only lives while the loop runs
            assert services.sessions.pending_prompt(KEY) == token
            assert services.conversations.is_waiting(KEY)
            return token, message_id

        token, message_id = asyncio.run(scenario())

        edit = services.api.of("editMessageText")[-1]
        assert edit["message_id"] == message_id
        assert edit["text"] == ASK_PROMPT_TEXT
        assert edit["reply_markup"] == cancel_prompt_keyboard(token)
        assert services.contexts.get(token).stage == Stage.AWAITING_CUSTOM_PROMPT
        assert len(services.api.of("answerCallbackQuery")) == 1

    def test_start_on_missing_context(self):
        services = make_services()

        started = asyncio.run(services.conversations.start(KEY, str(uuid.uuid4()), EDITORS_GROUP, 12))

        assert started is False
        assert not services.conversations.is_waiting(KEY)
        assert sent_texts(services.api) == [
            "Error: Could not find the original message context. It might be too old."
        ]
        assert services.api.of("editMessageReplyMarkup")[0]["message_id"] == 12

    def test_second_start_cancels_the_first(self):
        services = make_services()

        async def scenario():
            first, first_msg = await post_item(services, "first")
            second, second_msg = await post_item(services, "second")
            await click(services, f"prm:{first}", first_msg)
            await click(services, f"prm:{second}", second_msg)
            assert services.sessions.pending_prompt(KEY) == second
            assert len(services.conversations) == 1
            return first, first_msg

        first, first_msg = asyncio.run(scenario())

        assert services.contexts.get(first).stage == Stage.POSTED
        restored = [e for e in services.api.of("editMessageText") if e["message_id"] == first_msg][-1]
        assert restored["reply_markup"] == services.contexts.get(first).button_layout


class TestCancel:
    def test_cancel_restores_exact_keyboard(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            layout = services.contexts.get(token).button_layout
            await click(services, f"prm:{token}", message_id)
            await click(services, f"cnp:{token}", message_id)
            await services.conversations.wait_idle()
            return token, message_id, layout

        token, message_id, layout = asyncio.run(scenario())

        restored = services.api.of("editMessageText")[-1]
        assert restored["message_id"] == message_id
        assert restored["text"] == "Choose an option:"
        assert restored["reply_markup"] == layout
        assert services.sessions.pending_prompt(KEY) is None
        assert not services.conversations.is_waiting(KEY)
        assert services.contexts.get(token).stage == Stage.POSTED
        assert services.api.of("answerCallbackQuery")[-1]["text"] == "Cancelled"

    def test_text_after_cancel_is_a_new_item(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            await click(services, f"prm:{token}", message_id)
            await click(services, f"cnp:{token}", message_id)
            await say(services, "make it shorter")

        asyncio.run(scenario())

        assert services.summarizer.calls == []
        assert len(services.contexts) == 2


class TestCustomRewrite:
    def test_custom_prompt_creates_a_new_item(self):
        services = make_services(summarizer=FakeSummarizer("Shorter item"))

        async def scenario():
            token, message_id = await post_item(services, "A rather long original item")
            await click(services, f"prm:{token}", message_id)
            await say(services, "make it shorter")
            await services.conversations.wait_idle()
            new_message_id = keyboard_messages(services.api)[-1]["message_id"]
            await click(services, f"chn:{token}", message_id)
            return token, message_id, new_message_id

        token, message_id, new_message_id = asyncio.run(scenario())

        assert services.summarizer.calls == [("A rather long original item", "make it shorter", "gpt-4o")]
        assert "Processing with new prompt..." in sent_texts(services.api)
        assert services.contexts.get(token).stage == Stage.SUPERSEDED
        assert new_message_id != message_id

        tokens = {b["callback_data"].split(":", 1)[1]
                  for m in keyboard_messages(services.api) for row in m["reply_markup"] for b in row}
        assert len(tokens) == 2
        new_token = (tokens - {token}).pop()
        assert services.contexts.get(new_token).original_text == "Shorter item"

        assert services.api.of("answerCallbackQuery")[-1]["text"] == (
            "Error: Original message context not found (too old?)."
        )
        assert services.sessions.pending_prompt(KEY) is None
        assert not services.conversations.is_waiting(KEY)

    def test_failed_custom_rewrite_restores_keyboard(self):
        services = make_services(summarizer=FakeSummarizer(None))

        async def scenario():
            token, message_id = await post_item(services)
            layout = services.contexts.get(token).button_layout
            await click(services, f"prm:{token}", message_id)
            await say(services, "make it shorter")
            await services.conversations.wait_idle()
            return token, message_id, layout

        token, message_id, layout = asyncio.run(scenario())

        restored = services.api.of("editMessageText")[-1]
        assert restored["message_id"] == message_id
        assert restored["text"] == "Failed. Choose an option:"
        assert restored["reply_markup"] == layout
        assert services.contexts.get(token).stage == Stage.REWRITE_FAILED
        assert "Sorry, failed to get a response from OpenAI with the new prompt." in sent_texts(services.api)
        assert services.sessions.pending_prompt(KEY) is None

    def test_raising_custom_rewrite_restores_keyboard(self):
        services = make_services(summarizer=RaisingSummarizer())

        async def scenario():
            token, message_id = await post_item(services, "Publish me later")
            layout = services.contexts.get(token).button_layout
            await click(services, f"prm:{token}", message_id)
            await say(services, "make it shorter")
            await services.conversations.wait_idle()
            stage = services.contexts.get(token).stage
            await click(services, f"chn:{token}", message_id)
            return message_id, layout, stage

        message_id, layout, stage = asyncio.run(scenario())

        assert stage == Stage.REWRITE_FAILED
        restored = [e for e in services.api.of("editMessageText") if e["text"] == "Failed. Choose an option:"]
        assert restored[0]["message_id"] == message_id
        assert restored[0]["reply_markup"] == layout
        assert services.api.of("answerCallbackQuery")[-1]["text"] == "Sending to news channel..."
        channel = [c["text"] for c in services.api.of("sendMessage") if c["chat_id"] == NEWS_CHANNEL]
        assert channel == ["Publish me later"]

    def test_context_gone_before_prompt_arrives(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            await click(services, f"prm:{token}", message_id)
            await click(services, f"chn:{token}", message_id)
            await say(services, "make it shorter")
            await services.conversations.wait_idle()

        asyncio.run(scenario())

        assert services.summarizer.calls == []
        assert "Error: The original message context is gone. It might be too old." in sent_texts(services.api)


class TestOtherTraffic:
    def test_other_editors_are_not_blocked(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            await click(services, f"prm:{token}", message_id)
            await say(services, "Another editor's news item", user_id=OTHER_EDITOR)
            still_waiting = services.conversations.is_waiting(KEY)
            await say(services, "make it shorter")
            await services.conversations.wait_idle()
            return still_waiting

        still_waiting = asyncio.run(scenario())

        assert still_waiting
        assert [c[1] for c in services.summarizer.calls] == ["make it shorter"]
        assert "Another editor's news item" in sent_texts(services.api)

    def test_commands_are_not_taken_as_prompts(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services)
            await click(services, f"prm:{token}", message_id)
            await say(services, "/gpt")
            assert services.conversations.is_waiting(KEY)

        asyncio.run(scenario())

        assert services.summarizer.calls == []
        assert "Choose the default OpenAI model:" in sent_texts(services.api)

    def test_clicks_during_conversation_still_work(self):
        services = make_services()

        async def scenario():
            token, message_id = await post_item(services, "first")
            other, other_msg = await post_item(services, "second")
            await click(services, f"prm:{token}", message_id)
            await click(services, f"chn:{other}", other_msg, user_id=OTHER_EDITOR)
            assert services.conversations.is_waiting(KEY)
            return other

        other = asyncio.run(scenario())

        assert services.contexts.get(other) is None
