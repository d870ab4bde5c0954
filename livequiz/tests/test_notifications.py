import json
from unittest import mock

import redis
from django.test import TestCase

from livequiz import notifications, registry, state_machine
from livequiz.errors import NotHost

from .utils import HOST_ID, make_session


class PublishAfterCommitTests(TestCase):
    def setUp(self):
        self.session, _ = make_session(players=["Ann"])
        patcher = mock.patch("livequiz.notifications._redis_client")
        self.redis_client = patcher.start().return_value
        self.addCleanup(patcher.stop)

    def _published(self):
        return [
            (call.args[0], json.loads(call.args[1]))
            for call in self.redis_client.publish.call_args_list
        ]

    def test_transition_is_published_on_commit(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            state_machine.start(self.session.id, HOST_ID)

        self.assertEqual(len(callbacks), 1)
        ((channel, message),) = self._published()
        self.assertEqual(channel, f"livequiz:session:{self.session.id}")
        self.assertEqual(message["event"], "session_started")
        self.assertEqual(message["status"], "in_progress")
        self.assertEqual(message["current_card_index"], 0)

    def test_join_is_published(self):
        with self.captureOnCommitCallbacks(execute=True):
            registry.join(self.session.code, "Bo")

        ((_, message),) = self._published()
        self.assertEqual(message["event"], "participant_joined")

    def test_nothing_published_for_rejected_mutation(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(NotHost):
                state_machine.start(self.session.id, "intruder")

        self.assertEqual(callbacks, [])
        self.redis_client.publish.assert_not_called()

    def test_publish_failure_is_logged_not_raised(self):
        self.redis_client.publish.side_effect = redis.ConnectionError("down")

        with self.assertLogs("livequiz.notifications", level="WARNING") as logs:
            with self.captureOnCommitCallbacks(execute=True):
                session = state_machine.start(self.session.id, HOST_ID)

        self.assertEqual(session.status, "in_progress")
        self.assertIn("session_started", logs.output[0])


class IterMessagesTests(TestCase):
    def test_yields_decoded_messages_then_stops(self):
        pubsub = mock.Mock()
        payload = {"event": "card_advanced", "session_id": "abc"}
        pubsub.get_message.side_effect = [
            None,
            {"type": "message", "data": json.dumps(payload)},
            {"type": "message", "data": "not json"},
        ] + [None] * 1000

        with mock.patch("livequiz.notifications.time.monotonic", side_effect=range(0, 10_000)):
            messages = list(notifications.iter_messages(pubsub, timeout=3))

        self.assertEqual(messages, [payload])
        pubsub.close.assert_called_once()
