# tests/test_helpscout_client.py

"""
Help Scout client against a mocked requests session
"""

import unittest
from unittest.mock import MagicMock

import requests

from conftest import make_threads
from errors import UpstreamFetchError
from integrations.helpscout_client import (
    API_BASE,
    TOKEN_URL,
    HelpScoutClient,
    find_latest_team_response,
    thread_created_at,
)


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    return response


def _client(session, **kwargs):
    kwargs.setdefault("app_id", "app-id")
    kwargs.setdefault("app_secret", "app-secret")
    return HelpScoutClient(session=session, **kwargs)


class TestAuth(unittest.TestCase):

    def test_token_is_fetched_once_and_cached(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"access_token": "tok", "expires_in": 7200})
        client = _client(session)

        self.assertEqual(client.get_access_token(), "tok")
        self.assertEqual(client.get_access_token(), "tok")
        session.post.assert_called_once()
        self.assertEqual(session.post.call_args.args[0], TOKEN_URL)
        self.assertEqual(session.post.call_args.kwargs["json"]["grant_type"], "client_credentials")

    def test_static_token_skips_exchange(self):
        session = MagicMock()
        client = HelpScoutClient(access_token="static", session=session)
        self.assertTrue(client.configured)
        self.assertEqual(client.get_access_token(), "static")
        session.post.assert_not_called()

    def test_missing_credentials(self):
        client = HelpScoutClient(session=MagicMock())
        self.assertFalse(client.configured)
        with self.assertRaises(UpstreamFetchError):
            client.get_access_token()

    def test_auth_http_error(self):
        session = MagicMock()
        session.post.return_value = _response(status_code=401, text="invalid_client")
        with self.assertRaises(UpstreamFetchError) as ctx:
            _client(session).get_access_token()
        self.assertEqual(ctx.exception.status_code, 401)

    def test_auth_timeout(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")
        with self.assertRaises(UpstreamFetchError) as ctx:
            _client(session).get_access_token()
        self.assertIn("timed out", str(ctx.exception))


class TestThreads(unittest.TestCase):

    def test_threads_returned(self):
        session = MagicMock()
        session.get.return_value = _response(payload={"_embedded": {"threads": make_threads()}})
        client = _client(session, access_token="static")

        threads = client.get_threads(123)

        self.assertEqual(len(threads), 2)
        self.assertEqual(session.get.call_args.args[0], f"{API_BASE}/conversations/123/threads")
        self.assertEqual(session.get.call_args.kwargs["headers"]["Authorization"], "Bearer static")

    def test_empty_conversation(self):
        session = MagicMock()
        session.get.return_value = _response(payload={})
        self.assertEqual(_client(session, access_token="static").get_threads(1), [])

    def test_api_error(self):
        session = MagicMock()
        session.get.return_value = _response(status_code=404, text="not found")
        with self.assertRaises(UpstreamFetchError) as ctx:
            _client(session, access_token="static").get_threads(1)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_unauthorized_drops_cached_token(self):
        session = MagicMock()
        session.post.return_value = _response(payload={"access_token": "tok", "expires_in": 7200})
        session.get.return_value = _response(status_code=401)
        client = _client(session)

        with self.assertRaises(UpstreamFetchError):
            client.get_threads(1)
        with self.assertRaises(UpstreamFetchError):
            client.get_threads(1)
        self.assertEqual(session.post.call_count, 2)

    def test_connection_error(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(UpstreamFetchError):
            _client(session, access_token="static").get_threads(1)


class TestLatestTeamResponse(unittest.TestCase):

    def test_newest_user_message(self):
        threads = make_threads(agent_body="First reply") + [{
            "id": 3,
            "type": "message",
            "body": "Second reply",
            "createdAt": "2024-05-01T11:00:00Z",
            "createdBy": {"id": 13, "type": "user", "first": "Jo"},
        }]
        response = find_latest_team_response(threads)
        self.assertEqual(response.text, "Second reply")
        self.assertEqual(response.agent_id, 13)
        self.assertEqual(response.agent_name, "Jo")
        self.assertEqual(response.created_at, "2024-05-01T11:00:00Z")

    def test_ignores_notes_and_customer_threads(self):
        threads = [
            {"type": "note", "body": "internal", "createdAt": "2024-05-01T12:00:00Z", "createdBy": {"type": "user"}},
            {"type": "customer", "body": "help", "createdAt": "2024-05-01T13:00:00Z", "createdBy": {"type": "customer"}},
            {"type": "message", "body": "", "createdAt": "2024-05-01T14:00:00Z", "createdBy": {"type": "user"}},
        ]
        self.assertIsNone(find_latest_team_response(threads))

    def test_missing_agent_details(self):
        threads = [{"type": "message", "body": "Done", "createdAt": "2024-05-01T12:00:00Z", "createdBy": "user"}]
        response = find_latest_team_response(threads)
        self.assertEqual(response.agent_id, "unknown")
        self.assertEqual(response.agent_name, "Unknown")

    def test_empty(self):
        self.assertIsNone(find_latest_team_response([]))

    def test_unparseable_timestamp_sorts_first(self):
        self.assertLess(thread_created_at({"createdAt": "yesterday"}), thread_created_at(make_threads()[0]))


if __name__ == "__main__":
    unittest.main()
