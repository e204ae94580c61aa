from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from mailserver.config import GoogleConfig
from mailserver.services.errors import ListError, MessageNotFound, TransientFetchError
from mailserver.services.gmail_service import (
    GmailProvider,
    SharedCredentials,
    build_gmail_provider,
    get_gmail_service,
)


def _http_error(status):
    resp = httplib2.Response({"status": status, "reason": "error"})
    return HttpError(resp, b'{"error": {"message": "boom"}}')


@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def provider(service):
    return GmailProvider(lambda: service)


def test_list_recent_follows_page_tokens(provider, service):
    list_call = service.users.return_value.messages.return_value.list
    list_call.return_value.execute.side_effect = [
        {"messages": [{"id": "a", "threadId": "t1"}], "nextPageToken": "p2"},
        {"messages": [{"id": "b", "threadId": "t2"}]},
    ]

    messages = provider.list_recent(window_days=30, max_results=100)

    assert [m["id"] for m in messages] == ["a", "b"]
    first_kwargs = list_call.call_args_list[0].kwargs
    assert first_kwargs["q"] == "newer_than:30d"
    assert first_kwargs["maxResults"] == 100
    assert first_kwargs["labelIds"] == ["INBOX"]
    assert list_call.call_args_list[1].kwargs["pageToken"] == "p2"


def test_list_recent_wraps_api_errors(provider, service):
    list_call = service.users.return_value.messages.return_value.list
    list_call.return_value.execute.side_effect = _http_error(500)

    with pytest.raises(ListError):
        provider.list_recent(window_days=30, max_results=100)


def test_list_history_flattens_added_messages_in_order(provider, service):
    history_call = service.users.return_value.history.return_value.list
    history_call.return_value.execute.side_effect = [
        {
            "history": [
                {"id": "101", "messagesAdded": [{"message": {"id": "a", "threadId": "t1"}}]},
                {"id": "102", "messages": [{"id": "ignored"}]},
            ],
            "nextPageToken": "next",
        },
        {
            "history": [
                {"id": "103", "messagesAdded": [
                    {"message": {"id": "b", "threadId": "t2"}},
                    {"message": {"id": "c", "threadId": "t3"}},
                ]},
            ],
        },
    ]

    deltas = provider.list_history_since(cursor=100, max_results=50)

    assert deltas == [
        {"id": "a", "threadId": "t1", "historyId": "101"},
        {"id": "b", "threadId": "t2", "historyId": "103"},
        {"id": "c", "threadId": "t3", "historyId": "103"},
    ]
    kwargs = history_call.call_args_list[0].kwargs
    assert kwargs["startHistoryId"] == "100"
    assert kwargs["historyTypes"] == ["messageAdded"]


def test_list_history_empty_is_not_an_error(provider, service):
    history_call = service.users.return_value.history.return_value.list
    history_call.return_value.execute.return_value = {"historyId": "100"}

    assert provider.list_history_since(cursor=100, max_results=50) == []


def test_list_history_expired_cursor_is_list_error(provider, service):
    history_call = service.users.return_value.history.return_value.list
    history_call.return_value.execute.side_effect = _http_error(404)

    with pytest.raises(ListError):
        provider.list_history_since(cursor=1, max_results=50)


def test_get_metadata_extracts_headers(provider, service):
    get_call = service.users.return_value.messages.return_value.get
    get_call.return_value.execute.return_value = {
        "id": "a",
        "threadId": "t1",
        "historyId": "555",
        "snippet": "hello",
        "payload": {"headers": [{"name": "From", "value": "bob@example.com"}]},
    }

    meta = provider.get_metadata("a")

    assert meta.from_address == "bob@example.com"
    assert meta.history_id == 555
    assert get_call.call_args.kwargs["format"] == "metadata"


def test_get_metadata_404_is_message_not_found(provider, service):
    get_call = service.users.return_value.messages.return_value.get
    get_call.return_value.execute.side_effect = _http_error(404)

    with pytest.raises(MessageNotFound):
        provider.get_metadata("gone")


def test_get_metadata_other_errors_are_transient(provider, service):
    get_call = service.users.return_value.messages.return_value.get
    get_call.return_value.execute.side_effect = _http_error(503)

    with pytest.raises(TransientFetchError) as excinfo:
        provider.get_metadata("a")
    assert not isinstance(excinfo.value, MessageNotFound)


def test_service_is_built_lazily_once_per_thread():
    factory = MagicMock()
    provider = GmailProvider(factory)
    assert factory.call_count == 0

    factory.return_value.users.return_value.messages.return_value.list.return_value.execute.return_value = {}
    provider.list_recent(30, 10)
    provider.list_recent(30, 10)

    assert factory.call_count == 1


def test_get_gmail_service_without_credentials(tmp_path):
    config = GoogleConfig(token_file=str(tmp_path / "missing.json"))

    with pytest.raises(RuntimeError):
        get_gmail_service(config)


def _expired_credentials():
    creds = MagicMock()
    creds.valid = False
    creds.refresh_token = "refresh"
    creds.to_json.return_value = '{"token": "fresh"}'

    def refresh(request):
        creds.valid = True

    creds.refresh.side_effect = refresh
    return creds


def test_credentials_refreshed_once_and_saved(tmp_path):
    token_file = tmp_path / "token.json"
    token_file.write_text('{"token": "stale"}')
    config = GoogleConfig(token_file=str(token_file))
    creds = _expired_credentials()

    with patch("mailserver.services.gmail_service.Credentials") as credentials_cls, \
            patch("mailserver.services.gmail_service.Request"), \
            patch("mailserver.services.gmail_service.build") as build:
        credentials_cls.from_authorized_user_file.return_value = creds
        shared = SharedCredentials(config)

        with ThreadPoolExecutor(max_workers=3) as executor:
            list(executor.map(lambda _: get_gmail_service(config, shared), range(6)))

    assert creds.refresh.call_count == 1
    assert credentials_cls.from_authorized_user_file.call_count == 1
    assert build.call_count == 6
    assert all(call.kwargs["credentials"] is creds for call in build.call_args_list)
    assert token_file.read_text() == '{"token": "fresh"}'


def test_provider_threads_share_one_credential_load(tmp_path):
    config = GoogleConfig(
        client_id="id",
        client_secret="secret",
        refresh_token="refresh",
        token_file=str(tmp_path / "token.json"),
    )
    creds = _expired_credentials()

    with patch("mailserver.services.gmail_service.Credentials", return_value=creds) as credentials_cls, \
            patch("mailserver.services.gmail_service.Request"), \
            patch("mailserver.services.gmail_service.build") as build:
        build.return_value.users.return_value.messages.return_value.get.return_value.execute.return_value = {"id": "a"}
        provider = build_gmail_provider(config)

        with ThreadPoolExecutor(max_workers=3) as executor:
            list(executor.map(provider.get_metadata, ["a", "b", "c", "d"]))

    assert credentials_cls.call_count == 1
    assert creds.refresh.call_count == 1
    assert (tmp_path / "token.json").read_text() == '{"token": "fresh"}'
