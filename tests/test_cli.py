"""orderdash command line."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from conftest import WEBHOOK_SECRET, order_payload, shopify_signature
from orderdash.cli import build_parser, main


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("SHOPIFY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("ORDERDASH_RECORD_STORE", "memory")


@pytest.fixture()
def payload_file(tmp_path):
    path = tmp_path / "order.json"
    path.write_bytes(json.dumps(order_payload()).encode())
    return path


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_sign_prints_signature(payload_file, capsys):
    main(["sign", str(payload_file)])
    assert capsys.readouterr().out.strip() == shopify_signature(payload_file.read_bytes())


def test_sign_without_secret_fails(payload_file, monkeypatch):
    monkeypatch.setenv("SHOPIFY_WEBHOOK_SECRET", "")
    with pytest.raises(SystemExit) as exc:
        main(["sign", str(payload_file)])
    assert exc.value.code == 1


def test_sign_missing_file_fails(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["sign", str(tmp_path / "missing.json")])
    assert exc.value.code == 1


def test_purge_requires_yes():
    with pytest.raises(SystemExit) as exc:
        main(["purge"])
    assert exc.value.code == 2


@patch("orderdash.cli.build_store")
def test_purge_deletes_all(mock_build_store, capsys):
    store = MagicMock()
    store.name = "memory"
    store.delete_all_orders.return_value = 3
    mock_build_store.return_value = store

    main(["purge", "--yes"])

    store.delete_all_orders.assert_called_once()
    store.close.assert_called_once()
    assert "Deleted 3 orders" in capsys.readouterr().out


@patch("orderdash.cli.httpx.post")
def test_replay_signs_and_posts(mock_post, payload_file, capsys):
    mock_post.return_value = MagicMock(status_code=200, text='{"ok":true}')

    main(["replay", str(payload_file), "--topic", "orders/create", "--url", "http://svc/api/shopify"])

    args, kwargs = mock_post.call_args
    assert args[0] == "http://svc/api/shopify"
    assert kwargs["content"] == payload_file.read_bytes()
    assert kwargs["headers"]["X-Shopify-Topic"] == "orders/create"
    assert kwargs["headers"]["X-Shopify-Hmac-Sha256"] == shopify_signature(payload_file.read_bytes())
    assert "Status: 200" in capsys.readouterr().out


@patch("orderdash.cli.httpx.post")
def test_replay_rejected_exits_nonzero(mock_post, payload_file):
    mock_post.return_value = MagicMock(status_code=401, text='{"error":"Invalid signature"}')
    with pytest.raises(SystemExit) as exc:
        main(["replay", str(payload_file), "--topic", "orders/create"])
    assert exc.value.code == 1


@patch("orderdash.cli.httpx.post")
def test_replay_connection_error(mock_post, payload_file):
    mock_post.side_effect = httpx.ConnectError("refused")
    with pytest.raises(SystemExit) as exc:
        main(["replay", str(payload_file), "--topic", "orders/create"])
    assert exc.value.code == 1


@patch("orderdash.cli.build_store")
def test_configuration_error_reported(mock_build_store, capsys):
    from orderdash.errors import ConfigurationError

    mock_build_store.side_effect = ConfigurationError("ORDERDASH_DATABASE_URL is required")
    with pytest.raises(SystemExit) as exc:
        main(["purge", "--yes"])
    assert exc.value.code == 1
    assert "DATABASE_URL" in capsys.readouterr().err
