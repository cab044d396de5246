"""
Manifest store tests.

Local store against tmp_path; ADLS store against a mocked requests session.
"""

import json
import pytest
import sys
import os
from unittest.mock import MagicMock, patch

import requests

src_dir = os.path.join(os.path.dirname(__file__), '..', '..', 'src')
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

from cdmutil.errors import ManifestFormatError, ManifestNotFoundError, StorageError
from cdmutil.storage import (
    AdlsContext,
    AdlsManifestStore,
    LocalManifestStore,
    TransientStorageError,
    create_store,
)

BASE_URL = "https://acct.dfs.core.windows.net/fs"


def _response(status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def token_manager():
    manager = MagicMock()
    manager.get_access_token.return_value = "test-token"
    return manager


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def adls_store(token_manager, session, monkeypatch):
    monkeypatch.setattr(AdlsManifestStore._send.retry, "sleep", lambda seconds: None)
    return AdlsManifestStore(AdlsContext("acct", "fs"), token_manager=token_manager, session=session)


@pytest.mark.unit
class TestLocalManifestStore:
    """Local directory store."""

    def test_read(self, local_store):
        data = local_store.read("Tables/Tables.manifest.cdm.json")
        assert data["manifestName"] == "Tables"

    def test_read_missing(self, local_store):
        with pytest.raises(ManifestNotFoundError) as exc_info:
            local_store.read("Tables/Missing.manifest.cdm.json")
        assert exc_info.value.location == "Tables/Missing.manifest.cdm.json"

    def test_read_invalid_json(self, tmp_path):
        (tmp_path / "bad.manifest.cdm.json").write_text("{not json", encoding="utf-8")
        store = LocalManifestStore(str(tmp_path))
        with pytest.raises(ManifestFormatError):
            store.read("bad.manifest.cdm.json")

    def test_read_non_object(self, tmp_path):
        (tmp_path / "list.cdm.json").write_text("[1, 2]", encoding="utf-8")
        store = LocalManifestStore(str(tmp_path))
        with pytest.raises(ManifestFormatError):
            store.read("list.cdm.json")

    def test_write_creates_folders(self, empty_store):
        assert empty_store.write("A/B/doc.cdm.json", {"x": 1}) is True
        assert empty_store.exists("A/B/doc.cdm.json")
        assert empty_store.read("A/B/doc.cdm.json") == {"x": 1}

    def test_exists(self, local_store):
        assert local_store.exists("Tables/Finance/CustTable.cdm.json")
        assert not local_store.exists("Tables/Finance/Nope.cdm.json")
        assert not local_store.exists("Tables/Finance")

    def test_absolute_locations(self, local_store, cdm_root):
        absolute = str(cdm_root / "Tables" / "Tables.manifest.cdm.json")
        assert local_store.to_relative(absolute) == "Tables/Tables.manifest.cdm.json"
        assert local_store.read(absolute)["manifestName"] == "Tables"

    def test_resolve_relative(self, local_store):
        location = local_store.resolve("Tables/Tables.manifest.cdm.json", "Finance/Finance.manifest.cdm.json")
        assert local_store.to_relative(location) == "Tables/Finance/Finance.manifest.cdm.json"

    def test_resolve_root_relative(self, local_store):
        location = local_store.resolve("Tables/Finance/Finance.manifest.cdm.json", "local:/Tables/Tables.manifest.cdm.json")
        assert local_store.to_relative(location) == "Tables/Tables.manifest.cdm.json"

    def test_resolve_parent_folder(self, local_store):
        location = local_store.resolve("Tables/Finance/Finance.manifest.cdm.json", "../Supply/VendTable.cdm.json")
        assert local_store.to_relative(location) == "Tables/Supply/VendTable.cdm.json"

    def test_resolve_escaping_root(self, local_store):
        with pytest.raises(ManifestFormatError):
            local_store.resolve("Tables/Tables.manifest.cdm.json", "../../outside.cdm.json")

    def test_folder_of(self, local_store):
        assert local_store.folder_of("Tables/Finance/Finance.manifest.cdm.json") == "Tables/Finance"
        assert local_store.folder_of("root.manifest.cdm.json") == ""


@pytest.mark.unit
class TestAdlsContext:
    """ADLS addressing."""

    def test_base_url(self):
        assert AdlsContext("acct", "fs").base_url == BASE_URL

    def test_from_url(self):
        context = AdlsContext.from_url(f"{BASE_URL}/Tables/Tables.manifest.cdm.json", tenant_id="t1")
        assert context.storage_account == "acct"
        assert context.file_system_name == "fs"
        assert context.tenant_id == "t1"

    @pytest.mark.parametrize("url", [
        "http://acct.dfs.core.windows.net/fs/x.cdm.json",
        "https://acct.blob.core.windows.net/fs/x.cdm.json",
        "https://acct.dfs.core.windows.net",
    ])
    def test_from_invalid_url(self, url):
        with pytest.raises(StorageError):
            AdlsContext.from_url(url)


@pytest.mark.unit
class TestAdlsManifestStore:
    """ADLS Gen2 store over a mocked session."""

    def test_read(self, adls_store, session):
        session.request.return_value = _response(200, json.dumps({"manifestName": "Tables"}))

        data = adls_store.read(f"{BASE_URL}/Tables/Tables.manifest.cdm.json")

        assert data == {"manifestName": "Tables"}
        method, url = session.request.call_args[0]
        assert method == "GET"
        assert url == f"{BASE_URL}/Tables/Tables.manifest.cdm.json"
        headers = session.request.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer test-token"
        assert "x-ms-version" in headers

    def test_relative_location(self, adls_store, session):
        session.request.return_value = _response(200, "{}")
        adls_store.read_text("Tables/My Folder/x.cdm.json")
        assert session.request.call_args[0][1] == f"{BASE_URL}/Tables/My%20Folder/x.cdm.json"

    def test_read_not_found(self, adls_store, session):
        session.request.return_value = _response(404, "PathNotFound")
        with pytest.raises(ManifestNotFoundError):
            adls_store.read("Tables/Missing.manifest.cdm.json")

    def test_read_forbidden(self, adls_store, session):
        session.request.return_value = _response(403, "AuthorizationPermissionMismatch")
        with pytest.raises(StorageError) as exc_info:
            adls_store.read("Tables/Tables.manifest.cdm.json")
        assert exc_info.value.status_code == 403

    def test_transient_errors_retried(self, adls_store, session):
        session.request.side_effect = [
            _response(503),
            _response(429),
            _response(200, '{"manifestName": "Tables"}'),
        ]
        assert adls_store.read("Tables/Tables.manifest.cdm.json")["manifestName"] == "Tables"
        assert session.request.call_count == 3

    def test_transient_errors_exhausted(self, adls_store, session):
        session.request.return_value = _response(500)
        with pytest.raises(TransientStorageError):
            adls_store.read("Tables/Tables.manifest.cdm.json")
        assert session.request.call_count == 5

    def test_connection_error_wrapped(self, adls_store, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(StorageError):
            adls_store.read_text("Tables/Tables.manifest.cdm.json")

    def test_write(self, adls_store, session):
        session.request.side_effect = [_response(201), _response(202), _response(200)]

        assert adls_store.write("Tables/new.cdm.json", {"a": 1}) is True

        calls = session.request.call_args_list
        assert [c[0][0] for c in calls] == ["PUT", "PATCH", "PATCH"]
        assert calls[0][1]["params"] == {"resource": "file"}
        assert calls[1][1]["params"] == {"action": "append", "position": 0}
        body = calls[1][1]["data"]
        assert json.loads(body.decode("utf-8")) == {"a": 1}
        assert calls[2][1]["params"] == {"action": "flush", "position": len(body)}

    def test_write_failure(self, adls_store, session):
        session.request.side_effect = [_response(201), _response(409, "Conflict")]
        with pytest.raises(StorageError):
            adls_store.write_text("Tables/new.cdm.json", "{}")

    def test_exists(self, adls_store, session):
        session.request.return_value = _response(200)
        assert adls_store.exists("Tables/Tables.manifest.cdm.json")
        session.request.return_value = _response(404)
        assert not adls_store.exists("Tables/Missing.manifest.cdm.json")
        assert session.request.call_args[0][0] == "HEAD"

    def test_outside_file_system(self, adls_store):
        with pytest.raises(ManifestNotFoundError):
            adls_store.to_relative("https://other.dfs.core.windows.net/fs/x.cdm.json")

    def test_resolve(self, adls_store):
        location = adls_store.resolve(f"{BASE_URL}/Tables/Tables.manifest.cdm.json", "Finance/Finance.manifest.cdm.json")
        assert location == f"{BASE_URL}/Tables/Finance/Finance.manifest.cdm.json"
        assert adls_store.folder_of(location) == "Tables/Finance"


@pytest.mark.unit
class TestCreateStore:
    """Store selection."""

    def test_local_root(self, tmp_path):
        store = create_store(f"{BASE_URL}/x.manifest.cdm.json", local_root=str(tmp_path))
        assert isinstance(store, LocalManifestStore)

    def test_plain_path(self):
        assert isinstance(create_store("Tables/Tables.manifest.cdm.json"), LocalManifestStore)

    def test_adls_url(self):
        with patch("cdmutil.storage.CredentialFactory") as factory:
            store = create_store(f"{BASE_URL}/Tables/Tables.manifest.cdm.json", tenant_id="t1")
        assert isinstance(store, AdlsManifestStore)
        assert store.root_url == BASE_URL
        factory.create_credential.assert_called_once_with("t1", True)
